"""Shared business logic for the DealDesk API and MCP server.

Functions here fetch records for a deal, hand them to the calculators in
``metrics``/``activity``/``classifier`` and serialize the results. Mutating
helpers add to the session; the caller commits.
"""
from __future__ import annotations

import json
import logging
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dealdesk import metrics
from dealdesk.activity import (
    deal_activity_color,
    deal_activity_icon,
    describe_activity,
    describe_deal_activity,
)
from dealdesk.classifier import map_file_to_folder
from dealdesk.config import Settings, WidgetSettings
from dealdesk.models import (
    ActivityEvent,
    DataRoomDocument,
    DataRoomFolder,
    Deal,
    DealActivity,
    DiligenceComment,
    DiligenceDocument,
    DiligenceRequest,
    Setting,
)
from dealdesk.utils import json_parse

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Shared field tuples
# ---------------------------------------------------------------------------

DEAL_FIELDS = (
    "title", "company_name", "status", "asking_price", "revenue", "ebitda",
    "industry", "location", "description",
)

FOLDER_FIELDS = ("name", "description", "is_required", "is_not_applicable")

REQUEST_FIELDS = ("title", "category", "description", "status", "priority")

WIDGET_SETTINGS_KEY = "chat_widget"

# ---------------------------------------------------------------------------
# Lookup and mutation helpers
# ---------------------------------------------------------------------------


def get_entity(session: Session, model, entity_id: int):
    return session.execute(select(model).where(model.id == entity_id)).scalars().first()


def apply_updates(obj, updates: dict[str, Any], fields: tuple[str, ...]) -> None:
    """Apply non-None values from updates dict to an ORM object."""
    for field in fields:
        val = updates.get(field)
        if val is not None:
            setattr(obj, field, val)


def _iso(value) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def deal_summary(deal: Deal) -> dict:
    return {
        "id": deal.id,
        **{f: getattr(deal, f) for f in DEAL_FIELDS},
        "created_by": deal.created_by,
        "created_at": _iso(deal.created_at),
        "stage": metrics.stage_for_status(deal.status),
    }


def folder_summary(folder: DataRoomFolder) -> dict:
    return {
        "id": folder.id, "deal_id": folder.deal_id, "name": folder.name,
        "index_number": folder.index_number, "description": folder.description,
        "is_required": folder.is_required, "is_not_applicable": folder.is_not_applicable,
        "is_loi_restricted": folder.is_loi_restricted,
    }


def document_summary(doc: DataRoomDocument) -> dict:
    return {
        "id": doc.id, "deal_id": doc.deal_id, "folder_id": doc.folder_id,
        "file_name": doc.file_name, "status": doc.status,
        "uploaded_by": doc.uploaded_by, "uploaded_at": _iso(doc.uploaded_at),
    }


def request_summary(req: DiligenceRequest) -> dict:
    return {
        "id": req.id, "deal_id": req.deal_id,
        **{f: getattr(req, f) for f in REQUEST_FIELDS},
        "created_by": req.created_by, "created_at": _iso(req.created_at),
    }


def activity_item(event: ActivityEvent) -> dict:
    return {
        "id": event.id, "event_type": event.event_type,
        "event_data": json_parse(event.event_data_json, {}),
        "user_id": event.user_id, "created_at": _iso(event.created_at),
        **describe_activity(event.event_type),
    }


def deal_activity_item(act: DealActivity) -> dict:
    md = json_parse(act.metadata_json, {})
    return {
        "id": act.id, "deal_id": act.deal_id, "user_id": act.user_id,
        "activity_type": act.activity_type, "entity_type": act.entity_type,
        "entity_id": act.entity_id, "metadata": md, "created_at": _iso(act.created_at),
        "description": describe_deal_activity(act.activity_type, md),
        "icon": deal_activity_icon(act.activity_type),
        "color": deal_activity_color(act.activity_type),
    }


# ---------------------------------------------------------------------------
# Fetching
# ---------------------------------------------------------------------------


def list_deals(session: Session, status: str | None = None, search: str | None = None) -> list[Deal]:
    query = select(Deal).order_by(Deal.id)
    if status:
        statuses = [s.strip().lower() for s in status.split(",") if s.strip()]
        query = query.where(Deal.status.in_(statuses))
    deals = list(session.execute(query).scalars().all())
    if search:
        q = search.lower()
        deals = [d for d in deals if q in d.title.lower() or q in d.company_name.lower()
                 or q in d.industry.lower()]
    return deals


def deal_folders(session: Session, deal_id: int) -> list[DataRoomFolder]:
    return list(session.execute(
        select(DataRoomFolder).where(DataRoomFolder.deal_id == deal_id).order_by(DataRoomFolder.id)
    ).scalars().all())


def deal_documents(session: Session, deal_id: int) -> list[DataRoomDocument]:
    return list(session.execute(
        select(DataRoomDocument).where(DataRoomDocument.deal_id == deal_id).order_by(DataRoomDocument.id)
    ).scalars().all())


def deal_requests(session: Session, deal_id: int) -> list[DiligenceRequest]:
    return list(session.execute(
        select(DiligenceRequest).where(DiligenceRequest.deal_id == deal_id).order_by(DiligenceRequest.id)
    ).scalars().all())


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def data_room_health(session: Session, deal_id: int) -> dict:
    return metrics.compute_data_room_health(deal_folders(session, deal_id), deal_documents(session, deal_id))


def folder_statuses(session: Session, deal_id: int) -> list[dict]:
    return metrics.folder_breakdown(deal_folders(session, deal_id), deal_documents(session, deal_id))


def diligence_completeness(session: Session, deal_id: int) -> dict:
    return metrics.compute_diligence_completeness(deal_requests(session, deal_id))


def diligence_trackers(session: Session) -> list[dict]:
    """Progress rows for every active deal."""
    deals = list_deals(session, status="active")
    requests = session.execute(
        select(DiligenceRequest).where(DiligenceRequest.deal_id.in_([d.id for d in deals]))
    ).scalars().all()
    return metrics.tracker_progress(deals, requests)


def pipeline(session: Session) -> dict:
    stages = metrics.compute_pipeline_stages(list_deals(session))
    return {"stages": stages, **metrics.pipeline_totals(stages)}


def request_counts(session: Session, deal_id: int) -> dict[int, dict[str, int]]:
    """Document and comment counts for each of a deal's diligence requests."""
    request_ids = [r.id for r in deal_requests(session, deal_id)]
    if not request_ids:
        return {}

    def _grouped(model) -> dict[int, int]:
        rows = session.execute(
            select(model.request_id, func.count())
            .where(model.request_id.in_(request_ids))
            .group_by(model.request_id)
        ).all()
        return dict(rows)

    docs = _grouped(DiligenceDocument)
    comments = _grouped(DiligenceComment)
    return {
        rid: {"document_count": docs.get(rid, 0), "comment_count": comments.get(rid, 0)}
        for rid in request_ids
    }


# ---------------------------------------------------------------------------
# Data room operations
# ---------------------------------------------------------------------------


def suggest_folder(session: Session, deal_id: int, file_name: str) -> DataRoomFolder | None:
    """Classifier suggestion among the deal's applicable folders."""
    folders = [f for f in deal_folders(session, deal_id) if not f.is_not_applicable]
    folder_id = map_file_to_folder(file_name, folders)
    if folder_id is None:
        return None
    return next(f for f in folders if f.id == folder_id)


def _check_folder(session: Session, deal_id: int, folder_id: int) -> None:
    folder = get_entity(session, DataRoomFolder, folder_id)
    if folder is None or folder.deal_id != deal_id:
        raise ValueError(f"Folder {folder_id} does not belong to deal {deal_id}")


def add_document(
    session: Session, deal: Deal, file_name: str, *, folder_id: int | None = None,
    uploaded_by: str = "", auto_file: bool = True,
) -> DataRoomDocument:
    """Add a document to the data room (caller must commit).

    Without an explicit folder, and with *auto_file* on, the document is filed
    into the classifier's suggestion; it stays unfiled when there is none.
    """
    if folder_id is not None:
        _check_folder(session, deal.id, folder_id)
    elif auto_file:
        suggested = suggest_folder(session, deal.id, file_name)
        if suggested is not None:
            folder_id = suggested.id
            log.info("Auto-filed %s into folder %s for deal %s", file_name, suggested.name, deal.id)
    doc = DataRoomDocument(
        deal_id=deal.id, folder_id=folder_id, file_name=file_name, uploaded_by=uploaded_by,
    )
    session.add(doc)
    session.flush()
    log_deal_activity(
        session, deal.id, "document_uploaded", entity_type="document",
        entity_id=str(doc.id), user_id=uploaded_by, metadata={"file_name": file_name},
    )
    return doc


def update_document(session: Session, doc: DataRoomDocument, updates: dict[str, Any]) -> None:
    folder_id = updates.get("folder_id")
    if folder_id is not None and folder_id != doc.folder_id:
        _check_folder(session, doc.deal_id, folder_id)
        doc.folder_id = folder_id
        log_deal_activity(
            session, doc.deal_id, "document_moved", entity_type="document",
            entity_id=str(doc.id), metadata={"file_name": doc.file_name, "folder_id": folder_id},
        )
    status = updates.get("status")
    if status is not None and status != doc.status:
        doc.status = status
        if status in ("approved", "rejected"):
            log_deal_activity(
                session, doc.deal_id, f"document_{status}", entity_type="document",
                entity_id=str(doc.id), metadata={"file_name": doc.file_name},
            )


def update_folder(folder: DataRoomFolder, updates: dict[str, Any]) -> None:
    """Apply flag changes; not-applicable and required exclude each other."""
    apply_updates(folder, updates, FOLDER_FIELDS)
    if updates.get("is_not_applicable"):
        folder.is_required = False
    elif updates.get("is_required"):
        folder.is_not_applicable = False


# ---------------------------------------------------------------------------
# Diligence operations
# ---------------------------------------------------------------------------


def update_request(session: Session, req: DiligenceRequest, updates: dict[str, Any]) -> None:
    old_status = req.status
    apply_updates(req, updates, REQUEST_FIELDS)
    if req.status == old_status:
        log_deal_activity(session, req.deal_id, "request_updated", entity_type="request",
                          entity_id=str(req.id), metadata={"title": req.title})
    elif req.status == "completed":
        log_deal_activity(session, req.deal_id, "request_completed", entity_type="request",
                          entity_id=str(req.id), metadata={"title": req.title})
    else:
        log_deal_activity(session, req.deal_id, "request_status_changed", entity_type="request",
                          entity_id=str(req.id),
                          metadata={"title": req.title, "new_status": req.status})


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


def recent_activity(session: Session, limit: int = 20) -> list[dict]:
    events = session.execute(
        select(ActivityEvent).order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc()).limit(limit)
    ).scalars().all()
    return [activity_item(e) for e in events]


def record_event(session: Session, event_type: str, event_data: dict | None = None,
                 user_id: str = "") -> ActivityEvent:
    event = ActivityEvent(event_type=event_type, event_data_json=json.dumps(event_data or {}),
                          user_id=user_id)
    session.add(event)
    session.flush()
    return event


def deal_activities(session: Session, deal_id: int, limit: int = 50) -> list[dict]:
    acts = session.execute(
        select(DealActivity).where(DealActivity.deal_id == deal_id)
        .order_by(DealActivity.created_at.desc(), DealActivity.id.desc()).limit(limit)
    ).scalars().all()
    return [deal_activity_item(a) for a in acts]


def log_deal_activity(
    session: Session, deal_id: int, activity_type: str, *, entity_type: str = "",
    entity_id: str = "", user_id: str = "", metadata: dict | None = None,
) -> DealActivity:
    act = DealActivity(
        deal_id=deal_id, activity_type=activity_type, entity_type=entity_type,
        entity_id=entity_id, user_id=user_id, metadata_json=json.dumps(metadata or {}),
    )
    session.add(act)
    session.flush()
    return act


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def _setting_row(session: Session, key: str) -> Setting | None:
    return session.execute(select(Setting).where(Setting.key == key)).scalars().first()


def get_widget_settings(session: Session, settings: Settings) -> WidgetSettings:
    """Configured defaults overlaid with the persisted chat-widget setting."""
    row = _setting_row(session, WIDGET_SETTINGS_KEY)
    stored = json_parse(row.value_json, {}) if row else {}
    return WidgetSettings.model_validate({**settings.widget.model_dump(), **stored})


def update_widget_settings(session: Session, settings: Settings, patch: dict[str, Any]) -> WidgetSettings:
    """Merge the non-null fields of *patch* into the persisted widget settings.

    Returns the merged, validated settings (caller must commit). Raises
    pydantic's ValidationError if the merged record is invalid.
    """
    current = get_widget_settings(session, settings)
    changes = {k: v for k, v in patch.items() if v is not None}
    merged = WidgetSettings.model_validate({**current.model_dump(), **changes})
    row = _setting_row(session, WIDGET_SETTINGS_KEY)
    if row is None:
        row = Setting(key=WIDGET_SETTINGS_KEY)
        session.add(row)
    row.value_json = json.dumps(merged.model_dump(mode="json"))
    session.flush()
    log.info("Updated widget settings: %s", ", ".join(sorted(changes)) or "no changes")
    return merged
