from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Generator

from fastapi import Depends, FastAPI, HTTPException, Query, Response
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from dealdesk import exporter, metrics, provisioning, services
from dealdesk.config import Settings, get_settings
from dealdesk.db import get_session, init_db
from dealdesk.events import feed
from dealdesk.models import (
    DataRoomDocument,
    DataRoomFolder,
    Deal,
    DiligenceComment,
    DiligenceDocument,
    DiligenceRequest,
)
from dealdesk.schemas import (
    ActivityEventCreate,
    ActivityItemOut,
    ClassifyRequest,
    ClassifyResult,
    CommentCreate,
    DataRoomHealthOut,
    DealActivityCreate,
    DealActivityOut,
    DealCreate,
    DealOut,
    DealUpdate,
    DiligenceCompletenessOut,
    DocumentCreate,
    DocumentOut,
    DocumentUpdate,
    FolderCreate,
    FolderOut,
    FolderStatusOut,
    FolderUpdate,
    PipelineOut,
    RequestCountsOut,
    RequestCreate,
    RequestDocumentCreate,
    RequestOut,
    RequestUpdate,
    SetupRequest,
    SetupResult,
    TrackerOut,
    WidgetSettingsPatch,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="DealDesk",
    version="0.1.0",
    description=(
        "Deal management API for business brokers: deals, data rooms, "
        "due-diligence trackers, pipeline and activity feeds. "
        "All endpoints return JSON unless an export format is requested."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Deals", "description": "Create, browse, and update deals."},
        {"name": "Data Room", "description": "Folders, documents, and data-room health."},
        {"name": "Diligence", "description": "Due-diligence requests, completeness, and trackers."},
        {"name": "Pipeline", "description": "Deal counts and value per pipeline stage."},
        {"name": "Activity", "description": "Platform audit feed and per-deal activity log."},
        {"name": "Settings", "description": "Chat widget configuration."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def app_settings() -> Settings:
    return get_settings()


def _get_or_404(session: Session, model, entity_id: int, label: str = "Entity"):
    obj = services.get_entity(session, model, entity_id)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


def _commit(session: Session, topic: str, **payload) -> None:
    session.commit()
    feed.publish(topic, payload)


# ---------------------------------------------------------------------------
# Routes: Deals
# ---------------------------------------------------------------------------


class DealListResponse(BaseModel):
    items: list[DealOut]
    total: int


@app.get("/api/deals", response_model=DealListResponse,
         tags=["Deals"], summary="List deals with optional status filter and search")
async def list_deals(
    status: str | None = Query(None, description="Comma-separated: draft, active, archived"),
    search: str | None = Query(None, description="Free-text search across title, company, and industry"),
    session: Session = Depends(db_session),
):
    deals = services.list_deals(session, status=status, search=search)
    return {"items": [services.deal_summary(d) for d in deals], "total": len(deals)}


@app.post("/api/deals", response_model=DealOut, status_code=201,
          tags=["Deals"], summary="Create a deal")
async def create_deal(body: DealCreate, session: Session = Depends(db_session)):
    deal = Deal(**body.model_dump())
    session.add(deal)
    session.flush()
    services.log_deal_activity(session, deal.id, "deal_created", entity_type="deal",
                               entity_id=str(deal.id), user_id=body.created_by)
    services.record_event(session, "deal_created", {"deal_id": deal.id, "title": deal.title},
                          user_id=body.created_by)
    _commit(session, "deals", deal_id=deal.id, action="created")
    session.refresh(deal)
    return services.deal_summary(deal)


@app.get("/api/deals/{deal_id}", response_model=DealOut,
         tags=["Deals"], summary="Get a deal")
async def get_deal(deal_id: int, session: Session = Depends(db_session)):
    return services.deal_summary(_get_or_404(session, Deal, deal_id, "Deal"))


@app.put("/api/deals/{deal_id}", response_model=DealOut,
         tags=["Deals"], summary="Update deal fields (partial update, null fields ignored)")
async def update_deal(deal_id: int, body: DealUpdate, session: Session = Depends(db_session)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    old_stage = metrics.stage_for_status(deal.status)
    services.apply_updates(deal, body.model_dump(), services.DEAL_FIELDS)
    new_stage = metrics.stage_for_status(deal.status)
    if new_stage != old_stage:
        services.log_deal_activity(session, deal.id, "deal_stage_changed", entity_type="deal",
                                   entity_id=str(deal.id), metadata={"new_stage": new_stage})
    else:
        services.log_deal_activity(session, deal.id, "deal_updated", entity_type="deal",
                                   entity_id=str(deal.id))
    _commit(session, "deals", deal_id=deal.id, action="updated")
    return services.deal_summary(deal)


@app.delete("/api/deals/{deal_id}", tags=["Deals"],
            summary="Delete a deal with its data room, requests, and activity")
async def delete_deal(deal_id: int, session: Session = Depends(db_session)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    session.delete(deal)
    _commit(session, "deals", deal_id=deal_id, action="deleted")
    return {"ok": True}


@app.post("/api/deals/{deal_id}/setup", response_model=SetupResult,
          tags=["Deals"], summary="Create the standard data room folders and diligence requests")
async def setup_deal(deal_id: int, body: SetupRequest | None = None,
                     session: Session = Depends(db_session)):
    body = body or SetupRequest()
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    result = {"folders_created": 0, "requests_created": 0}
    if body.data_room:
        result.update(provisioning.setup_data_room(session, deal))
    if body.due_diligence:
        result.update(provisioning.setup_diligence_tracker(session, deal, created_by=body.created_by))
    session.commit()
    if result["folders_created"]:
        feed.publish("data_room_folders", {"deal_id": deal_id, "action": "created"})
    if result["requests_created"]:
        feed.publish("diligence_requests", {"deal_id": deal_id, "action": "created"})
    return result


# ---------------------------------------------------------------------------
# Routes: Data Room
# ---------------------------------------------------------------------------


@app.get("/api/deals/{deal_id}/folders", response_model=list[FolderOut],
         tags=["Data Room"], summary="List a deal's data room folders")
async def list_folders(deal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    return [services.folder_summary(f) for f in services.deal_folders(session, deal_id)]


@app.post("/api/deals/{deal_id}/folders", response_model=FolderOut, status_code=201,
          tags=["Data Room"], summary="Add a folder to a deal's data room")
async def create_folder(deal_id: int, body: FolderCreate, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    folder = DataRoomFolder(deal_id=deal_id, **body.model_dump())
    session.add(folder)
    _commit(session, "data_room_folders", deal_id=deal_id, action="created")
    session.refresh(folder)
    return services.folder_summary(folder)


@app.put("/api/folders/{folder_id}", response_model=FolderOut,
         tags=["Data Room"], summary="Update a folder (required / not-applicable flags exclude each other)")
async def update_folder(folder_id: int, body: FolderUpdate, session: Session = Depends(db_session)):
    folder = _get_or_404(session, DataRoomFolder, folder_id, "Folder")
    services.update_folder(folder, body.model_dump())
    _commit(session, "data_room_folders", deal_id=folder.deal_id, folder_id=folder.id, action="updated")
    return services.folder_summary(folder)


@app.get("/api/deals/{deal_id}/documents", response_model=list[DocumentOut],
         tags=["Data Room"], summary="List a deal's data room documents")
async def list_documents(deal_id: int, folder_id: int | None = Query(None),
                         session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    docs = services.deal_documents(session, deal_id)
    if folder_id is not None:
        docs = [d for d in docs if d.folder_id == folder_id]
    return [services.document_summary(d) for d in docs]


@app.post("/api/deals/{deal_id}/documents", response_model=DocumentOut, status_code=201,
          tags=["Data Room"], summary="Register an uploaded document (auto-filed when no folder is given)")
async def create_document(deal_id: int, body: DocumentCreate, session: Session = Depends(db_session),
                          settings: Settings = Depends(app_settings)):
    deal = _get_or_404(session, Deal, deal_id, "Deal")
    try:
        doc = services.add_document(
            session, deal, body.file_name, folder_id=body.folder_id,
            uploaded_by=body.uploaded_by, auto_file=settings.auto_file_uploads,
        )
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    services.record_event(session, "document_uploaded", {"deal_id": deal_id, "file_name": body.file_name},
                          user_id=body.uploaded_by)
    _commit(session, "data_room_documents", deal_id=deal_id, document_id=doc.id, action="created")
    session.refresh(doc)
    return services.document_summary(doc)


@app.put("/api/documents/{document_id}", response_model=DocumentOut,
         tags=["Data Room"], summary="Change a document's review status or folder")
async def update_document(document_id: int, body: DocumentUpdate, session: Session = Depends(db_session)):
    doc = _get_or_404(session, DataRoomDocument, document_id, "Document")
    try:
        services.update_document(session, doc, body.model_dump())
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    _commit(session, "data_room_documents", deal_id=doc.deal_id, document_id=doc.id, action="updated")
    return services.document_summary(doc)


@app.get("/api/deals/{deal_id}/data-room/health", response_model=DataRoomHealthOut,
         tags=["Data Room"], summary="Data room completeness")
async def data_room_health(deal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    return services.data_room_health(session, deal_id)


@app.get("/api/deals/{deal_id}/data-room/folders/status", response_model=list[FolderStatusOut],
         tags=["Data Room"], summary="Per-folder document count and completion badge")
async def data_room_folder_status(deal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    return services.folder_statuses(session, deal_id)


@app.post("/api/deals/{deal_id}/classify", response_model=ClassifyResult,
          tags=["Data Room"], summary="Suggest a folder for a file name")
async def classify_file(deal_id: int, body: ClassifyRequest, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    folder = services.suggest_folder(session, deal_id, body.file_name)
    if folder is None:
        return {"folder_id": None, "folder_name": None}
    return {"folder_id": folder.id, "folder_name": folder.name}


# ---------------------------------------------------------------------------
# Routes: Diligence (trackers before parameterized routes)
# ---------------------------------------------------------------------------


@app.get("/api/diligence/trackers", response_model=list[TrackerOut],
         tags=["Diligence"], summary="Diligence progress for every active deal")
async def list_trackers(session: Session = Depends(db_session)):
    return services.diligence_trackers(session)


@app.get("/api/diligence/trackers/export", tags=["Diligence"],
         summary="Download tracker progress as CSV or XLSX")
async def export_trackers(fmt: str = Query("csv", alias="format", description="csv or xlsx"),
                          session: Session = Depends(db_session)):
    fmt = fmt.lower()
    try:
        content, media_type = exporter.export_trackers(services.diligence_trackers(session), fmt)
    except ValueError as exc:
        raise HTTPException(400, str(exc)) from exc
    filename = exporter.export_filename(fmt)
    return Response(content=content, media_type=media_type,
                    headers={"Content-Disposition": f'attachment; filename="{filename}"'})


@app.get("/api/deals/{deal_id}/diligence", response_model=list[RequestOut],
         tags=["Diligence"], summary="List a deal's diligence requests")
async def list_requests(deal_id: int, status: str | None = Query(None),
                        session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    reqs = services.deal_requests(session, deal_id)
    if status:
        wanted = {s.strip().lower() for s in status.split(",")}
        reqs = [r for r in reqs if r.status in wanted]
    return [services.request_summary(r) for r in reqs]


@app.post("/api/deals/{deal_id}/diligence", response_model=RequestOut, status_code=201,
          tags=["Diligence"], summary="Create a diligence request")
async def create_request(deal_id: int, body: RequestCreate, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    req = DiligenceRequest(deal_id=deal_id, **body.model_dump())
    session.add(req)
    session.flush()
    services.log_deal_activity(session, deal_id, "request_created", entity_type="request",
                               entity_id=str(req.id), user_id=body.created_by,
                               metadata={"title": req.title})
    _commit(session, "diligence_requests", deal_id=deal_id, request_id=req.id, action="created")
    session.refresh(req)
    return services.request_summary(req)


@app.put("/api/diligence/{request_id}", response_model=RequestOut,
         tags=["Diligence"], summary="Update a diligence request (partial update)")
async def update_request(request_id: int, body: RequestUpdate, session: Session = Depends(db_session)):
    req = _get_or_404(session, DiligenceRequest, request_id, "Request")
    services.update_request(session, req, body.model_dump())
    _commit(session, "diligence_requests", deal_id=req.deal_id, request_id=req.id, action="updated")
    return services.request_summary(req)


@app.post("/api/diligence/{request_id}/comments", status_code=201,
          tags=["Diligence"], summary="Comment on a diligence request")
async def add_comment(request_id: int, body: CommentCreate, session: Session = Depends(db_session)):
    req = _get_or_404(session, DiligenceRequest, request_id, "Request")
    comment = DiligenceComment(request_id=req.id, author=body.author, body=body.body)
    session.add(comment)
    session.flush()
    services.log_deal_activity(session, req.deal_id, "comment_added", entity_type="request",
                               entity_id=str(req.id), user_id=body.author)
    _commit(session, "diligence_requests", deal_id=req.deal_id, request_id=req.id, action="commented")
    return {"id": comment.id, "request_id": req.id}


@app.post("/api/diligence/{request_id}/documents", status_code=201,
          tags=["Diligence"], summary="Attach a document to a diligence request")
async def add_request_document(request_id: int, body: RequestDocumentCreate,
                               session: Session = Depends(db_session)):
    req = _get_or_404(session, DiligenceRequest, request_id, "Request")
    doc = DiligenceDocument(request_id=req.id, file_name=body.file_name)
    session.add(doc)
    session.flush()
    _commit(session, "diligence_requests", deal_id=req.deal_id, request_id=req.id, action="document_added")
    return {"id": doc.id, "request_id": req.id}


@app.get("/api/deals/{deal_id}/diligence/completeness", response_model=DiligenceCompletenessOut,
         tags=["Diligence"], summary="Diligence completion for a deal")
async def diligence_completeness(deal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    return services.diligence_completeness(session, deal_id)


@app.get("/api/deals/{deal_id}/diligence/counts", response_model=dict[int, RequestCountsOut],
         tags=["Diligence"], summary="Document and comment counts per diligence request")
async def diligence_counts(deal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    return services.request_counts(session, deal_id)


# ---------------------------------------------------------------------------
# Routes: Pipeline
# ---------------------------------------------------------------------------


@app.get("/api/pipeline", response_model=PipelineOut,
         tags=["Pipeline"], summary="Deal count and asking-price total per stage")
async def get_pipeline(session: Session = Depends(db_session)):
    return services.pipeline(session)


# ---------------------------------------------------------------------------
# Routes: Activity
# ---------------------------------------------------------------------------


@app.get("/api/activity", response_model=list[ActivityItemOut],
         tags=["Activity"], summary="Latest platform audit events")
async def list_activity(limit: int | None = Query(None, ge=1, le=500),
                        session: Session = Depends(db_session),
                        settings: Settings = Depends(app_settings)):
    return services.recent_activity(session, limit or settings.activity_feed_limit)


@app.post("/api/activity", response_model=ActivityItemOut, status_code=201,
          tags=["Activity"], summary="Record a platform audit event")
async def create_activity(body: ActivityEventCreate, session: Session = Depends(db_session)):
    event = services.record_event(session, body.event_type, body.event_data, user_id=body.user_id)
    session.commit()
    session.refresh(event)
    return services.activity_item(event)


@app.get("/api/deals/{deal_id}/activities", response_model=list[DealActivityOut],
         tags=["Activity"], summary="Activity log for a deal, newest first")
async def list_deal_activities(deal_id: int, limit: int | None = Query(None, ge=1, le=500),
                               session: Session = Depends(db_session),
                               settings: Settings = Depends(app_settings)):
    _get_or_404(session, Deal, deal_id, "Deal")
    return services.deal_activities(session, deal_id, limit or settings.deal_activity_limit)


@app.post("/api/deals/{deal_id}/activities", response_model=DealActivityOut, status_code=201,
          tags=["Activity"], summary="Log a deal activity")
async def create_deal_activity(deal_id: int, body: DealActivityCreate,
                               session: Session = Depends(db_session)):
    _get_or_404(session, Deal, deal_id, "Deal")
    act = services.log_deal_activity(
        session, deal_id, body.activity_type, entity_type=body.entity_type,
        entity_id=body.entity_id, user_id=body.user_id, metadata=body.metadata,
    )
    _commit(session, "deal_activities", deal_id=deal_id, activity_id=act.id, action="created")
    session.refresh(act)
    return services.deal_activity_item(act)


# ---------------------------------------------------------------------------
# Routes: Settings
# ---------------------------------------------------------------------------


@app.get("/api/settings/widget", tags=["Settings"], summary="Current chat widget settings")
async def get_widget_settings(session: Session = Depends(db_session),
                              settings: Settings = Depends(app_settings)):
    return services.get_widget_settings(session, settings).model_dump(mode="json")


@app.put("/api/settings/widget", tags=["Settings"],
         summary="Merge a partial update into the chat widget settings")
async def update_widget_settings(body: WidgetSettingsPatch, session: Session = Depends(db_session),
                                 settings: Settings = Depends(app_settings)):
    try:
        merged = services.update_widget_settings(session, settings, body.model_dump())
    except ValidationError as exc:
        raise HTTPException(422, str(exc)) from exc
    _commit(session, "settings", key=services.WIDGET_SETTINGS_KEY, action="updated")
    return merged.model_dump(mode="json")


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("dealdesk.app:app", host="127.0.0.1", port=8001, reload=True)


if __name__ == "__main__":
    main()
