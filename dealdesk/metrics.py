"""Derived metrics over already-fetched deal records.

Every function here is pure: it takes folders, documents, requests or deals
(ORM rows or anything exposing the same attributes) and returns plain dicts.
Nothing raises on empty or malformed input; every ratio guards a zero
denominator.
"""
from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from typing import Any

from dealdesk.utils import percentage

# ---------------------------------------------------------------------------
# Data room
# ---------------------------------------------------------------------------


def compute_data_room_health(folders: Iterable[Any], documents: Iterable[Any]) -> dict:
    """Completeness of a deal's data room.

    Not-applicable folders are ignored entirely. The percentage is measured
    against required folders when any exist, otherwise against all active
    folders.
    """
    documents = list(documents)
    active = [f for f in folders if not f.is_not_applicable]
    required = [f for f in active if f.is_required]
    filled_ids = {d.folder_id for d in documents if d.folder_id is not None}

    with_docs = sum(1 for f in active if f.id in filled_ids)
    required_with_docs = sum(1 for f in required if f.id in filled_ids)

    if required:
        health = percentage(required_with_docs, len(required))
    else:
        health = percentage(with_docs, len(active))

    return {
        "total_folders": len(active),
        "required_folders": len(required),
        "folders_with_documents": with_docs,
        "required_folders_with_documents": required_with_docs,
        "total_documents": len(documents),
        "health_percentage": health,
        "is_complete": health == 100,
    }


def folder_status(folder: Any, documents: Iterable[Any]) -> str:
    """Badge for one folder: ``na``, ``complete``, ``missing`` or ``optional``."""
    if folder.is_not_applicable:
        return "na"
    if any(d.folder_id == folder.id for d in documents):
        return "complete"
    return "missing" if folder.is_required else "optional"


def folder_breakdown(folders: Iterable[Any], documents: Iterable[Any]) -> list[dict]:
    documents = list(documents)
    counts: dict[Any, int] = {}
    for d in documents:
        if d.folder_id is not None:
            counts[d.folder_id] = counts.get(d.folder_id, 0) + 1
    return [
        {"id": f.id, "name": f.name, "document_count": counts.get(f.id, 0),
         "status": folder_status(f, documents)}
        for f in folders
    ]


# ---------------------------------------------------------------------------
# Diligence
# ---------------------------------------------------------------------------


def compute_diligence_completeness(requests: Iterable[Any]) -> dict:
    """Share of a deal's diligence requests that are completed.

    Requests in statuses other than open / in_progress / completed (such as
    ``blocked``) only count toward the total.
    """
    requests = list(requests)
    completed = sum(1 for r in requests if r.status == "completed")
    in_progress = sum(1 for r in requests if r.status == "in_progress")
    open_ = sum(1 for r in requests if r.status == "open")
    pct = percentage(completed, len(requests))
    return {
        "total_requests": len(requests),
        "completed_requests": completed,
        "in_progress_requests": in_progress,
        "open_requests": open_,
        "completion_percentage": pct,
        "is_complete": pct == 100,
    }


def tracker_progress(deals: Iterable[Any], requests: Iterable[Any]) -> list[dict]:
    """Per-deal diligence progress for the tracker dashboard."""
    by_deal: dict[Any, list[Any]] = {}
    for r in requests:
        by_deal.setdefault(r.deal_id, []).append(r)
    rows = []
    for deal in deals:
        stats = compute_diligence_completeness(by_deal.get(deal.id, []))
        rows.append({
            "deal_id": deal.id, "title": deal.title,
            "company_name": deal.company_name, "status": deal.status,
            "total_requests": stats["total_requests"],
            "completed_requests": stats["completed_requests"],
            "progress_percentage": stats["completion_percentage"],
        })
    return rows


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

PIPELINE_STAGES: tuple[tuple[str, str, str], ...] = (
    ("teaser", "Teaser", "#3B82F6"),
    ("discovery", "Discovery", "#F59E0B"),
    ("dd", "Due Diligence", "#EF4444"),
    ("closing", "Closing", "#22C55E"),
)

# TODO: no deal status reaches "closing"; needs a closing status on deals first.
STATUS_TO_STAGE = {
    "draft": "teaser",
    "active": "discovery",
    "archived": "dd",
}

_NON_NUMERIC_RE = re.compile(r"[^0-9.]")
_LEADING_NUMBER_RE = re.compile(r"\d+(?:\.\d*)?|\.\d+")


def parse_asking_price(text: str | None) -> float:
    """Asking price in currency units; the figure is read as millions.

    ``"$2.5M"`` -> 2_500_000.0. Anything without a leading number is 0.0.
    """
    digits = _NON_NUMERIC_RE.sub("", text or "")
    m = _LEADING_NUMBER_RE.match(digits)
    if not m:
        return 0.0
    return float(m.group()) * 1_000_000


def stage_for_status(status: str | None) -> str:
    return STATUS_TO_STAGE.get(status or "", "teaser")


def compute_pipeline_stages(deals: Iterable[Any]) -> list[dict]:
    """Deal count and asking-price total per pipeline stage, in fixed stage order."""
    buckets = {key: {"count": 0, "total_value": 0.0} for key, _, _ in PIPELINE_STAGES}
    for deal in deals:
        bucket = buckets[stage_for_status(deal.status)]
        bucket["count"] += 1
        bucket["total_value"] += parse_asking_price(deal.asking_price)
    return [
        {"stage": key, "display_name": display, "color": color, **buckets[key]}
        for key, display, color in PIPELINE_STAGES
    ]


def pipeline_totals(stages: Sequence[dict]) -> dict:
    return {
        "total_deals": sum(s["count"] for s in stages),
        "total_value": sum(s["total_value"] for s in stages),
    }
