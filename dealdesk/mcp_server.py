from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager, contextmanager

from mcp.server.fastmcp import FastMCP

from dealdesk import services
from dealdesk.config import get_settings
from dealdesk.db import get_session, init_db
from dealdesk.metrics import PIPELINE_STAGES
from dealdesk.models import Deal

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def dealdesk_lifespan(server: FastMCP) -> AsyncIterator[None]:
    init_db()
    yield


mcp = FastMCP(
    "DealDesk",
    instructions=(
        "DealDesk tracks business-sale deals, their data rooms and due-diligence requests. "
        "Start with pipeline_stages() for an overview, then list_deals() to browse, "
        "then data_room_health(id) and diligence_completeness(id) for a single deal."
    ),
    lifespan=dealdesk_lifespan,
    json_response=True,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _session():
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def _get_deal_or_error(session, deal_id):
    deal = services.get_entity(session, Deal, deal_id)
    if not deal:
        return None, {"error": f"Deal {deal_id} not found"}
    return deal, None


# ---------------------------------------------------------------------------
# Resource
# ---------------------------------------------------------------------------


@mcp.resource("dealdesk://overview")
def dealdesk_overview() -> str:
    """Overview of DealDesk: data model, pipeline stages, and metric definitions."""
    return json.dumps({
        "system": "DealDesk - deal management for business brokers",
        "data_model": {
            "deal": "A business for sale. Status draft, active or archived.",
            "folder": "Data room folder. May be required or marked not applicable.",
            "document": "File in the data room, optionally filed into a folder.",
            "diligence_request": "Information request; open, in_progress, completed or blocked.",
        },
        "pipeline_stages": [display for _, display, _ in PIPELINE_STAGES],
        "metrics": {
            "data_room_health": (
                "Share of required folders holding at least one document; all applicable "
                "folders when none are required. Not-applicable folders are ignored."
            ),
            "diligence_completeness": "Share of diligence requests with status completed.",
        },
    }, indent=2)


# ---------------------------------------------------------------------------
# Tools: Deals
# ---------------------------------------------------------------------------


@mcp.tool()
def list_deals(status: str | None = None, search: str | None = None) -> list[dict]:
    """List deals.

    Args:
        status: Comma-separated filter from draft, active, archived.
        search: Free-text search across title, company name, and industry.
    """
    with _session() as session:
        return [services.deal_summary(d) for d in services.list_deals(session, status=status, search=search)]


@mcp.tool()
def get_deal(deal_id: int) -> dict:
    """Get a deal with its data room health and diligence completeness."""
    with _session() as session:
        deal, err = _get_deal_or_error(session, deal_id)
        if err:
            return err
        return {
            **services.deal_summary(deal),
            "data_room_health": services.data_room_health(session, deal_id),
            "diligence": services.diligence_completeness(session, deal_id),
        }


# ---------------------------------------------------------------------------
# Tools: Metrics
# ---------------------------------------------------------------------------


@mcp.tool()
def data_room_health(deal_id: int) -> dict:
    """Data room completeness for a deal, with a per-folder breakdown."""
    with _session() as session:
        _, err = _get_deal_or_error(session, deal_id)
        if err:
            return err
        return {
            **services.data_room_health(session, deal_id),
            "folders": services.folder_statuses(session, deal_id),
        }


@mcp.tool()
def diligence_completeness(deal_id: int) -> dict:
    """Completed / in-progress / open diligence request counts for a deal."""
    with _session() as session:
        _, err = _get_deal_or_error(session, deal_id)
        return err if err else services.diligence_completeness(session, deal_id)


@mcp.tool()
def pipeline_stages() -> dict:
    """Deal count and total asking price for each pipeline stage."""
    with _session() as session:
        return services.pipeline(session)


@mcp.tool()
def suggest_folder(deal_id: int, file_name: str) -> dict:
    """Suggest which of a deal's data room folders a file belongs in."""
    with _session() as session:
        _, err = _get_deal_or_error(session, deal_id)
        if err:
            return err
        folder = services.suggest_folder(session, deal_id, file_name)
        return {
            "file_name": file_name,
            "folder_id": folder.id if folder else None,
            "folder_name": folder.name if folder else None,
        }


# ---------------------------------------------------------------------------
# Tools: Activity
# ---------------------------------------------------------------------------


@mcp.tool()
def recent_activity(limit: int | None = None, deal_id: int | None = None) -> list[dict] | dict:
    """Latest activity. Platform audit events by default, or one deal's activity log."""
    settings = get_settings()
    with _session() as session:
        if deal_id is None:
            return services.recent_activity(session, max(1, min(limit or settings.activity_feed_limit, 500)))
        _, err = _get_deal_or_error(session, deal_id)
        if err:
            return err
        return services.deal_activities(session, deal_id, max(1, min(limit or settings.deal_activity_limit, 500)))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """Run the DealDesk MCP server over stdio."""
    logging.basicConfig(level=get_settings().log_level)
    mcp.run()


if __name__ == "__main__":
    main()
