"""Tests for the MCP tools, called directly against an in-memory database."""
from __future__ import annotations

import json
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dealdesk import mcp_server, provisioning, services
from dealdesk.config import Settings
from dealdesk.models import Base, Deal


@pytest.fixture()
def TestSession(tmp_path):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    settings = Settings(home=tmp_path, data_dir=tmp_path, database_path=tmp_path / "unused.db",
                        activity_feed_limit=2)
    with patch("dealdesk.mcp_server.get_session", factory), \
            patch("dealdesk.mcp_server.get_settings", lambda: settings):
        yield factory
    engine.dispose()


@pytest.fixture()
def deal_id(TestSession):
    session = TestSession()
    deal = Deal(title="Acme Plumbing", company_name="Acme Ltd", status="active",
                asking_price="$2.5M", industry="Trades")
    session.add(deal)
    session.flush()
    provisioning.setup_data_room(session, deal)
    provisioning.setup_diligence_tracker(session, deal)
    services.add_document(session, deal, "Q3_Financial_Statement.pdf")
    session.commit()
    deal_id = deal.id
    session.close()
    return deal_id


class TestDealTools:
    def test_list_deals(self, deal_id):
        deals = mcp_server.list_deals()
        assert [d["id"] for d in deals] == [deal_id]
        assert deals[0]["stage"] == "discovery"
        assert mcp_server.list_deals(status="draft") == []
        assert mcp_server.list_deals(search="acme")[0]["title"] == "Acme Plumbing"

    def test_get_deal(self, deal_id):
        result = mcp_server.get_deal(deal_id)
        assert result["title"] == "Acme Plumbing"
        assert result["data_room_health"]["health_percentage"] == 10
        assert result["diligence"]["total_requests"] == 58

    def test_get_missing_deal(self, TestSession):
        assert mcp_server.get_deal(404) == {"error": "Deal 404 not found"}


class TestMetricTools:
    def test_data_room_health(self, deal_id):
        result = mcp_server.data_room_health(deal_id)
        assert result["required_folders"] == 10
        assert len(result["folders"]) == 11
        statuses = {f["name"]: f["status"] for f in result["folders"]}
        assert statuses["Financials"] == "complete"

    def test_diligence_completeness(self, deal_id):
        result = mcp_server.diligence_completeness(deal_id)
        assert result["open_requests"] == 58
        assert result["completion_percentage"] == 0
        assert "error" in mcp_server.diligence_completeness(deal_id + 1)

    def test_pipeline_stages(self, deal_id):
        result = mcp_server.pipeline_stages()
        assert result["total_deals"] == 1
        assert result["stages"][1]["count"] == 1
        assert result["stages"][1]["total_value"] == pytest.approx(2_500_000)

    def test_suggest_folder(self, deal_id):
        result = mcp_server.suggest_folder(deal_id, "employee_handbook.pdf")
        assert result["folder_name"] == "Human Resources"
        assert mcp_server.suggest_folder(deal_id, "random.bin")["folder_id"] is None


class TestActivityTools:
    def test_deal_activity_log(self, deal_id):
        items = mcp_server.recent_activity(deal_id=deal_id)
        assert [i["activity_type"] for i in items] == ["document_uploaded"]
        assert items[0]["description"] == 'uploaded "Q3_Financial_Statement.pdf"'

    def test_platform_feed_uses_configured_limit(self, TestSession):
        session = TestSession()
        for event_type in ("login", "logout", "deal_created"):
            services.record_event(session, event_type)
        session.commit()
        session.close()
        assert [i["event_type"] for i in mcp_server.recent_activity()] == ["deal_created", "logout"]
        assert len(mcp_server.recent_activity(limit=10)) == 3

    def test_unknown_deal(self, TestSession):
        assert mcp_server.recent_activity(deal_id=7) == {"error": "Deal 7 not found"}


def test_overview_resource():
    overview = json.loads(mcp_server.dealdesk_overview())
    assert overview["pipeline_stages"] == ["Teaser", "Discovery", "Due Diligence", "Closing"]
    assert "data_room_health" in overview["metrics"]
