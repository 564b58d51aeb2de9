"""Tests for provisioning and the service layer against an in-memory database."""
from __future__ import annotations

import json

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dealdesk import provisioning, services
from dealdesk.config import Settings, WidgetSettings
from dealdesk.models import (
    Base,
    DataRoomFolder,
    Deal,
    DealActivity,
    DiligenceComment,
    DiligenceDocument,
    DiligenceRequest,
    Setting,
)


@pytest.fixture()
def session():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    TestSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    s = TestSession()
    yield s
    s.close()
    engine.dispose()


@pytest.fixture()
def deal(session):
    d = Deal(title="Acme Plumbing", company_name="Acme Ltd", status="active",
             asking_price="$2.5M", industry="Trades")
    session.add(d)
    session.commit()
    return d


@pytest.fixture()
def provisioned(session, deal):
    provisioning.setup_data_room(session, deal)
    provisioning.setup_diligence_tracker(session, deal, created_by="broker-1")
    session.commit()
    return deal


@pytest.fixture()
def settings(tmp_path):
    return Settings(home=tmp_path, data_dir=tmp_path / "data", database_path=tmp_path / "data" / "t.db")


def _activity_types(session, deal_id):
    return [a.activity_type for a in session.execute(
        select(DealActivity).where(DealActivity.deal_id == deal_id).order_by(DealActivity.id)
    ).scalars()]


# =========================================================================
# Provisioning
# =========================================================================

class TestProvisioning:
    def test_template_sizes(self):
        assert len(provisioning.DATA_ROOM_FOLDERS) == 11
        assert sum(len(items) for _, items in provisioning.DILIGENCE_CATEGORIES) == 58
        assert len(provisioning.DILIGENCE_CATEGORIES) == 10

    def test_setup_data_room(self, session, deal):
        result = provisioning.setup_data_room(session, deal)
        session.commit()
        assert result == {"folders_created": 11}
        folders = services.deal_folders(session, deal.id)
        assert len(folders) == 11
        assert [f.index_number for f in folders] == [str(i) for i in range(1, 12)]
        restricted = [f for f in folders if f.is_loi_restricted]
        assert [f.name for f in restricted] == ["LOI-Restricted Access"]
        assert restricted[0].is_required is False
        assert all(f.is_required for f in folders if not f.is_loi_restricted)

    def test_setup_data_room_is_idempotent(self, session, deal):
        provisioning.setup_data_room(session, deal)
        session.commit()
        assert provisioning.setup_data_room(session, deal) == {"folders_created": 0}
        assert len(services.deal_folders(session, deal.id)) == 11

    def test_setup_diligence_tracker(self, session, deal):
        result = provisioning.setup_diligence_tracker(session, deal, created_by="broker-1")
        session.commit()
        assert result == {"requests_created": 58}
        reqs = services.deal_requests(session, deal.id)
        assert all(r.status == "open" and r.priority == "none" for r in reqs)
        assert all(r.created_by == "broker-1" for r in reqs)
        assert reqs[0].category == "Corporate & Legal"
        assert reqs[-1].category == "Miscellaneous"
        assert provisioning.setup_diligence_tracker(session, deal) == {"requests_created": 0}

    def test_fresh_deal_metrics(self, session, provisioned):
        health = services.data_room_health(session, provisioned.id)
        assert health["total_folders"] == 11
        assert health["required_folders"] == 10
        assert health["health_percentage"] == 0
        completeness = services.diligence_completeness(session, provisioned.id)
        assert completeness["total_requests"] == 58
        assert completeness["open_requests"] == 58
        assert completeness["completion_percentage"] == 0


# =========================================================================
# Deals
# =========================================================================

class TestListDeals:
    @pytest.fixture()
    def deals(self, session):
        session.add_all([
            Deal(title="Alpha", company_name="Alpha Co", status="draft", industry="SaaS"),
            Deal(title="Beta", company_name="Beta Co", status="active", industry="Retail"),
            Deal(title="Gamma", company_name="Gamma Co", status="archived", industry="saas tools"),
        ])
        session.commit()

    def test_all(self, session, deals):
        assert [d.title for d in services.list_deals(session)] == ["Alpha", "Beta", "Gamma"]

    def test_status_filter(self, session, deals):
        assert [d.title for d in services.list_deals(session, status="draft, archived")] == ["Alpha", "Gamma"]

    def test_search_is_case_insensitive(self, session, deals):
        assert [d.title for d in services.list_deals(session, search="SAAS")] == ["Alpha", "Gamma"]
        assert [d.title for d in services.list_deals(session, search="beta co")] == ["Beta"]

    def test_summary_includes_stage(self, session, deals):
        summaries = [services.deal_summary(d) for d in services.list_deals(session)]
        assert [s["stage"] for s in summaries] == ["teaser", "discovery", "dd"]

    def test_pipeline(self, session, deals):
        result = services.pipeline(session)
        assert result["total_deals"] == 3
        assert [s["count"] for s in result["stages"]] == [1, 1, 1, 0]


# =========================================================================
# Data room
# =========================================================================

class TestDataRoom:
    def test_add_document_auto_files(self, session, provisioned):
        doc = services.add_document(session, provisioned, "Q3_Financial_Statement.pdf", uploaded_by="u1")
        session.commit()
        folder = session.get(DataRoomFolder, doc.folder_id)
        assert folder.name == "Financials"
        assert doc.status == "pending_review"
        assert _activity_types(session, provisioned.id) == ["document_uploaded"]

    def test_add_document_without_match_stays_unfiled(self, session, provisioned):
        doc = services.add_document(session, provisioned, "holiday_photo.jpg")
        assert doc.folder_id is None

    def test_add_document_auto_file_disabled(self, session, provisioned):
        doc = services.add_document(session, provisioned, "Q3_Financial_Statement.pdf", auto_file=False)
        assert doc.folder_id is None

    def test_add_document_explicit_folder(self, session, provisioned):
        hr = next(f for f in services.deal_folders(session, provisioned.id) if f.name == "Human Resources")
        doc = services.add_document(session, provisioned, "Q3_Financial_Statement.pdf", folder_id=hr.id)
        assert doc.folder_id == hr.id

    def test_add_document_rejects_foreign_folder(self, session, provisioned):
        other = Deal(title="Other")
        session.add(other)
        session.flush()
        foreign = DataRoomFolder(deal_id=other.id, name="Financials")
        session.add(foreign)
        session.flush()
        with pytest.raises(ValueError, match="does not belong"):
            services.add_document(session, provisioned, "x.pdf", folder_id=foreign.id)

    def test_suggest_folder_skips_not_applicable(self, session, provisioned):
        financials = next(f for f in services.deal_folders(session, provisioned.id) if f.name == "Financials")
        services.update_folder(financials, {"is_not_applicable": True})
        session.commit()
        assert services.suggest_folder(session, provisioned.id, "tax_return.pdf") is None

    def test_health_after_upload(self, session, provisioned):
        services.add_document(session, provisioned, "Q3_Financial_Statement.pdf")
        services.add_document(session, provisioned, "payroll_2024.xlsx")
        session.commit()
        health = services.data_room_health(session, provisioned.id)
        assert health["required_folders_with_documents"] == 2
        assert health["health_percentage"] == 20
        statuses = {s["name"]: s["status"] for s in services.folder_statuses(session, provisioned.id)}
        assert statuses["Financials"] == "complete"
        assert statuses["Operations"] == "missing"
        assert statuses["LOI-Restricted Access"] == "optional"

    def test_update_folder_flags_exclude_each_other(self, session, provisioned):
        folder = services.deal_folders(session, provisioned.id)[0]
        services.update_folder(folder, {"is_not_applicable": True})
        assert folder.is_not_applicable is True
        assert folder.is_required is False
        services.update_folder(folder, {"is_required": True})
        assert folder.is_required is True
        assert folder.is_not_applicable is False

    def test_update_folder_ignores_none(self, session, provisioned):
        folder = services.deal_folders(session, provisioned.id)[0]
        services.update_folder(folder, {"name": None, "description": "Legal docs"})
        assert folder.name == "Corporate & Legal"
        assert folder.description == "Legal docs"

    def test_move_document_logs_activity(self, session, provisioned):
        doc = services.add_document(session, provisioned, "holiday.jpg")
        assert doc.folder_id is None
        folder = services.deal_folders(session, provisioned.id)[2]
        services.update_document(session, doc, {"folder_id": folder.id})
        services.update_document(session, doc, {"folder_id": folder.id})
        session.commit()
        assert doc.folder_id == folder.id
        assert _activity_types(session, provisioned.id) == ["document_uploaded", "document_moved"]
        latest = services.deal_activities(session, provisioned.id)[0]
        assert latest["metadata"] == {"file_name": "holiday.jpg", "folder_id": folder.id}
        assert latest["description"] == 'moved "holiday.jpg"'

    def test_update_document_status_logs_activity(self, session, provisioned):
        doc = services.add_document(session, provisioned, "contract.pdf")
        services.update_document(session, doc, {"status": "rejected"})
        services.update_document(session, doc, {"status": "rejected"})
        services.update_document(session, doc, {"status": "approved"})
        session.commit()
        assert _activity_types(session, provisioned.id) == [
            "document_uploaded", "document_rejected", "document_approved",
        ]


# =========================================================================
# Diligence
# =========================================================================

class TestDiligence:
    def test_update_request_activity_types(self, session, provisioned):
        req = services.deal_requests(session, provisioned.id)[0]
        services.update_request(session, req, {"priority": "high"})
        services.update_request(session, req, {"status": "in_progress"})
        services.update_request(session, req, {"status": "completed"})
        session.commit()
        assert _activity_types(session, provisioned.id) == [
            "request_updated", "request_status_changed", "request_completed",
        ]
        assert services.diligence_completeness(session, provisioned.id)["completed_requests"] == 1

    def test_request_counts(self, session, provisioned):
        first, second = services.deal_requests(session, provisioned.id)[:2]
        session.add_all([
            DiligenceDocument(request_id=first.id, file_name="a.pdf"),
            DiligenceDocument(request_id=first.id, file_name="b.pdf"),
            DiligenceComment(request_id=first.id, body="see attached"),
            DiligenceComment(request_id=second.id, body="pending"),
        ])
        session.commit()
        counts = services.request_counts(session, provisioned.id)
        assert len(counts) == 58
        assert counts[first.id] == {"document_count": 2, "comment_count": 1}
        assert counts[second.id] == {"document_count": 0, "comment_count": 1}

    def test_request_counts_without_requests(self, session, deal):
        assert services.request_counts(session, deal.id) == {}

    def test_trackers_only_active_deals(self, session, provisioned):
        draft = Deal(title="Draft deal", status="draft")
        session.add(draft)
        session.flush()
        session.add(DiligenceRequest(deal_id=draft.id, title="x", status="completed"))
        req = services.deal_requests(session, provisioned.id)[0]
        req.status = "completed"
        session.commit()
        rows = services.diligence_trackers(session)
        assert [r["deal_id"] for r in rows] == [provisioned.id]
        assert rows[0]["total_requests"] == 58
        assert rows[0]["completed_requests"] == 1
        assert rows[0]["progress_percentage"] == 2


# =========================================================================
# Activity
# =========================================================================

class TestActivity:
    def test_recent_activity_newest_first(self, session):
        for event_type in ("login", "deal_created", "custom_thing"):
            services.record_event(session, event_type, {"k": event_type}, user_id="u1")
        session.commit()
        items = services.recent_activity(session, limit=2)
        assert [i["event_type"] for i in items] == ["custom_thing", "deal_created"]
        assert items[0]["description"] == "custom thing activity"
        assert items[0]["event_data"] == {"k": "custom_thing"}
        assert items[1]["icon"] == "Handshake"

    def test_deal_activities(self, session, deal):
        services.log_deal_activity(session, deal.id, "nda_signed", user_id="buyer-7")
        services.log_deal_activity(session, deal.id, "document_uploaded", metadata={"file_name": "cim.pdf"})
        session.commit()
        items = services.deal_activities(session, deal.id)
        assert [i["activity_type"] for i in items] == ["document_uploaded", "nda_signed"]
        assert items[0]["description"] == 'uploaded "cim.pdf"'
        assert items[0]["metadata"] == {"file_name": "cim.pdf"}
        assert items[1]["color"] == "text-green-500"

    def test_deal_activities_limit(self, session, deal):
        for _ in range(5):
            services.log_deal_activity(session, deal.id, "deal_updated")
        session.commit()
        assert len(services.deal_activities(session, deal.id, limit=3)) == 3

    def test_bad_metadata_json(self, session, deal):
        act = services.log_deal_activity(session, deal.id, "document_uploaded")
        act.metadata_json = "not json"
        session.commit()
        item = services.deal_activities(session, deal.id)[0]
        assert item["metadata"] == {}
        assert item["description"] == 'uploaded "a document"'


# =========================================================================
# Widget settings
# =========================================================================

class TestWidgetSettings:
    def test_defaults_without_stored_row(self, session, settings):
        widget = services.get_widget_settings(session, settings)
        assert widget == WidgetSettings()
        assert widget.primary_color == "#F28C38"

    def test_configured_defaults(self, session, settings):
        custom = settings.model_copy(update={"widget": WidgetSettings(widget_title="Talk to us")})
        assert services.get_widget_settings(session, custom).widget_title == "Talk to us"

    def test_update_merges_and_persists(self, session, settings):
        services.update_widget_settings(session, settings, {"primary_color": "#000000", "widget_size": None})
        session.commit()
        merged = services.update_widget_settings(session, settings, {"auto_open_enabled": True})
        session.commit()
        assert merged.primary_color == "#000000"
        assert merged.auto_open_enabled is True
        assert merged.widget_size == "medium"
        rows = session.execute(select(func.count()).select_from(Setting)).scalar_one()
        assert rows == 1
        stored = json.loads(session.execute(select(Setting.value_json)).scalar_one())
        assert stored["primary_color"] == "#000000"
        assert stored["info_request_options"] == list(WidgetSettings().info_request_options)

    def test_update_rejects_invalid_value(self, session, settings):
        with pytest.raises(ValidationError):
            services.update_widget_settings(session, settings, {"widget_size": "huge"})
        assert session.execute(select(Setting)).scalars().first() is None
