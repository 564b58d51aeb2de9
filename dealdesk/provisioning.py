"""Standard data-room folders and diligence request templates for new deals."""
from __future__ import annotations

import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dealdesk.models import DataRoomFolder, Deal, DiligenceRequest

log = logging.getLogger(__name__)

DILIGENCE_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Corporate & Legal", (
        "Articles of Incorporation & Operating Agreements",
        "Business Licenses & Permits",
        "Client Contracts & Service Agreements",
        "Employment Agreements",
        "Insurance Policies (Liability E&O)",
        "Intellectual Property",
        "Legal or Dispute History",
        "NDAs & Confidentiality Agreements",
        "Office & Lease Agreements",
        "Vendor & Contractor Agreements",
    )),
    ("Financials", (
        "Historical Financial Statements (3-5 years)",
        "Monthly/Quarterly P&L",
        "Balance Sheets",
        "Cash Flow Statements",
        "Accounts Receivable Aging",
        "Accounts Payable Summary",
        "Tax Returns (3 years)",
        "Bank Statements (12 months)",
    )),
    ("Operations", (
        "Standard Operating Procedures",
        "Vendor Relationships & Contracts",
        "Tools & Software Licenses",
        "Process Documentation",
        "Quality Control Procedures",
        "Inventory Management",
    )),
    ("Client Base & Contracts", (
        "Top 10 Customer Contracts",
        "Customer Concentration Analysis",
        "Client Retention Metrics",
        "Revenue by Customer",
        "Recurring vs One-time Revenue Breakdown",
    )),
    ("Services & Deliverables", (
        "Service Catalog / Menu",
        "Pricing Structure",
        "Service Level Agreements",
        "Delivery Process Documentation",
    )),
    ("Marketing & Sales", (
        "Marketing Materials & Collateral",
        "Sales Process Documentation",
        "Lead Generation Sources",
        "Customer Acquisition Costs",
        "Sales Pipeline Overview",
    )),
    ("Revenue & Performance", (
        "Revenue by Service Line",
        "Gross Margin Analysis",
        "KPI Dashboard/Metrics",
        "Year-over-Year Growth Analysis",
        "Seasonality Analysis",
    )),
    ("Technology & Integrations", (
        "Technology Stack Overview",
        "Software Licenses & Subscriptions",
        "Integration Documentation",
        "Data Security Policies",
        "IT Infrastructure Details",
    )),
    ("Human Resources", (
        "Organization Chart",
        "Employee Roster & Compensation",
        "Benefits Summary",
        "Employee Handbook",
        "Key Employee Agreements",
        "Contractor Agreements",
    )),
    ("Miscellaneous", (
        "Debt Documents & Loan Agreements",
        "Pending Litigation",
        "Environmental Compliance",
        "Other Material Agreements",
    )),
)

# (name, index number, LOI-restricted)
DATA_ROOM_FOLDERS: tuple[tuple[str, str, bool], ...] = (
    ("Corporate & Legal", "1", False),
    ("Financials", "2", False),
    ("Operations", "3", False),
    ("Client Base & Contracts", "4", False),
    ("Services & Deliverables", "5", False),
    ("Marketing & Sales", "6", False),
    ("Revenue & Performance", "7", False),
    ("Technology & Integrations", "8", False),
    ("Human Resources", "9", False),
    ("Miscellaneous", "10", False),
    ("LOI-Restricted Access", "11", True),
)


def _count(session: Session, model, deal_id: int) -> int:
    return session.execute(
        select(func.count()).select_from(model).where(model.deal_id == deal_id)
    ).scalar_one()


def setup_data_room(session: Session, deal: Deal) -> dict:
    """Create the standard folder structure (caller must commit).

    Deals that already have folders are left untouched.
    """
    if _count(session, DataRoomFolder, deal.id):
        log.warning("Deal %s already has data room folders; skipping setup", deal.id)
        return {"folders_created": 0}
    for name, index, restricted in DATA_ROOM_FOLDERS:
        session.add(DataRoomFolder(
            deal_id=deal.id, name=name, index_number=index,
            is_required=not restricted, is_loi_restricted=restricted,
        ))
    session.flush()
    log.info("Created %d data room folders for deal %s", len(DATA_ROOM_FOLDERS), deal.id)
    return {"folders_created": len(DATA_ROOM_FOLDERS)}


def setup_diligence_tracker(session: Session, deal: Deal, created_by: str = "") -> dict:
    """Create one open request per standard diligence item (caller must commit).

    Deals that already have requests are left untouched.
    """
    if _count(session, DiligenceRequest, deal.id):
        log.warning("Deal %s already has diligence requests; skipping setup", deal.id)
        return {"requests_created": 0}
    created = 0
    for category, items in DILIGENCE_CATEGORIES:
        for title in items:
            session.add(DiligenceRequest(
                deal_id=deal.id, title=title, category=category,
                status="open", priority="none", created_by=created_by,
            ))
            created += 1
    session.flush()
    log.info("Created %d diligence requests for deal %s", created, deal.id)
    return {"requests_created": created}
