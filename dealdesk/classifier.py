"""Suggest a data-room folder for an uploaded file from its name."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any

# Order matters: the first rule whose keywords hit the filename decides.
KEYWORD_RULES: tuple[tuple[tuple[str, ...], tuple[str, ...]], ...] = (
    (
        ("p&l", "income", "financial", "revenue", "tax", "balance", "cashflow",
         "cash flow", "profit", "loss", "statement", "audit"),
        ("financial", "finance", "accounts"),
    ),
    (
        ("contract", "agreement", "nda", "legal", "articles", "incorporation",
         "bylaws", "constitution", "shareholder", "operating"),
        ("corporate", "legal", "compliance"),
    ),
    (
        ("operations", "sop", "process", "workflow", "procedure", "manual", "playbook"),
        ("operations", "operational"),
    ),
    (
        ("client", "customer", "subscription", "mrr", "arr", "retention", "churn"),
        ("client", "customer", "contracts"),
    ),
    (
        ("marketing", "sales", "pitch", "deck", "presentation", "funnel", "pipeline", "leads"),
        ("marketing", "sales", "commercial"),
    ),
    (
        ("employee", "hr", "payroll", "org chart", "team", "staff", "headcount", "benefits"),
        ("hr", "human resources", "team", "people"),
    ),
    (
        ("ip", "patent", "trademark", "copyright", "technology", "software", "source code"),
        ("intellectual property", "technology", "ip"),
    ),
    (
        ("asset", "inventory", "equipment", "property", "real estate"),
        ("assets", "property"),
    ),
)


def map_file_to_folder(file_name: str, folders: Sequence[Any]) -> Any | None:
    """Return the id of the folder a file most likely belongs in, or None.

    Only the first rule whose keywords appear in the lowercased filename is
    consulted; within it the first folder (in the given order) whose name
    contains one of the rule's patterns wins.
    """
    if not folders:
        return None
    name = file_name.lower()
    for keywords, patterns in KEYWORD_RULES:
        if not any(kw in name for kw in keywords):
            continue
        for folder in folders:
            folder_name = folder.name.lower()
            if any(p in folder_name for p in patterns):
                return folder.id
        return None
    return None
