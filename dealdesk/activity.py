"""Display text, icon and color for activity feed entries.

Two feeds exist: the platform audit log (``describe_activity``) and the
per-deal activity log (``describe_deal_activity`` and friends). Unknown types
never raise; they fall back to a generic rendering.
"""
from __future__ import annotations

from typing import Any

# ---------------------------------------------------------------------------
# Platform audit log
# ---------------------------------------------------------------------------

EVENT_DESCRIPTIONS = {
    "login": "User signed in to the platform",
    "logout": "User signed out",
    "nda_accepted": "NDA accepted for company",
    "company_created": "New company listing created",
    "deal_created": "New deal created",
    "document_uploaded": "Document uploaded to deal room",
    "access_granted": "Access granted to restricted content",
}

EVENT_ICONS = {
    "login": "LogIn",
    "logout": "LogOut",
    "nda_accepted": "FileCheck",
    "company_created": "Building2",
    "deal_created": "Handshake",
    "document_uploaded": "Upload",
    "access_granted": "Unlock",
    "default": "Activity",
}

EVENT_COLORS = {
    "login": "#22C55E",
    "logout": "#6B7280",
    "nda_accepted": "#D4AF37",
    "company_created": "#3B82F6",
    "deal_created": "#F28C38",
    "document_uploaded": "#8B5CF6",
    "access_granted": "#22C55E",
    "default": "#F4E4BC",
}


def describe_activity(event_type: str) -> dict:
    """Return ``{description, icon, color}`` for an audit event type."""
    description = EVENT_DESCRIPTIONS.get(event_type)
    if description is None:
        description = f"{event_type.replace('_', ' ')} activity"
    return {
        "description": description,
        "icon": EVENT_ICONS.get(event_type, EVENT_ICONS["default"]),
        "color": EVENT_COLORS.get(event_type, EVENT_COLORS["default"]),
    }


# ---------------------------------------------------------------------------
# Per-deal activity log
# ---------------------------------------------------------------------------

DEAL_ACTIVITY_TYPES = (
    "document_uploaded", "document_deleted", "document_moved", "document_approved",
    "document_rejected", "document_downloaded", "request_created", "request_updated",
    "request_status_changed", "request_completed", "comment_added", "team_member_added",
    "team_member_removed", "permission_changed", "nda_signed", "deal_stage_changed",
    "deal_created", "deal_updated",
)

_DEAL_ICONS = {
    "document_uploaded": "FileUp", "document_downloaded": "FileUp",
    "document_deleted": "Trash2",
    "document_moved": "FolderInput",
    "document_approved": "CheckCircle",
    "document_rejected": "XCircle",
    "request_created": "ClipboardList", "request_updated": "ClipboardList",
    "request_status_changed": "CheckSquare", "request_completed": "CheckSquare",
    "comment_added": "MessageSquare",
    "team_member_added": "Users", "team_member_removed": "Users",
    "permission_changed": "Shield",
    "nda_signed": "FileCheck",
    "deal_stage_changed": "Target",
    "deal_created": "Briefcase", "deal_updated": "Briefcase",
}

_DEAL_COLORS = {
    "document_approved": "text-green-500",
    "request_completed": "text-green-500",
    "nda_signed": "text-green-500",
    "document_rejected": "text-red-500",
    "document_deleted": "text-red-500",
    "team_member_removed": "text-red-500",
    "document_uploaded": "text-blue-500",
    "request_created": "text-blue-500",
    "team_member_added": "text-blue-500",
    "request_status_changed": "text-amber-500",
    "deal_stage_changed": "text-amber-500",
}


def describe_deal_activity(activity_type: str, metadata: dict[str, Any] | None = None) -> str:
    """Sentence fragment following the actor's name, e.g. ``uploaded "P&L.xlsx"``."""
    md = metadata or {}
    file_name = md.get("file_name") or "a document"
    title = md.get("title") or ""
    member = md.get("member_name") or "a team member"

    if activity_type == "document_uploaded":
        return f'uploaded "{file_name}"'
    if activity_type == "document_deleted":
        return f'deleted "{file_name}"'
    if activity_type == "document_moved":
        return f'moved "{file_name}"'
    if activity_type == "document_approved":
        return f'approved "{file_name}"'
    if activity_type == "document_rejected":
        reason = md.get("rejection_reason")
        return f'rejected "{file_name}"' + (f": {reason}" if reason else "")
    if activity_type == "document_downloaded":
        return f'downloaded "{file_name}"'
    if activity_type == "request_created":
        return f'created request "{title}"'
    if activity_type == "request_updated":
        return f'updated request "{title}"'
    if activity_type == "request_status_changed":
        return f'changed request status to "{md.get("new_status") or ""}"'
    if activity_type == "request_completed":
        return f'completed request "{title}"'
    if activity_type == "comment_added":
        return "added a comment"
    if activity_type == "team_member_added":
        return f"added {member}"
    if activity_type == "team_member_removed":
        return f"removed {member}"
    if activity_type == "permission_changed":
        return f"changed permissions for {member}"
    if activity_type == "nda_signed":
        return "signed the NDA"
    if activity_type == "deal_stage_changed":
        return f'changed deal stage to "{md.get("new_stage") or ""}"'
    if activity_type == "deal_created":
        return "created this deal"
    if activity_type == "deal_updated":
        return "updated deal information"
    return "performed an action"


def deal_activity_icon(activity_type: str) -> str:
    return _DEAL_ICONS.get(activity_type, "Activity")


def deal_activity_color(activity_type: str) -> str:
    return _DEAL_COLORS.get(activity_type, "text-muted-foreground")
