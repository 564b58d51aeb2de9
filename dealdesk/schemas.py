"""Pydantic request/response schemas for the DealDesk API."""
from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from dealdesk.activity import DEAL_ACTIVITY_TYPES

DealStatus = Literal["draft", "active", "archived"]
DocumentStatus = Literal["pending_review", "approved", "rejected"]
RequestStatus = Literal["open", "in_progress", "completed", "blocked"]
RequestPriority = Literal["none", "low", "medium", "high"]


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


class DealOut(BaseModel):
    id: int
    title: str
    company_name: str
    status: str
    asking_price: str
    revenue: str
    ebitda: str
    industry: str
    location: str
    description: str
    created_by: str
    created_at: str | None = None
    stage: str


class DealCreate(BaseModel):
    title: str = Field(min_length=1)
    company_name: str = ""
    status: DealStatus = "draft"
    asking_price: str = ""
    revenue: str = ""
    ebitda: str = ""
    industry: str = ""
    location: str = ""
    description: str = ""
    created_by: str = ""


class DealUpdate(BaseModel):
    title: str | None = None
    company_name: str | None = None
    status: DealStatus | None = None
    asking_price: str | None = None
    revenue: str | None = None
    ebitda: str | None = None
    industry: str | None = None
    location: str | None = None
    description: str | None = None


class SetupRequest(BaseModel):
    data_room: bool = True
    due_diligence: bool = True
    created_by: str = ""


class SetupResult(BaseModel):
    folders_created: int = 0
    requests_created: int = 0


# ---------------------------------------------------------------------------
# Data room
# ---------------------------------------------------------------------------


class FolderOut(BaseModel):
    id: int
    deal_id: int
    name: str
    index_number: str
    description: str
    is_required: bool
    is_not_applicable: bool
    is_loi_restricted: bool


class FolderCreate(BaseModel):
    name: str = Field(min_length=1)
    index_number: str = ""
    description: str = ""
    is_required: bool = False
    is_loi_restricted: bool = False


class FolderUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    is_required: bool | None = None
    is_not_applicable: bool | None = None


class DocumentOut(BaseModel):
    id: int
    deal_id: int
    folder_id: int | None
    file_name: str
    status: str
    uploaded_by: str
    uploaded_at: str | None = None


class DocumentCreate(BaseModel):
    file_name: str = Field(min_length=1)
    folder_id: int | None = None
    uploaded_by: str = ""


class DocumentUpdate(BaseModel):
    status: DocumentStatus | None = None
    folder_id: int | None = None


class DataRoomHealthOut(BaseModel):
    total_folders: int
    required_folders: int
    folders_with_documents: int
    required_folders_with_documents: int
    total_documents: int
    health_percentage: int
    is_complete: bool


class FolderStatusOut(BaseModel):
    id: int
    name: str
    document_count: int
    status: Literal["na", "complete", "missing", "optional"]


class ClassifyRequest(BaseModel):
    file_name: str


class ClassifyResult(BaseModel):
    folder_id: int | None
    folder_name: str | None = None


# ---------------------------------------------------------------------------
# Diligence
# ---------------------------------------------------------------------------


class RequestOut(BaseModel):
    id: int
    deal_id: int
    title: str
    category: str
    description: str
    status: str
    priority: str
    created_by: str
    created_at: str | None = None


class RequestCreate(BaseModel):
    title: str = Field(min_length=1)
    category: str = ""
    description: str = ""
    status: RequestStatus = "open"
    priority: RequestPriority = "none"
    created_by: str = ""


class RequestUpdate(BaseModel):
    title: str | None = None
    category: str | None = None
    description: str | None = None
    status: RequestStatus | None = None
    priority: RequestPriority | None = None


class CommentCreate(BaseModel):
    author: str = ""
    body: str = Field(min_length=1)


class RequestDocumentCreate(BaseModel):
    file_name: str = Field(min_length=1)


class DiligenceCompletenessOut(BaseModel):
    total_requests: int
    completed_requests: int
    in_progress_requests: int
    open_requests: int
    completion_percentage: int
    is_complete: bool


class RequestCountsOut(BaseModel):
    document_count: int
    comment_count: int


class TrackerOut(BaseModel):
    deal_id: int
    title: str
    company_name: str
    status: str
    total_requests: int
    completed_requests: int
    progress_percentage: int


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class PipelineStageOut(BaseModel):
    stage: str
    display_name: str
    color: str
    count: int
    total_value: float


class PipelineOut(BaseModel):
    stages: list[PipelineStageOut]
    total_deals: int
    total_value: float


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


class ActivityItemOut(BaseModel):
    id: int
    event_type: str
    event_data: dict[str, Any] = {}
    user_id: str
    created_at: str | None = None
    description: str
    icon: str
    color: str


class ActivityEventCreate(BaseModel):
    event_type: str = Field(min_length=1)
    event_data: dict[str, Any] = {}
    user_id: str = ""

    @field_validator("event_type")
    @classmethod
    def event_type_is_slug(cls, v: str) -> str:
        v = v.strip()
        if not v or " " in v:
            raise ValueError("event_type must be a non-empty identifier without spaces")
        return v


class DealActivityOut(BaseModel):
    id: int
    deal_id: int
    user_id: str
    activity_type: str
    entity_type: str
    entity_id: str
    metadata: dict[str, Any] = {}
    created_at: str | None = None
    description: str
    icon: str
    color: str


class DealActivityCreate(BaseModel):
    activity_type: str
    entity_type: str = ""
    entity_id: str = ""
    user_id: str = ""
    metadata: dict[str, Any] = {}

    @field_validator("activity_type")
    @classmethod
    def known_activity_type(cls, v: str) -> str:
        if v not in DEAL_ACTIVITY_TYPES:
            raise ValueError(f"unknown activity_type '{v}'")
        return v


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class WidgetSettingsPatch(BaseModel):
    """Partial chat-widget settings; fields left as None are kept."""

    widget_position: Literal["bottom-right", "bottom-left"] | None = None
    primary_color: str | None = None
    widget_size: Literal["small", "medium", "large"] | None = None
    bubble_style: Literal["circle", "rounded-square"] | None = None
    auto_open_enabled: bool | None = None
    auto_open_delay: int | None = Field(default=None, ge=0)
    show_online_status: bool | None = None
    enable_typing_indicators: bool | None = None
    enable_file_attachments: bool | None = None
    enable_emojis: bool | None = None
    initial_greeting: str | None = None
    away_message: str | None = None
    ask_button_label: str | None = None
    info_button_label: str | None = None
    interest_button_label: str | None = None
    call_button_label: str | None = None
    info_request_options: list[str] | None = None
    calendly_link: str | None = None
    enable_manual_scheduling: bool | None = None
    broker_email_notifications: bool | None = None
    investor_email_notifications: bool | None = None
    widget_title: str | None = None
    placeholder_text: str | None = None
    minimized_tooltip: str | None = None

    @field_validator("primary_color")
    @classmethod
    def hex_color(cls, v: str | None) -> str | None:
        if v is not None and not re.match(r"^#[0-9A-Fa-f]{6}$", v):
            raise ValueError("primary_color must be a hex color like #F28C38")
        return v
