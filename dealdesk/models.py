from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Deal(Base):
    __tablename__ = "deals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    company_name: Mapped[str] = mapped_column(String(300), default="")
    status: Mapped[str] = mapped_column(String(30), default="draft")  # draft | active | archived
    asking_price: Mapped[str] = mapped_column(String(100), default="")
    revenue: Mapped[str] = mapped_column(String(100), default="")
    ebitda: Mapped[str] = mapped_column(String(100), default="")
    industry: Mapped[str] = mapped_column(String(200), default="")
    location: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    created_by: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    folders: Mapped[list[DataRoomFolder]] = relationship(
        "DataRoomFolder", back_populates="deal", cascade="all, delete-orphan",
        order_by="DataRoomFolder.id",
    )
    documents: Mapped[list[DataRoomDocument]] = relationship(
        "DataRoomDocument", back_populates="deal", cascade="all, delete-orphan",
        order_by="DataRoomDocument.id",
    )
    requests: Mapped[list[DiligenceRequest]] = relationship(
        "DiligenceRequest", back_populates="deal", cascade="all, delete-orphan",
        order_by="DiligenceRequest.id",
    )
    activities: Mapped[list[DealActivity]] = relationship(
        "DealActivity", back_populates="deal", cascade="all, delete-orphan",
    )


class DataRoomFolder(Base):
    __tablename__ = "data_room_folders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("deals.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(300), nullable=False)
    index_number: Mapped[str] = mapped_column(String(20), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    is_required: Mapped[bool] = mapped_column(Boolean, default=False)
    is_not_applicable: Mapped[bool] = mapped_column(Boolean, default=False)
    is_loi_restricted: Mapped[bool] = mapped_column(Boolean, default=False)

    deal: Mapped[Deal] = relationship("Deal", back_populates="folders")
    documents: Mapped[list[DataRoomDocument]] = relationship("DataRoomDocument", back_populates="folder")


class DataRoomDocument(Base):
    __tablename__ = "data_room_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("deals.id"), nullable=False)
    folder_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("data_room_folders.id", ondelete="SET NULL"), nullable=True,
    )
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[str] = mapped_column(String(30), default="pending_review")  # pending_review | approved | rejected
    uploaded_by: Mapped[str] = mapped_column(String(100), default="")
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    deal: Mapped[Deal] = relationship("Deal", back_populates="documents")
    folder: Mapped[DataRoomFolder | None] = relationship("DataRoomFolder", back_populates="documents")


class DiligenceRequest(Base):
    __tablename__ = "diligence_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("deals.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    category: Mapped[str] = mapped_column(String(200), default="")
    description: Mapped[str] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(30), default="open")  # open | in_progress | completed | blocked
    priority: Mapped[str] = mapped_column(String(20), default="none")  # none | low | medium | high
    created_by: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    deal: Mapped[Deal] = relationship("Deal", back_populates="requests")
    documents: Mapped[list[DiligenceDocument]] = relationship(
        "DiligenceDocument", back_populates="request", cascade="all, delete-orphan",
    )
    comments: Mapped[list[DiligenceComment]] = relationship(
        "DiligenceComment", back_populates="request", cascade="all, delete-orphan",
    )


class DiligenceDocument(Base):
    __tablename__ = "diligence_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("diligence_requests.id"), nullable=False)
    file_name: Mapped[str] = mapped_column(String(500), nullable=False)
    uploaded_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    request: Mapped[DiligenceRequest] = relationship("DiligenceRequest", back_populates="documents")


class DiligenceComment(Base):
    __tablename__ = "diligence_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[int] = mapped_column(Integer, ForeignKey("diligence_requests.id"), nullable=False)
    author: Mapped[str] = mapped_column(String(100), default="")
    body: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    request: Mapped[DiligenceRequest] = relationship("DiligenceRequest", back_populates="comments")


class ActivityEvent(Base):
    """Platform-wide audit log entry (sign-ins, NDAs, uploads, ...)."""

    __tablename__ = "activity_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    event_data_json: Mapped[str] = mapped_column(Text, default="{}")
    user_id: Mapped[str] = mapped_column(String(100), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


class DealActivity(Base):
    __tablename__ = "deal_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    deal_id: Mapped[int] = mapped_column(Integer, ForeignKey("deals.id"), nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), default="")
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), default="")
    entity_id: Mapped[str] = mapped_column(String(100), default="")
    metadata_json: Mapped[str] = mapped_column(Text, default="{}")
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    deal: Mapped[Deal] = relationship("Deal", back_populates="activities")


class Setting(Base):
    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value_json: Mapped[str] = mapped_column(Text, default="{}")
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), onupdate=func.now())
