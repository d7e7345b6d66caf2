import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from linkradar.storage.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Link(Base):
    __tablename__ = "links"
    __table_args__ = (Index("ix_links_created_at", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    url: Mapped[str] = mapped_column(String(2048), nullable=False)
    submitted_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    content_archive = relationship(
        "ContentArchive",
        back_populates="link",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ContentArchive(Base):
    __tablename__ = "content_archives"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    link_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("links.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    error_message: Mapped[str | None] = mapped_column(Text)
    content_html: Mapped[str | None] = mapped_column(Text)  # sanitized only
    content_text: Mapped[str | None] = mapped_column(Text)
    title: Mapped[str | None] = mapped_column(String(500))
    description: Mapped[str | None] = mapped_column(Text)
    image_url: Mapped[str | None] = mapped_column(String(2048))
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    fetched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    link = relationship("Link", back_populates="content_archive")
    transitions = relationship(
        "ContentArchiveTransition",
        back_populates="content_archive",
        order_by="ContentArchiveTransition.sort_key",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ContentArchiveTransition(Base):
    """Append-only audit entry for one archive state change."""

    __tablename__ = "content_archive_transitions"
    __table_args__ = (
        Index(
            "ix_content_archive_transitions_parent_sort",
            "content_archive_id",
            "sort_key",
            unique=True,
        ),
        Index(
            "ix_content_archive_transitions_parent_most_recent",
            "content_archive_id",
            "most_recent",
            unique=True,
            # At most one most_recent row per archive
            sqlite_where=text("most_recent = 1"),
            postgresql_where=text("most_recent"),
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    content_archive_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("content_archives.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    to_state: Mapped[str] = mapped_column(String(20), nullable=False)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONType, default=dict)
    sort_key: Mapped[int] = mapped_column(Integer, nullable=False)
    most_recent: Mapped[bool] = mapped_column(Boolean, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    # Relationships
    content_archive = relationship("ContentArchive", back_populates="transitions")
