"""Generation result table."""

from sqlalchemy import JSON, Boolean, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from genpipe.db.base import Base, TimestampMixin


class GenerationResultRow(Base, TimestampMixin):
    __tablename__ = "generation_results"
    __table_args__ = (
        Index("ix_generation_results_target", "object_type", "object_id", "object_key", "status"),
        # At most one in-flight job per logical target
        Index(
            "ux_generation_results_pending_target",
            "object_type",
            "object_id",
            "object_key",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    event_name: Mapped[str] = mapped_column(String(200), nullable=False)
    event_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    step: Mapped[str | None] = mapped_column(String(200), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result: Mapped[dict | list | None] = mapped_column(JSON, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    object_type: Mapped[str] = mapped_column(String(100), nullable=False)
    object_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    object_key: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
