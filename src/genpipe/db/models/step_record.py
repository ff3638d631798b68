"""Per-job step ledger table."""

from sqlalchemy import JSON, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from genpipe.db.base import Base, TimestampMixin


class StepRecordRow(Base, TimestampMixin):
    __tablename__ = "generation_steps"
    __table_args__ = (
        UniqueConstraint("result_id", "step_name", name="ux_generation_steps_result_step"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    result_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    step_name: Mapped[str] = mapped_column(String(200), nullable=False)
    output: Mapped[dict | list | str | int | float | bool | None] = mapped_column(JSON, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
