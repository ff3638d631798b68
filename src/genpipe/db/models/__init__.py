"""SQLAlchemy ORM models - import all to register with Base.metadata."""

from genpipe.db.models.generation_result import GenerationResultRow
from genpipe.db.models.step_record import StepRecordRow

__all__ = [
    "GenerationResultRow",
    "StepRecordRow",
]
