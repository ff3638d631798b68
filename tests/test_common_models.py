"""Test common Pydantic models and error responses."""

from datetime import datetime, timezone

import pytest
from pydantic import BaseModel, ValidationError

from genpipe.errors.exceptions import StepFailedError
from genpipe.models.common import ErrorDetail, ErrorResponse
from genpipe.models.enums import ResultStatus
from genpipe.models.generation import DispatchRequest, GenerationResultModel
from genpipe.models.payloads import decode_payload, get_payload_model, register_payload


def test_error_response_serialization():
    """ErrorResponse drops empty fields and renders the timestamp as ISO text."""
    error_resp = ErrorResponse(
        error=ErrorDetail(
            code="NOT_FOUND",
            message="Result 'gen_1' not found",
            trace_id="trc_abc",
            timestamp=datetime(2026, 1, 1, tzinfo=timezone.utc),
        ),
    )
    data = error_resp.model_dump(mode="json", exclude_none=True)
    assert data == {
        "error": {
            "code": "NOT_FOUND",
            "message": "Result 'gen_1' not found",
            "trace_id": "trc_abc",
            "timestamp": "2026-01-01T00:00:00Z",
        }
    }


def test_error_detail_rejects_extra_fields():
    with pytest.raises(ValidationError):
        ErrorDetail(code="X", message="m", trace_id="t", timestamp=datetime.now(timezone.utc), extra=1)


def test_result_model_terminal_states():
    now = datetime.now(timezone.utc)
    base = {"id": "gen_1", "event_name": "gen-x", "object_type": "widget", "created_at": now, "updated_at": now}
    assert not GenerationResultModel(status=ResultStatus.PENDING, **base).is_terminal
    assert GenerationResultModel(status=ResultStatus.COMPLETED, **base).is_terminal
    assert GenerationResultModel(status="error", **base).is_terminal


def test_dispatch_request_validation():
    req = DispatchRequest(event_name="gen-x", object_type="widget")
    assert req.object_id is None
    assert req.data == {}
    assert req.force is False
    with pytest.raises(ValidationError):
        DispatchRequest(event_name="", object_type="widget")


def test_payload_registry():
    class DescriptionResult(BaseModel):
        summary: str

    register_payload("gen-describe", DescriptionResult)
    assert get_payload_model("gen-describe") is DescriptionResult
    assert decode_payload("gen-describe", {"summary": "ok"}).summary == "ok"
    assert decode_payload("gen-describe", None) is None
    assert decode_payload("gen-unregistered", {"a": 1}) == {"a": 1}


def test_step_failed_error_message():
    exc = StepFailedError("generate", 3, RuntimeError("boom"))
    assert exc.message == "Step 'generate' failed after 3 attempt(s): boom"
    assert exc.details == {"step": "generate", "attempts": 3}
