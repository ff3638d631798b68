"""Custom exception classes for the generation pipeline."""


class GenPipeError(Exception):
    """Base exception for genpipe."""

    def __init__(self, code: str, message: str, details=None, status_code: int = 500):
        self.code = code
        self.message = message
        self.details = details
        self.status_code = status_code
        super().__init__(message)


class NotFoundError(GenPipeError):
    """Resource not found."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            "NOT_FOUND",
            f"{resource} '{resource_id}' not found",
            status_code=404,
        )


class ConflictError(GenPipeError):
    """Resource state conflict."""

    def __init__(self, message: str):
        super().__init__("CONFLICT", message, status_code=409)


# --- Step executor ---------------------------------------------------------


class StepFailedError(GenPipeError):
    """A step exhausted its retry budget."""

    def __init__(self, step_name: str, attempts: int, last_error: BaseException):
        self.step_name = step_name
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            "STEP_FAILED",
            f"Step '{step_name}' failed after {attempts} attempt(s): {last_error}",
            details={"step": step_name, "attempts": attempts},
        )


class NonRetryableStepError(Exception):
    """Raised inside a step function to fail the step without further attempts."""


class JobCancelledError(GenPipeError):
    """Cancellation was requested for the job before its next step."""

    def __init__(self, result_id: str):
        self.result_id = result_id
        super().__init__("JOB_CANCELLED", "Job cancelled", details={"id": result_id})


class UnknownWorkflowError(GenPipeError):
    """No workflow is registered for an event name."""

    def __init__(self, event_name: str):
        self.event_name = event_name
        super().__init__("UNKNOWN_WORKFLOW", f"No workflow registered for event '{event_name}'")


# --- Client poller ---------------------------------------------------------


class PollError(Exception):
    """Base class for errors raised while waiting on a result."""

    def __init__(self, result_id: str, message: str):
        self.result_id = result_id
        super().__init__(message)


class JobFailedError(PollError):
    """The job reached the terminal error state."""

    def __init__(self, result_id: str, error: str | None):
        self.error = error or "Unknown error"
        super().__init__(result_id, self.error)


class PollTimeoutError(PollError):
    """No terminal state was observed within the polling budget."""

    def __init__(self, result_id: str, timeout_ms: int):
        self.timeout_ms = timeout_ms
        super().__init__(result_id, f"Timed out after {timeout_ms}ms waiting for result '{result_id}'")


class ResultNotFoundError(PollError):
    """The result id is unknown or has expired."""

    def __init__(self, result_id: str):
        super().__init__(result_id, f"Result '{result_id}' not found")


class PollAbortedError(PollError):
    """Polling was aborted by the caller."""

    def __init__(self, result_id: str):
        super().__init__(result_id, f"Polling for result '{result_id}' was aborted")
