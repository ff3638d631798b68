"""Workflow registry mapping event names to workflow factories."""

from collections.abc import Callable

from genpipe.workers.base import BaseWorkflow

WorkflowFactory = Callable[[], BaseWorkflow]


def _builtin_workflows() -> dict[str, WorkflowFactory]:
    from genpipe.models.enums import EventName
    from genpipe.workers.speech_worker import SpeechSynthesisWorkflow

    return {
        EventName.SPEECH_SYNTHESIS: SpeechSynthesisWorkflow,
    }


class WorkflowRegistry:
    """Resolve the workflow that handles a job-start event."""

    def __init__(self, include_builtins: bool = True) -> None:
        self._include_builtins = include_builtins
        self._factories: dict[str, WorkflowFactory] = {}
        self._loaded = False

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self._loaded = True
            if self._include_builtins:
                for event_name, factory in _builtin_workflows().items():
                    self._factories.setdefault(event_name, factory)

    def register(self, event_name: str, factory: WorkflowFactory) -> None:
        """Register a workflow class (or zero-argument factory) for an event name."""
        self._ensure_loaded()
        self._factories[event_name] = factory

    def get(self, event_name: str) -> BaseWorkflow | None:
        """Build a workflow instance for an event name."""
        self._ensure_loaded()
        factory = self._factories.get(event_name)
        return factory() if factory else None

    def event_names(self) -> list[str]:
        self._ensure_loaded()
        return sorted(self._factories)


default_registry = WorkflowRegistry()
