"""FastAPI dependency injection providers."""

from typing import Annotated

from fastapi import Depends, Request

from genpipe.services.dispatcher import Dispatcher
from genpipe.services.result_store import ResultStore


def get_result_store(request: Request) -> ResultStore:
    """Return the result store created by the app lifespan."""
    return request.app.state.result_store


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


# Type aliases for dependency injection
Store = Annotated[ResultStore, Depends(get_result_store)]
DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
