"""Generation start and result polling endpoints."""

from fastapi import APIRouter, Query

from genpipe.dependencies import DispatcherDep, Store
from genpipe.errors.exceptions import ConflictError, NotFoundError
from genpipe.models.generation import DispatchRequest, DispatchResponse

router = APIRouter(tags=["Generation"])


@router.post("/generations", status_code=202)
async def start_generation(body: DispatchRequest, dispatcher: DispatcherDep) -> dict:
    result = await dispatcher.dispatch(
        event_name=body.event_name,
        object_type=body.object_type,
        object_id=body.object_id,
        object_key=body.object_key,
        data=body.data,
        force=body.force,
    )
    return DispatchResponse(id=result.id, status=result.status).model_dump(mode="json")


@router.get("/results")
async def list_results(
    store: Store,
    object_type: str = Query(..., min_length=1),
    object_id: str = Query(""),
) -> list[dict]:
    results = await store.list_by_object(object_type, object_id)
    return [r.model_dump(mode="json", exclude_none=True) for r in results]


@router.get("/results/{result_id}")
async def get_result(result_id: str, store: Store) -> dict:
    result = await store.get(result_id)
    if not result:
        raise NotFoundError("Result", result_id)
    return result.model_dump(mode="json", exclude_none=True)


@router.post("/results/{result_id}/cancel", status_code=202)
async def cancel_result(result_id: str, store: Store) -> dict:
    result = await store.request_cancel(result_id)
    if result is None:
        existing = await store.get(result_id)
        if not existing:
            raise NotFoundError("Result", result_id)
        raise ConflictError(f"Result '{result_id}' is already {existing.status}")
    return result.model_dump(mode="json", exclude_none=True)
