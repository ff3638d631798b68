"""Async HTTP client for the generation API."""

from __future__ import annotations

from typing import Any

import httpx

from genpipe.models.generation import DispatchResponse, GenerationResultModel


class GenerationAPIClient:
    """Start generation jobs and fetch their results over HTTP.

    Implements the ``ResultSource`` protocol, so it can back a
    :class:`genpipe.client.poller.ResultPoller`.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8080/api/v1",
        client: httpx.AsyncClient | None = None,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> GenerationAPIClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def start_generation(
        self,
        event_name: str,
        object_type: str,
        object_id: str | None = None,
        object_key: str | None = None,
        data: dict[str, Any] | None = None,
        force: bool = False,
    ) -> DispatchResponse:
        """Start (or join) the job for a target and return its id and status."""
        r = await self._client.post(
            f"{self.base_url}/generations",
            json={
                "event_name": event_name,
                "object_type": object_type,
                "object_id": object_id,
                "object_key": object_key,
                "data": data or {},
                "force": force,
            },
        )
        r.raise_for_status()
        return DispatchResponse.model_validate(r.json())

    async def get(self, result_id: str) -> GenerationResultModel | None:
        """Fetch a result record; None when it is unknown or expired."""
        r = await self._client.get(f"{self.base_url}/results/{result_id}")
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return GenerationResultModel.model_validate(r.json())

    async def request_cancel(self, result_id: str) -> GenerationResultModel | None:
        r = await self._client.post(f"{self.base_url}/results/{result_id}/cancel")
        if r.status_code == 404:
            return None
        r.raise_for_status()
        return GenerationResultModel.model_validate(r.json())
