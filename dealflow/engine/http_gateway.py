"""Gateway speaking to the Dealflow JSON API over httpx."""

from __future__ import annotations

import uuid
from typing import Any

import httpx

from ..config import settings
from ..errors import (
    ConfigurationError,
    DealflowError,
    FieldError,
    MoveConflict,
    NotFound,
    RequestTimeout,
    TransitionNotAllowed,
    TransportError,
    ValidationError,
)
from ..schemas.custom_field import FieldDefinitionRead
from ..schemas.opportunity import OpportunityCreate, OpportunityPage, OpportunityRead, OpportunityUpdate
from ..schemas.pipeline import PipelineDetail, PipelineRead, StageSummary
from .gateway import PipelineGateway


class HTTPGateway(PipelineGateway):
    """Pipeline API client scoped to one location slug.

    Usage:
        async with HTTPGateway("acme") as gateway:
            pipelines = await gateway.list_pipelines()
    """

    def __init__(
        self,
        slug: str,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.slug = slug
        self.base_url = base_url or settings.api_base_url
        headers = {"Content-Type": "application/json"}
        if token:
            headers[settings.tenant_token_header] = token
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.load_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    def _path(self, suffix: str) -> str:
        return f"/loc/{self.slug}{suffix}"

    async def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        json: Any = None,
    ) -> Any:
        """Make an API request, mapping failures onto the error taxonomy."""
        try:
            response = await self._client.request(
                method=method,
                url=self._path(path),
                params=params,
                json=json,
            )
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            raise _error_from_response(response)
        return response.json() if response.content else None

    async def list_pipelines(self) -> list[PipelineRead]:
        data = await self._request("GET", "/pipelines")
        return [PipelineRead.model_validate(p) for p in data]

    async def get_pipeline_with_stages(self, pipeline_id: uuid.UUID) -> PipelineDetail:
        return PipelineDetail.model_validate(await self._request("GET", f"/pipelines/{pipeline_id}"))

    async def list_field_definitions(self, pipeline_id: uuid.UUID) -> list[FieldDefinitionRead]:
        data = await self._request(
            "GET", f"/pipelines/{pipeline_id}/fields", params={"all_stages": "true"}
        )
        return [FieldDefinitionRead.model_validate(d) for d in data]

    async def list_opportunities_page(
        self, stage_id: uuid.UUID, offset: int, limit: int
    ) -> OpportunityPage:
        data = await self._request(
            "GET", f"/stages/{stage_id}/opportunities", params={"offset": offset, "limit": limit}
        )
        return OpportunityPage.model_validate(data)

    async def get_opportunity(self, opp_id: uuid.UUID) -> OpportunityRead:
        return OpportunityRead.model_validate(await self._request("GET", f"/opportunities/{opp_id}"))

    async def create_opportunity(self, payload: OpportunityCreate) -> OpportunityRead:
        data = await self._request("POST", "/opportunities", json=payload.model_dump(mode="json"))
        return OpportunityRead.model_validate(data)

    async def update_opportunity(
        self, opp_id: uuid.UUID, patch: OpportunityUpdate
    ) -> OpportunityRead:
        data = await self._request(
            "PATCH",
            f"/opportunities/{opp_id}",
            json=patch.model_dump(mode="json", exclude_unset=True),
        )
        return OpportunityRead.model_validate(data)

    async def move_opportunity(
        self,
        opp_id: uuid.UUID,
        stage_id: uuid.UUID,
        expected_version: int | None = None,
    ) -> OpportunityRead:
        body = {"stage_id": str(stage_id)}
        if expected_version is not None:
            body["expected_version"] = expected_version
        data = await self._request("POST", f"/opportunities/{opp_id}/move", json=body)
        return OpportunityRead.model_validate(data)

    async def list_stage_summaries(self, pipeline_id: uuid.UUID) -> list[StageSummary]:
        data = await self._request("GET", f"/pipelines/{pipeline_id}/summary")
        return [StageSummary.model_validate(s) for s in data]


def _error_from_response(response: httpx.Response) -> DealflowError:
    try:
        body = response.json() if response.content else {}
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    detail = body.get("detail")
    message = detail if isinstance(detail, str) else f"API error: {response.status_code}"

    status = response.status_code
    if status == 404:
        return NotFound(message)
    if status == 422:
        raw_errors = body.get("errors")
        errors = {}
        if isinstance(raw_errors, dict):
            errors = {name: FieldError.from_dict(err) for name, err in raw_errors.items()}
        return ValidationError(errors, message)
    if status == 409:
        if body.get("error") == TransitionNotAllowed.__name__:
            return TransitionNotAllowed(message)
        return MoveConflict(message)
    if status == 400:
        return ConfigurationError(message)
    return TransportError(message, status)
