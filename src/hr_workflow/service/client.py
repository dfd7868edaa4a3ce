"""Async HTTP client for the HR record service."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx
from pydantic_core import PydanticSerializationError, to_jsonable_python

from hr_workflow.domain.records import Record, RecordId, Schedule
from hr_workflow.errors import NetworkFailure, RemoteRejected, ValidationError
from hr_workflow.workflow.models import RecordKindConfig

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "Accept": "application/json",
    # Makes the service answer with JSON instead of redirects.
    "X-Requested-With": "XMLHttpRequest",
}


def _render(template: str, record_id: RecordId | None = None) -> str:
    if record_id is None:
        return template
    return template.replace("{id}", str(record_id))


def _error_message(payload: object, fallback: str) -> str:
    if isinstance(payload, Mapping):
        for key in ("message", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return fallback


def _field_errors(payload: object) -> dict[str, list[str]]:
    if not isinstance(payload, Mapping):
        return {}
    errors = payload.get("errors")
    if not isinstance(errors, Mapping):
        return {}
    result: dict[str, list[str]] = {}
    for key, value in errors.items():
        if isinstance(value, str):
            result[str(key)] = [value]
        elif isinstance(value, Sequence):
            result[str(key)] = [str(item) for item in value]
    return result


class RecordServiceClient:
    """Talks to the record service on behalf of one page.

    All transport failures surface as ``NetworkFailure`` and every refusal by
    the service as ``RemoteRejected``. Field values that cannot be encoded
    raise ``ValidationError`` before anything is sent; ``httpx`` exceptions
    never escape.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 30.0,
        api_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = dict(_DEFAULT_HEADERS)
        if api_token:
            headers["Authorization"] = f"Bearer {api_token}"
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def __aenter__(self) -> "RecordServiceClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def list_records(self, kind: RecordKindConfig) -> list[Record]:
        payload = await self._request_json("GET", kind.endpoints.list_records, action="load records")
        raw = payload.get(kind.collection_key) if isinstance(payload, Mapping) else payload
        if not isinstance(raw, list):
            raise RemoteRejected(
                f"Malformed {kind.label.lower()} list response: missing '{kind.collection_key}'"
            )
        return [self._parse(item, kind) for item in raw]

    async def create(
        self,
        kind: RecordKindConfig,
        fields: Mapping[str, Any],
    ) -> list[Record]:
        payload = await self._request_json(
            "POST", kind.endpoints.create, data=dict(fields), action="create record"
        )
        return self._extract_records(payload, kind)

    async def update(
        self,
        kind: RecordKindConfig,
        record_id: RecordId,
        fields: Mapping[str, Any],
    ) -> Record | None:
        data = {**fields, "_method": "PUT"}
        payload = await self._request_json(
            "POST", _render(kind.endpoints.update, record_id), data=data, action="update record"
        )
        return self._extract_record(payload, kind)

    async def update_status(
        self,
        kind: RecordKindConfig,
        record_id: RecordId,
        status: str,
        remarks: str | None,
        *,
        endpoint: str | None = None,
    ) -> Record | None:
        template = endpoint or kind.endpoints.status
        payload = await self._request_json(
            "POST",
            _render(template, record_id),
            data={"status": status, "remarks": remarks},
            action="update status",
        )
        return self._extract_record(payload, kind)

    async def reschedule(
        self,
        kind: RecordKindConfig,
        record_id: RecordId,
        schedule: Schedule,
        *,
        endpoint: str | None = None,
    ) -> Record | None:
        template = endpoint or kind.endpoints.reschedule
        if template is None:
            raise RemoteRejected(f"{kind.label} does not support rescheduling")
        payload = await self._request_json(
            "POST",
            _render(template, record_id),
            data={
                kind.start_field: schedule.start.isoformat(),
                kind.end_field: schedule.end.isoformat(),
            },
            action="reschedule",
        )
        return self._extract_record(payload, kind)

    async def bulk_update_status(
        self,
        kind: RecordKindConfig,
        record_ids: Sequence[RecordId],
        status: str,
        remarks: str | None,
    ) -> Mapping[str, Any]:
        if kind.endpoints.bulk_status is None:
            raise RemoteRejected(f"{kind.label} has no bulk status endpoint")
        payload = await self._request_json(
            "POST",
            kind.endpoints.bulk_status,
            data={kind.bulk_ids_field: list(record_ids), "status": status, "remarks": remarks},
            action="bulk update status",
        )
        return payload if isinstance(payload, Mapping) else {}

    async def delete(self, kind: RecordKindConfig, record_id: RecordId) -> None:
        await self._request_json(
            "POST",
            _render(kind.endpoints.delete, record_id),
            data={"_method": "DELETE"},
            action="delete record",
        )

    async def export(self, kind: RecordKindConfig, params: Mapping[str, str]) -> bytes:
        if kind.endpoints.export is None:
            raise RemoteRejected(f"{kind.label} does not support export")
        response = await self._send("GET", kind.endpoints.export, params=dict(params), action="export")
        return response.content

    async def _send(
        self,
        method: str,
        path: str,
        *,
        data: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
        action: str,
    ) -> httpx.Response:
        body = self._encode(data, action) if data is not None else None
        try:
            response = await self._client.request(method, path, json=body, params=params)
        except httpx.TimeoutException as exc:
            logger.warning("%s %s timed out: %s", method, path, exc)
            raise NetworkFailure(f"Failed to {action}: request timed out, please try again") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkFailure(f"Failed to {action}, please try again") from exc

        logger.debug("%s %s -> %d", method, path, response.status_code)
        if response.is_success:
            return response

        try:
            body: object = response.json()
        except ValueError:
            body = None
        message = _error_message(body, f"Failed to {action} (HTTP {response.status_code})")
        logger.info("%s %s rejected with %d: %s", method, path, response.status_code, message)
        raise RemoteRejected(message, status_code=response.status_code, field_errors=_field_errors(body))

    async def _request_json(
        self,
        method: str,
        path: str,
        *,
        data: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
        action: str,
    ) -> Any:
        response = await self._send(method, path, data=data, params=params, action=action)
        if not response.content:
            return {}
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteRejected(
                f"Failed to {action}: service returned a non-JSON response",
                status_code=response.status_code,
            ) from exc
        # Some endpoints answer 200 with an explicit failure flag.
        if isinstance(payload, Mapping) and payload.get("success") is False:
            raise RemoteRejected(
                _error_message(payload, f"Failed to {action}"),
                status_code=response.status_code,
                field_errors=_field_errors(payload),
            )
        return payload

    @staticmethod
    def _encode(data: Mapping[str, Any], action: str) -> Any:
        # Dates and datetimes in form fields go out as ISO strings.
        try:
            return to_jsonable_python(data)
        except PydanticSerializationError as exc:
            raise ValidationError(f"Failed to {action}: {exc}") from exc

    @staticmethod
    def _parse(item: object, kind: RecordKindConfig) -> Record:
        if not isinstance(item, Mapping):
            raise RemoteRejected(f"Malformed {kind.label.lower()} entry in service response")
        try:
            return Record.from_payload(item, kind)
        except ValueError as exc:
            raise RemoteRejected(f"Malformed {kind.label.lower()} in service response: {exc}") from exc

    def _extract_record(self, payload: object, kind: RecordKindConfig) -> Record | None:
        if not isinstance(payload, Mapping):
            return None
        if kind.record_key and isinstance(payload.get(kind.record_key), Mapping):
            return self._parse(payload[kind.record_key], kind)
        if "id" in payload and "status" in payload:
            return self._parse(payload, kind)
        return None

    def _extract_records(self, payload: object, kind: RecordKindConfig) -> list[Record]:
        if isinstance(payload, list):
            return [self._parse(item, kind) for item in payload]
        if isinstance(payload, Mapping):
            collection = payload.get(kind.collection_key)
            if isinstance(collection, list):
                return [self._parse(item, kind) for item in collection]
        record = self._extract_record(payload, kind)
        return [record] if record is not None else []
