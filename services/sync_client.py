"""HTTP client for the sync server and the bulk transport built on it."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional, Sequence

import httpx
from pydantic import ValidationError as PydanticValidationError

from core.errors import (
    UNKNOWN_ACTION_PREFIX,
    AuthenticationError,
    DomainError,
    RateLimitError,
    TransportError,
    UnknownActionError,
    ValidationError,
)
from core.settings import SYNC
from models.wire import SyncResponse

if TYPE_CHECKING:
    from services.operation_queue import PendingOperation
    from services.sync_controller import DrainReport, SyncController


logger = logging.getLogger("fieldsync.sync")


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {response.status_code}"


def _retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class SyncApiClient:
    """Thin async wrapper around the sync server's HTTP API."""

    def __init__(
        self,
        base_url: str = SYNC.server_url,
        token: Optional[str] = SYNC.api_token,
        *,
        timeout: float = SYNC.request_timeout_sec,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SyncApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, body) -> httpx.Response:
        try:
            return await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise TransportError(f"POST {path} failed: {exc}") from exc

    def _raise_common(self, response: httpx.Response) -> None:
        status = response.status_code
        if status == 401:
            raise AuthenticationError(_error_message(response))
        if status == 429:
            raise RateLimitError(
                _error_message(response),
                retry_after=_retry_after(response),
                headers=dict(response.headers),
            )
        if status == 400:
            raise ValidationError(_error_message(response))

    async def post_batch(self, mutations: Sequence[dict]) -> SyncResponse:
        response = await self._post("/sync", {"mutations": list(mutations)})
        self._raise_common(response)
        if response.status_code != 200:
            raise TransportError(f"/sync answered {response.status_code}: {_error_message(response)}")
        try:
            return SyncResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as exc:
            raise TransportError(f"/sync returned an unreadable body: {exc}") from exc

    async def post_action(self, action: str, payload: dict) -> dict:
        response = await self._post(f"/actions/{action}", payload)
        self._raise_common(response)
        if response.status_code == 404:
            raise UnknownActionError(action, _error_message(response))
        if response.status_code >= 400:
            raise DomainError(_error_message(response))
        return response.json()

    async def ping(self) -> bool:
        try:
            response = await self._client.get("/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200


def _chunks(items: Sequence, size: int) -> Iterator[Sequence]:
    for start in range(0, len(items), size):
        yield items[start:start + size]


class BatchTransport:
    """Bulk replay: sends the ordered queue to ``POST /sync`` in chunks.

    Follows the same per-operation rules as direct replay. Request-level
    failures hand the chunk back untouched and end the pass. A chunk the
    server refuses as malformed is split until the refused operation is
    alone, and that operation is marked failed.
    """

    def __init__(self, client: SyncApiClient, max_batch_size: int = SYNC.batch_size) -> None:
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be positive")
        self.client = client
        self.max_batch_size = max_batch_size

    async def replay(
        self,
        controller: "SyncController",
        operations: List["PendingOperation"],
        report: "DrainReport",
    ) -> None:
        for chunk in _chunks(operations, self.max_batch_size):
            if not controller.is_online:
                report.stopped_early = True
                return
            for op in chunk:
                controller.mark_syncing(op)
            if not await self._send(controller, chunk, report):
                report.stopped_early = True
                return

    async def _send(
        self,
        controller: "SyncController",
        chunk: Sequence["PendingOperation"],
        report: "DrainReport",
    ) -> bool:
        """Upload ``chunk``; ``False`` means the pass must end."""

        try:
            response = await self.client.post_batch([op.to_mutation() for op in chunk])
        except ValidationError as exc:
            if len(chunk) > 1:
                # halve until the entry the server refuses is on its own
                middle = len(chunk) // 2
                parts = (chunk[:middle], chunk[middle:])
                for index, part in enumerate(parts):
                    if not await self._send(controller, part, report):
                        for rest in parts[index + 1:]:
                            self._release(controller, rest)
                        return False
                return True
            op = chunk[0]
            report.attempted += 1
            controller.record_rejected(op, str(exc), report)
            return True
        except (AuthenticationError, RateLimitError, TransportError) as exc:
            logger.warning("Batch upload stopped: %s", exc)
            self._release(controller, chunk)
            return False

        if not self._matches(chunk, response):
            logger.error("Batch response does not line up with the request, releasing chunk")
            self._release(controller, chunk)
            return False

        for op, result in zip(chunk, response.results):
            report.attempted += 1
            if result.status == "ok":
                controller.record_success(op, report)
            elif (result.error or "").startswith(UNKNOWN_ACTION_PREFIX):
                controller.record_missing(op, result.error, report)
            else:
                controller.record_failure(op, result.error or "Unknown error", report)
        return True

    @staticmethod
    def _release(controller: "SyncController", chunk: Iterable["PendingOperation"]) -> None:
        for op in chunk:
            controller.release(op)

    @staticmethod
    def _matches(chunk: Sequence["PendingOperation"], response: SyncResponse) -> bool:
        if len(chunk) != len(response.results):
            return False
        return all(
            op.action == result.action and op.timestamp == result.timestamp
            for op, result in zip(chunk, response.results)
        )


__all__ = ["SyncApiClient", "BatchTransport"]
