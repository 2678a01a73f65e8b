"""Push notification dispatch.

``NotificationDispatcher`` is what the intake and escalation code depend
on. ``FcmDispatcher`` implements it on the Firebase Cloud Messaging HTTP
v1 API. The process-wide instance is created lazily by
``get_dispatcher()`` and released by ``close_dispatcher()`` at shutdown.
"""

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from sosrelay.config import settings
from sosrelay.core.exceptions import TransportError
from sosrelay.logging_config import get_logger
from sosrelay.services.fcm_credentials import ServiceAccountCredentials

logger = get_logger(__name__)


@dataclass
class DispatchResult:
    """Outcome of one logical send."""

    success_count: int = 0
    failure_count: int = 0
    message_ids: list[str] = field(default_factory=list)


class NotificationDispatcher(Protocol):
    async def send(
        self,
        targets: Sequence[str],
        title: str,
        body: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> DispatchResult: ...


def _stringify(metadata: Mapping[str, Any] | None) -> dict[str, str]:
    """FCM data payloads only accept string values."""
    if not metadata:
        return {}
    return {str(k): "" if v is None else str(v) for k, v in metadata.items()}


class FcmDispatcher:
    """Sends notifications through FCM HTTP v1.

    A single target is one ``messages:send`` call. Several targets fan
    out one call per token concurrently (HTTP v1 has no batch endpoint);
    the send fails only if every target failed.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: ServiceAccountCredentials | None,
        project_id: str,
        api_base: str = "https://fcm.googleapis.com/v1",
    ):
        self._client = client
        self._credentials = credentials
        self._project_id = project_id
        self._api_base = api_base.rstrip("/")

    @property
    def send_url(self) -> str:
        return f"{self._api_base}/projects/{self._project_id}/messages:send"

    async def send(
        self,
        targets: Sequence[str],
        title: str,
        body: str,
        metadata: Mapping[str, Any] | None = None,
    ) -> DispatchResult:
        """Deliver a notification to every target.

        Raises:
            TransportError: If delivery is not configured or no target
                could be reached.
        """
        if not targets:
            return DispatchResult()

        if self._credentials is None or not self._project_id:
            raise TransportError("Push delivery is not configured")

        data = _stringify(metadata)

        if len(targets) == 1:
            message_id = await self._send_one(targets[0], title, body, data)
            return DispatchResult(success_count=1, message_ids=[message_id])

        return await self._send_multicast(targets, title, body, data)

    async def _send_multicast(
        self,
        targets: Sequence[str],
        title: str,
        body: str,
        data: dict[str, str],
    ) -> DispatchResult:
        results = await asyncio.gather(
            *(self._send_one(token, title, body, data) for token in targets),
            return_exceptions=True,
        )

        result = DispatchResult()
        errors: list[TransportError] = []
        for outcome in results:
            if isinstance(outcome, TransportError):
                errors.append(outcome)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                result.message_ids.append(outcome)
        result.success_count = len(result.message_ids)
        result.failure_count = len(errors)

        if not result.success_count:
            raise TransportError(
                f"Multicast failed for all {len(targets)} targets: {errors[0]}"
            )

        if errors:
            logger.warning(
                "Multicast partially failed",
                success_count=result.success_count,
                failure_count=result.failure_count,
                first_error=str(errors[0]),
            )
        return result

    async def _send_one(
        self,
        token: str,
        title: str,
        body: str,
        data: dict[str, str],
    ) -> str:
        access_token = await self._credentials.get_access_token()
        payload = {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                "data": data,
            }
        }

        try:
            response = await self._client.post(
                self.send_url,
                json=payload,
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except httpx.HTTPError as e:
            raise TransportError(f"FCM request failed: {e}") from e

        if response.status_code == 401:
            # Token revoked or rotated early; next send refetches it
            self._credentials.invalidate()

        if response.status_code != 200:
            raise TransportError(
                f"FCM send failed: {response.status_code} {response.text}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TransportError(f"FCM returned an unreadable response: {e}") from e

        return data.get("name", "") if isinstance(data, dict) else ""


# Process-wide dispatcher and its HTTP client - lazily initialized
_client: httpx.AsyncClient | None = None
_dispatcher: FcmDispatcher | None = None


def get_dispatcher() -> NotificationDispatcher:
    """Get or create the process-wide dispatcher.

    Also used as a FastAPI dependency; tests override it.
    """
    global _client, _dispatcher
    if _dispatcher is None:
        _client = httpx.AsyncClient(timeout=settings.dispatch_timeout_seconds)
        info = settings.service_account_info()
        credentials = ServiceAccountCredentials(info, _client) if info else None
        project_id = settings.firebase_project_id or (
            credentials.project_id if credentials else ""
        )
        _dispatcher = FcmDispatcher(
            _client,
            credentials,
            project_id,
            api_base=settings.fcm_api_base,
        )
        logger.info(
            "Push dispatcher initialized",
            configured=credentials is not None,
            project_id=project_id or None,
        )
    return _dispatcher


async def close_dispatcher() -> None:
    """Close the dispatcher's HTTP client and forget the instance."""
    global _client, _dispatcher
    if _client is not None:
        await _client.aclose()
    _client = None
    _dispatcher = None


async def send_with_timeout(
    dispatcher: NotificationDispatcher,
    targets: Sequence[str],
    title: str,
    body: str,
    metadata: Mapping[str, Any] | None,
    timeout: float,
) -> DispatchResult:
    """Run ``dispatcher.send`` bounded by ``timeout`` seconds.

    Raises:
        TransportError: On transport failure or when the timeout expires.
    """
    try:
        return await asyncio.wait_for(
            dispatcher.send(targets, title, body, metadata),
            timeout=timeout,
        )
    except TimeoutError as e:
        raise TransportError(f"Dispatch timed out after {timeout:g}s") from e
