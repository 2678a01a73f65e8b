"""Emergency request escalation engine.

Moves unanswered requests down their priority list. A sweep scans all
pending requests, and each one whose last notification is older than
the timeout advances by exactly one priority:

- past the end of the list: status becomes ``all_tried``
- next priority has no delivery target: index advances, nothing is sent
- otherwise: index advances, then the next priority is notified

Every write is a conditional update keyed on the index and status read
at scan time, and the index is claimed before anything is sent. When
sweeps overlap, only one of them advances a given record and only that
one sends; the others skip it silently.
"""

import asyncio
import enum
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from sosrelay.config import settings
from sosrelay.core.clock import Clock, system_clock
from sosrelay.core.exceptions import StoreConflict, StoreUnavailable, TransportError
from sosrelay.logging_config import get_logger, sweep_id_ctx
from sosrelay.models.emergency_request import EmergencyRecord, RequestStatus
from sosrelay.services.messages import build_notification
from sosrelay.services.push_dispatcher import NotificationDispatcher, send_with_timeout
from sosrelay.services.request_store import RequestStore, UpdateResult
from sosrelay.services.token_resolver import resolve_targets

logger = get_logger(__name__)


class EscalationResult(str, enum.Enum):
    """Per-record outcome of a sweep."""

    SENT = "sent"
    ALL_TRIED = "all_tried"
    NO_TOKEN_SKIP = "no_token_skip"
    FAILED = "failed"


@dataclass
class EscalationOutcome:
    """What a sweep did to one record."""

    request_id: str
    result: EscalationResult
    next_index: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.request_id, "result": self.result.value}
        if self.next_index is not None:
            data["nextIndex"] = self.next_index
        if self.error is not None:
            data["error"] = self.error
        return data


@dataclass
class SweepResult:
    """Outcomes of one sweep. Records skipped because of a concurrent
    update are not listed."""

    outcomes: list[EscalationOutcome] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    def counts(self) -> dict[str, int]:
        return dict(Counter(o.result.value for o in self.outcomes))


@dataclass
class EscalationDecision:
    """Next step for a due record."""

    next_index: int
    exhausted: bool
    targets: list[str]


def _as_timedelta(timeout: timedelta | float) -> timedelta:
    if not isinstance(timeout, timedelta):
        timeout = timedelta(seconds=timeout)
    if timeout < timedelta(0):
        msg = "Escalation timeout must not be negative"
        raise ValueError(msg)
    return timeout


def is_due(record: EmergencyRecord, timeout: timedelta, now: datetime) -> bool:
    """A record is due once ``timeout`` has passed since its last
    notification, or since creation if it was never notified."""
    dueline = record.last_sent_at or record.created_at
    if dueline is None:
        return False
    return now - dueline >= timeout


def determine_next_step(record: EmergencyRecord) -> EscalationDecision:
    """Decide where a due record goes next (pure logic)."""
    next_index = (record.current_priority_index or 0) + 1
    if next_index >= len(record.priorities):
        return EscalationDecision(next_index=next_index, exhausted=True, targets=[])
    return EscalationDecision(
        next_index=next_index,
        exhausted=False,
        targets=resolve_targets(record.priorities[next_index]),
    )


async def _claim(
    store: RequestStore,
    record: EmergencyRecord,
    fields: dict[str, Any],
) -> bool:
    """Apply ``fields`` only if the record is unchanged since the scan."""
    try:
        result = await store.conditional_update(
            record.id,
            expected_index=record.current_priority_index or 0,
            expected_status=record.status,
            fields=fields,
        )
    except StoreConflict:
        result = UpdateResult.CONFLICT

    if result is UpdateResult.APPLIED:
        return True

    logger.debug(
        "Request changed since scan, skipping",
        request_id=record.id,
        update_result=result.value,
    )
    return False


async def escalate_request(
    record: EmergencyRecord,
    store: RequestStore,
    dispatcher: NotificationDispatcher,
    now: datetime,
    dispatch_timeout: float,
) -> EscalationOutcome | None:
    """Advance one due record by one step.

    Returns:
        The outcome, or None if a concurrent writer got there first.

    Raises:
        StoreUnavailable: If the store cannot be reached.
    """
    log = logger.bind(request_id=record.id)
    decision = determine_next_step(record)

    if decision.exhausted:
        if not await _claim(store, record, {"status": RequestStatus.ALL_TRIED.value}):
            return None
        log.info(
            "All priorities tried",
            priority_count=len(record.priorities),
        )
        return EscalationOutcome(record.id, EscalationResult.ALL_TRIED)

    progress = {
        "current_priority_index": decision.next_index,
        "last_sent_at": now,
    }
    if not await _claim(store, record, progress):
        return None

    if not decision.targets:
        log.warning(
            "Priority has no delivery target, skipped",
            next_index=decision.next_index,
        )
        return EscalationOutcome(
            record.id,
            EscalationResult.NO_TOKEN_SKIP,
            next_index=decision.next_index,
        )

    title, body, metadata = build_notification(record, escalation=True)
    try:
        await send_with_timeout(
            dispatcher, decision.targets, title, body, metadata, dispatch_timeout
        )
    except TransportError as e:
        log.warning(
            "Escalation notification failed",
            next_index=decision.next_index,
            target_count=len(decision.targets),
            error=str(e),
        )
        return EscalationOutcome(
            record.id,
            EscalationResult.FAILED,
            next_index=decision.next_index,
            error=str(e),
        )

    log.info(
        "Escalation notification sent",
        next_index=decision.next_index,
        target_count=len(decision.targets),
    )
    return EscalationOutcome(
        record.id,
        EscalationResult.SENT,
        next_index=decision.next_index,
    )


async def run_sweep(
    store: RequestStore,
    dispatcher: NotificationDispatcher,
    timeout: timedelta | float,
    now: datetime | None = None,
    clock: Clock = system_clock,
    max_concurrency: int | None = None,
    dispatch_timeout: float | None = None,
) -> SweepResult:
    """Escalate every pending request that is due.

    Due records are processed concurrently (bounded by
    ``max_concurrency``); a slow dispatch for one does not hold up the
    others. Only the records read by the initial scan are considered.

    Args:
        store: Request store.
        dispatcher: Push dispatcher.
        timeout: Time without response before escalating (timedelta or seconds).
        now: Sweep time; defaults to ``clock.now()``.
        clock: Clock used when ``now`` is not given.
        max_concurrency: Records escalated in parallel.
        dispatch_timeout: Seconds allowed per notification.

    Returns:
        SweepResult with one outcome per advanced record.

    Raises:
        StoreUnavailable: If the store cannot be reached. Raised after
            in-flight records finish.
    """
    timeout = _as_timedelta(timeout)
    if now is None:
        now = clock.now()
    if max_concurrency is None:
        max_concurrency = settings.escalation_max_concurrency
    if dispatch_timeout is None:
        dispatch_timeout = settings.dispatch_timeout_seconds

    token = sweep_id_ctx.set(uuid.uuid4().hex[:12])
    try:
        pending = await store.query_by_status(RequestStatus.PENDING.value)
        due = [record for record in pending if is_due(record, timeout, now)]

        logger.info(
            "Starting escalation sweep",
            pending_count=len(pending),
            due_count=len(due),
            timeout_seconds=timeout.total_seconds(),
        )

        semaphore = asyncio.Semaphore(max(1, max_concurrency))

        async def _bounded(record: EmergencyRecord) -> EscalationOutcome | None:
            async with semaphore:
                return await escalate_request(
                    record, store, dispatcher, now, dispatch_timeout
                )

        results = await asyncio.gather(
            *(_bounded(record) for record in due),
            return_exceptions=True,
        )

        sweep = SweepResult()
        store_error: StoreUnavailable | None = None
        for record, result in zip(due, results, strict=True):
            if isinstance(result, StoreUnavailable):
                store_error = store_error or result
            elif isinstance(result, Exception):
                logger.error(
                    "Unexpected error escalating request",
                    request_id=record.id,
                    error=str(result),
                )
                sweep.outcomes.append(
                    EscalationOutcome(
                        record.id, EscalationResult.FAILED, error=str(result)
                    )
                )
            elif isinstance(result, BaseException):
                raise result
            elif result is not None:
                sweep.outcomes.append(result)

        if store_error is not None:
            logger.error(
                "Escalation sweep aborted, store unavailable",
                error=str(store_error),
                completed=sweep.processed,
            )
            raise store_error

        logger.info(
            "Escalation sweep completed",
            processed=sweep.processed,
            skipped=len(due) - sweep.processed,
            **sweep.counts(),
        )
        return sweep
    finally:
        sweep_id_ctx.reset(token)
