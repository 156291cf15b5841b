from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from garage_alerts.core.policy import DEFAULT_POLICIES, DispatchPolicy, policy_for
from garage_alerts.domain.events import Event
from garage_alerts.domain.models import EventKind, SystemSnapshot
from garage_alerts.notification.base import (
    DeliveryOutcome,
    PushResult,
    PushSender,
    TelemetryLogger,
    TelemetryResult,
)

logger = logging.getLogger(__name__)

SnapshotFragment = Union[SystemSnapshot, Mapping[str, Any], None]
R = TypeVar("R")


@dataclass(frozen=True)
class DispatchResult:
    """
    Combined outcome of one dispatch.

    Partial delivery (one channel failed) is a normal, reportable outcome.

    Parameters
    ----------
    event
        Dispatched event.
    push
        Push channel result.
    telemetry
        Telemetry channel result.
    """

    event: Event
    push: PushResult
    telemetry: TelemetryResult

    @property
    def push_delivered(self) -> bool:
        return self.push.delivered

    @property
    def telemetry_delivered(self) -> bool:
        return self.telemetry.delivered

    @property
    def fully_delivered(self) -> bool:
        return self.push_delivered and self.telemetry_delivered


@dataclass
class DispatchStats:
    """Dispatch counters since start or the last reset."""

    dispatched: int = 0
    push_delivered: int = 0
    telemetry_delivered: int = 0
    partial: int = 0


@dataclass
class AlertDispatcher:
    """
    Fan out classified events to the push and telemetry channels.

    Responsibilities
    ----------------
    - Look up the dispatch policy for the event, adjusted to its severity.
    - Merge the caller's snapshot fragment into the telemetry base snapshot.
    - Call both channels; a failure in one never prevents the other.
    - Track dispatch counters.

    Notes
    -----
    Rate limiting, payload building and remote calls live in the channels;
    this class contains orchestration logic only.

    Parameters
    ----------
    push
        Push notification channel.
    telemetry
        Telemetry logging channel.
    policies
        Dispatch policy table (defaults to `DEFAULT_POLICIES`). Must cover
        every `EventKind`; an incomplete table raises ``ValueError``.
    parallel
        Run both channel calls concurrently and wait for both.
    """

    push: PushSender
    telemetry: TelemetryLogger
    policies: Mapping[EventKind, DispatchPolicy] = field(default_factory=lambda: DEFAULT_POLICIES)
    parallel: bool = False

    _stats: DispatchStats = field(default_factory=DispatchStats, init=False, repr=False)
    _stats_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _executor: Optional[ThreadPoolExecutor] = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        missing = [k.value for k in EventKind if k not in self.policies]
        if missing:
            raise ValueError(f"Dispatch policy table has no entry for: {', '.join(missing)}")

    def dispatch(self, event: Event, snapshot_fragment: SnapshotFragment = None) -> DispatchResult:
        """
        Report one event on both channels.

        Parameters
        ----------
        event
            Classified event.
        snapshot_fragment
            Caller's best-known sensor state: a full snapshot, or a partial
            mapping merged into the telemetry channel's retained snapshot.

        Returns
        -------
        DispatchResult
            Both channel outcomes; never raised as an error.
        """
        policy = policy_for(event.kind, event.severity, self.policies)
        base = self._base_snapshot(snapshot_fragment)

        def _push() -> PushResult:
            return self.push.send(event, policy)

        def _telemetry() -> TelemetryResult:
            return self.telemetry.log_event(event, base)

        logger.info("Dispatching %s (severity %s)", event.kind.value, event.severity.name)

        if self.parallel:
            executor = self._get_executor()
            push_future = executor.submit(self._isolated, "push", _push, PushResult)
            telemetry_future = executor.submit(self._isolated, "telemetry", _telemetry, TelemetryResult)
            push_result = push_future.result()
            telemetry_result = telemetry_future.result()
        else:
            push_result = self._isolated("push", _push, PushResult)
            telemetry_result = self._isolated("telemetry", _telemetry, TelemetryResult)

        result = DispatchResult(event=event, push=push_result, telemetry=telemetry_result)
        self._count(result)

        if not result.fully_delivered:
            logger.info(
                "Partial delivery for %s: push=%s telemetry=%s",
                event.kind.value,
                push_result.outcome.value,
                telemetry_result.outcome.value,
            )
        return result

    @property
    def stats(self) -> DispatchStats:
        """Copy of the dispatch counters."""
        with self._stats_lock:
            s = self._stats
            return DispatchStats(
                dispatched=s.dispatched,
                push_delivered=s.push_delivered,
                telemetry_delivered=s.telemetry_delivered,
                partial=s.partial,
            )

    def reset_stats(self) -> None:
        with self._stats_lock:
            self._stats = DispatchStats()

    def close(self) -> None:
        """Shut down the worker pool used for parallel dispatch."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _base_snapshot(self, fragment: SnapshotFragment) -> SystemSnapshot:
        if isinstance(fragment, SystemSnapshot):
            return fragment
        return self.telemetry.snapshot.merged(fragment)

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="alert-dispatch")
        return self._executor

    @staticmethod
    def _isolated(channel: str, call: Callable[[], R], result_type: Callable[..., R]) -> R:
        # A crashing channel must not take the other one (or the host) down.
        try:
            return call()
        except Exception:
            logger.exception("Unexpected error in %s channel", channel)
            return result_type(delivered=False, outcome=DeliveryOutcome.TRANSPORT_FAILURE)

    def _count(self, result: DispatchResult) -> None:
        with self._stats_lock:
            self._stats.dispatched += 1
            if result.push_delivered:
                self._stats.push_delivered += 1
            if result.telemetry_delivered:
                self._stats.telemetry_delivered += 1
            if result.push_delivered != result.telemetry_delivered:
                self._stats.partial += 1
