"""
Telemetry channel (time-series backend logger).

Publishes the garage `SystemSnapshot` as eight numbered fields plus an
optional status text, in one batched write per update. The backend enforces
a minimum interval between writes; routine updates that arrive too early are
dropped, while intrusion and fire snapshots bypass the gate so a life-safety
event is always recorded.

The channel owns the retained snapshot. It is replaced wholesale only after
the backend confirmed a write, so it always mirrors the last accepted update.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from garage_alerts.core.rate_limiter import RateLimiter
from garage_alerts.domain.events import Event
from garage_alerts.domain.models import EVENT_NONE, EventKind, SystemSnapshot, event_code
from garage_alerts.notification.base import (
    Clock,
    Connectivity,
    DeliveryOutcome,
    TelemetryResult,
    always_connected,
    is_placeholder,
    mask,
    monotonic_clock,
)
from garage_alerts.transport.http_transport import HttpResponse, Transport, TransportError

logger = logging.getLogger(__name__)

DEFAULT_SERVER = "https://api.thingspeak.com"
FIELD_COUNT = 8

# Backend field number -> snapshot attribute
FIELD_NAMES: Dict[int, str] = {
    1: "temperature",
    2: "humidity",
    3: "smoke_level",
    4: "door_open",
    5: "pir_inside",
    6: "alarm_on",
    7: "distance_outside",
    8: "event_code",
}

_FIELD_TYPES: Dict[str, Callable[[Any], Any]] = {
    "temperature": float,
    "humidity": float,
    "smoke_level": int,
    "door_open": bool,
    "pir_inside": bool,
    "alarm_on": bool,
    "distance_outside": float,
    "event_code": int,
}


@dataclass(frozen=True)
class TelemetryConfig:
    """
    Configuration for the telemetry channel.

    Parameters
    ----------
    channel_id
        Backend channel number. Values <= 0 disable the channel.
    write_key
        Write credential. Placeholder values disable the channel.
    read_key
        Read credential for read-back; may be empty for public channels.
    server
        Backend base URL.
    min_interval_s
        Minimum seconds between confirmed writes (provider floor is 15).
    name
        Channel identifier used by the rate limiter.
    """

    channel_id: int
    write_key: str
    read_key: str = ""
    server: str = DEFAULT_SERVER
    min_interval_s: float = 30.0
    name: str = "telemetry"


def _check_field(index: int) -> str:
    if index not in FIELD_NAMES:
        raise ValueError(f"Field index must be 1..{FIELD_COUNT}, got {index!r}")
    return FIELD_NAMES[index]


def _parse_entry_id(text: str) -> Optional[int]:
    """Entry id in a write response, or None if the body is not an integer."""
    try:
        return int((text or "").strip())
    except ValueError:
        return None


class TelemetryChannel:
    """
    Time-series logger for the garage snapshot.

    Concurrency Model
    -----------------
    One lock serializes writes and snapshot replacement for this channel.
    Reads of `snapshot` return the immutable object last stored.

    Parameters
    ----------
    cfg
        Channel configuration.
    transport
        HTTP transport used for writes and read-back.
    limiter
        Shared or private rate limiter (a private one is created if omitted).
    clock
        Monotonic clock in seconds.
    connectivity
        Callable reporting whether the network is up.
    """

    def __init__(
        self,
        cfg: TelemetryConfig,
        transport: Transport,
        limiter: Optional[RateLimiter] = None,
        clock: Clock = monotonic_clock,
        connectivity: Connectivity = always_connected,
    ):
        self._cfg = cfg
        self._transport = transport
        self._limiter = limiter or RateLimiter()
        self._limiter.register(cfg.name, cfg.min_interval_s)
        self._clock = clock
        self._connectivity = connectivity
        self._lock = threading.Lock()
        self._snapshot = SystemSnapshot()

        self._loggers: Dict[EventKind, Callable[[Event, Optional[SystemSnapshot]], TelemetryResult]] = {
            EventKind.DOOR_OPEN: self.log_door_open,
            EventKind.DOOR_CLOSE: self.log_door_close,
            EventKind.INTRUSION: self.log_intrusion,
            EventKind.FIRE_ALERT: self.log_fire_alert,
            EventKind.SMOKE_ALERT: self.log_smoke_alert,
            EventKind.PERSON_DETECTED: self.log_person_detected,
            EventKind.VEHICLE_DETECTED: self.log_vehicle_detected,
            EventKind.HIGH_TEMPERATURE: self.log_high_temperature,
            EventKind.ALARM_ON: self.log_alarm_on,
            EventKind.ALARM_OFF: self.log_alarm_off,
            EventKind.SYSTEM_START: lambda ev, _base: self.log_system_start(ev),
            EventKind.TEST: self.log_test,
        }

    # --- Diagnostics ---
    @property
    def name(self) -> str:
        return self._cfg.name

    @property
    def snapshot(self) -> SystemSnapshot:
        """Last snapshot the backend confirmed."""
        return self._snapshot

    def is_configured(self) -> bool:
        return self._cfg.channel_id > 0 and not is_placeholder(self._cfg.write_key)

    def is_ready(self) -> bool:
        """Credential and channel configured AND connectivity present."""
        return self.is_configured() and bool(self._connectivity())

    def can_update(self) -> bool:
        return self._limiter.try_acquire(self.name, self._clock())

    def seconds_until_next_update(self) -> float:
        return self._limiter.seconds_until_next_allowed(self.name, self._clock())

    def get_send_count(self) -> int:
        return self._limiter.send_count(self.name)

    def reset_counter(self) -> None:
        self._limiter.reset_counter(self.name)

    # --- Writes ---
    def update(self, snapshot: SystemSnapshot, *, force: bool = False) -> TelemetryResult:
        """
        Write all snapshot fields in one call.

        Parameters
        ----------
        snapshot
            Snapshot to publish.
        force
            Bypass the rate gate (life-safety events only).

        Returns
        -------
        TelemetryResult
            ``delivered`` is True when the backend answered HTTP 200 and did
            not report entry id 0; the retained snapshot is replaced only in
            that case.
        """
        params: Dict[str, Any] = {f"field{n}": v for n, v in snapshot.field_values().items()}
        if snapshot.status_text:
            params["status"] = snapshot.status_text

        def _commit() -> None:
            self._snapshot = snapshot

        return self._gated_write(params, force=force, what="snapshot", on_success=_commit)

    def update_field(self, index: int, value: Union[float, int, bool]) -> TelemetryResult:
        """
        Write a single field (1..8), subject to the same rate gate.

        Raises
        ------
        ValueError
            If ``index`` is outside 1..8.
        """
        attr = _check_field(index)
        coerced = _FIELD_TYPES[attr](value)
        wire = int(coerced) if isinstance(coerced, bool) else coerced

        def _commit() -> None:
            self._snapshot = self._snapshot.merged(**{attr: coerced})

        return self._gated_write({f"field{index}": wire}, force=False, what=f"field{index}", on_success=_commit)

    def update_periodic(self, readings: Union[SystemSnapshot, Mapping[str, Any], None] = None) -> TelemetryResult:
        """
        Routine refresh of the sensor fields, without an event.

        Parameters
        ----------
        readings
            Fresh sensor values, as a full snapshot or a partial mapping
            merged into the retained snapshot.
        """
        if isinstance(readings, SystemSnapshot):
            base = readings
        else:
            base = self._snapshot.merged(readings)
        return self.update(base.merged(event_code=EVENT_NONE, status_text=""))

    # --- Event logging ---
    def log_event(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        """Route ``event`` to its kind-specific logging operation."""
        return self._loggers[event.kind](event, base)

    def log_door_open(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base, door_open=True, status_text=f"Door opened: {event.reason}")
        return self._log(event, snap)

    def log_door_close(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base, door_open=False, status_text=f"Door closed: {event.reason}")
        return self._log(event, snap)

    def log_intrusion(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(
            event,
            base,
            alarm_on=True,
            pir_inside=event.pir_detected,
            status_text="INTRUSION DETECTED!",
        )
        return self._log(event, snap, force=True)

    def log_fire_alert(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base, alarm_on=True)
        snap = snap.merged(status_text=f"FIRE! Temp:{snap.temperature:.1f}C Smoke:{snap.smoke_level}")
        return self._log(event, snap, force=True)

    def log_smoke_alert(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base)
        snap = snap.merged(status_text=f"High smoke detected: {snap.smoke_level}")
        return self._log(event, snap)

    def log_person_detected(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        location = event.source or event.reason or "garage"
        snap = self._derive(event, base, pir_inside=True, status_text=f"Person at: {location}")
        return self._log(event, snap)

    def log_vehicle_detected(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base)
        snap = snap.merged(status_text=f"Vehicle at {snap.distance_outside:.1f}cm")
        return self._log(event, snap)

    def log_high_temperature(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base)
        snap = snap.merged(status_text=f"High temperature: {snap.temperature:.1f}C")
        return self._log(event, snap)

    def log_alarm_on(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base, alarm_on=True, status_text=f"Alarm activated: {event.reason}")
        return self._log(event, snap)

    def log_alarm_off(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        who = event.source or event.reason or "unknown"
        snap = self._derive(event, base, alarm_on=False, status_text=f"Alarm OFF by {who}")
        return self._log(event, snap)

    def log_test(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        snap = self._derive(event, base, status_text=f"Test: {event.reason or 'manual'}")
        return self._log(event, snap)

    def log_system_start(self, event: Optional[Event] = None) -> TelemetryResult:
        """
        Publish a zeroed boot snapshot.

        The rate gate is reset to the epoch first, so the boot record is
        never throttled.
        """
        logger.info("Logging system start")
        self._limiter.reset(self.name)
        snap = SystemSnapshot(
            event_code=event_code(EventKind.SYSTEM_START),
            status_text="System started",
        )
        return self.update(snap)

    # --- Read-back ---
    def read_field(self, index: int) -> float:
        """
        Read the last stored value of a field (1..8).

        Returns 0.0 on any failure; read-back is diagnostic only.
        """
        _check_field(index)
        resp = self._read(f"/channels/{self._cfg.channel_id}/fields/{index}/last.txt")
        if resp is None:
            return 0.0
        try:
            return float(resp.text.strip())
        except ValueError:
            logger.warning("Unparseable value for field%d: %r", index, resp.text[:50])
            return 0.0

    def read_status(self) -> str:
        """Read the last stored status text ("" on any failure)."""
        resp = self._read(f"/channels/{self._cfg.channel_id}/status/last.json")
        if resp is None:
            return ""
        try:
            payload = json.loads(resp.text)
        except ValueError:
            return ""
        if not isinstance(payload, dict):
            return ""
        status = payload.get("status")
        return str(status) if status is not None else ""

    # --- Internals ---
    def _derive(self, event: Event, base: Optional[SystemSnapshot], **delta: Any) -> SystemSnapshot:
        snap = base if base is not None else self._snapshot
        snap = snap.merged(
            temperature=event.temperature,
            humidity=event.humidity,
            smoke_level=event.smoke_level,
            distance_outside=event.distance,
        )
        return snap.merged(event_code=event_code(event.kind), **delta)

    def _log(self, event: Event, snap: SystemSnapshot, force: bool = False) -> TelemetryResult:
        logger.info("Logging %s to telemetry", event.kind.value)
        return self.update(snap, force=force)

    def _unready_result(self) -> Optional[TelemetryResult]:
        if not self.is_configured():
            logger.warning("Telemetry channel %s misconfigured: channel id or write key not set", self.name)
            return TelemetryResult(delivered=False, outcome=DeliveryOutcome.MISCONFIGURED)
        if not self._connectivity():
            logger.warning("Telemetry channel %s unavailable: no connectivity", self.name)
            return TelemetryResult(delivered=False, outcome=DeliveryOutcome.UNAVAILABLE)
        return None

    def _gated_write(
        self,
        params: Dict[str, Any],
        *,
        force: bool,
        what: str,
        on_success: Callable[[], None],
    ) -> TelemetryResult:
        unready = self._unready_result()
        if unready is not None:
            return unready

        with self._lock:
            now = self._clock()
            if force:
                if not self._limiter.try_acquire(self.name, now):
                    logger.info("Emergency telemetry update: bypassing rate limit")
                self._limiter.force_acquire(self.name, now)
            elif not self._limiter.try_acquire(self.name, now):
                logger.info(
                    "Skipping telemetry %s (rate limit, %.1fs left)",
                    what,
                    self._limiter.seconds_until_next_allowed(self.name, now),
                )
                return TelemetryResult(delivered=False, outcome=DeliveryOutcome.RATE_LIMITED)

            payload = {"api_key": self._cfg.write_key, **params}
            logger.info(
                "Writing telemetry %s to channel %d (key %s)",
                what,
                self._cfg.channel_id,
                mask(self._cfg.write_key),
            )
            try:
                resp = self._transport.post(f"{self._cfg.server}/update", data=payload)
            except TransportError as e:
                logger.warning("Telemetry write failed: %s", e)
                return TelemetryResult(delivered=False, outcome=DeliveryOutcome.TRANSPORT_FAILURE)

            if resp.status_code != 200:
                logger.warning("Telemetry write failed. HTTP code: %d", resp.status_code)
                return TelemetryResult(delivered=False, outcome=DeliveryOutcome.TRANSPORT_FAILURE)

            entry_id = _parse_entry_id(resp.text)
            if entry_id is not None and entry_id <= 0:
                # refused or throttled writes are answered with 200 and entry id 0
                logger.warning("Telemetry %s not inserted by backend (entry %d)", what, entry_id)
                return TelemetryResult(delivered=False, outcome=DeliveryOutcome.APPLICATION_REJECTED)

            on_success()
            self._limiter.record_success(self.name, self._clock())
            logger.info("Telemetry %s written (entry %s)", what, entry_id)
            return TelemetryResult(delivered=True, outcome=DeliveryOutcome.DELIVERED, entry_id=entry_id)

    def _read(self, path: str) -> Optional[HttpResponse]:
        if self._cfg.channel_id <= 0 or not self._connectivity():
            return None
        params = {}
        if not is_placeholder(self._cfg.read_key):
            params["api_key"] = self._cfg.read_key
        try:
            resp = self._transport.get(f"{self._cfg.server}{path}", params=params or None)
        except TransportError as e:
            logger.warning("Telemetry read failed: %s", e)
            return None
        if resp.status_code != 200:
            logger.warning("Telemetry read failed. Status: %d", resp.status_code)
            return None
        return resp
