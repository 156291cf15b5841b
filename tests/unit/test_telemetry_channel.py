"""
Unit tests for garage_alerts.notification.telemetry_channel.

These tests validate the telemetry logger using a recording fake transport:
- batched 8-field writes with optional status text
- retained snapshot replaced only after a confirmed write
- routine updates gated by the minimum interval, fire/intrusion bypass
- system start resets the gate and publishes a zeroed snapshot
- single-field writes and read-back sentinels

No real network requests are made.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest

from garage_alerts.domain.events import Event
from garage_alerts.domain.models import EVENT_NONE, EventKind, SystemSnapshot, event_code
from garage_alerts.notification.base import DeliveryOutcome
from garage_alerts.notification.telemetry_channel import (
    DEFAULT_SERVER,
    TelemetryChannel,
    TelemetryConfig,
)
from garage_alerts.transport.http_transport import HttpResponse, TransportError


@dataclass
class FakeTransport:
    """
    Recording transport; POST/GET answers are queued per method.
    """

    post_queue: List[Union[HttpResponse, Exception]] = field(default_factory=list)
    get_queue: List[Union[HttpResponse, Exception]] = field(default_factory=list)
    posts: List[Tuple[str, Dict[str, Any]]] = field(default_factory=list)
    gets: List[Tuple[str, Any]] = field(default_factory=list)

    @staticmethod
    def _pop(queue: List[Union[HttpResponse, Exception]], default: HttpResponse) -> HttpResponse:
        if not queue:
            return default
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url: str, data: Any = None, headers: Optional[Dict[str, str]] = None) -> HttpResponse:
        self.posts.append((url, dict(data)))
        return self._pop(self.post_queue, HttpResponse(200, str(len(self.posts))))

    def get(self, url: str, params: Any = None) -> HttpResponse:
        self.gets.append((url, params))
        return self._pop(self.get_queue, HttpResponse(404, ""))


@dataclass
class FakeClock:
    now: float = 500.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _mk_channel(
    min_interval_s: float = 30.0,
    channel_id: int = 1234567,
    write_key: str = "WRITEKEY",
    read_key: str = "",
    connected: bool = True,
) -> Tuple[TelemetryChannel, FakeTransport, FakeClock]:
    transport = FakeTransport()
    clock = FakeClock()
    ch = TelemetryChannel(
        TelemetryConfig(
            channel_id=channel_id,
            write_key=write_key,
            read_key=read_key,
            min_interval_s=min_interval_s,
        ),
        transport=transport,
        clock=clock,
        connectivity=lambda: connected,
    )
    return ch, transport, clock


def test_update_writes_all_fields_and_status() -> None:
    ch, transport, _ = _mk_channel()
    snap = SystemSnapshot(
        temperature=24.5,
        humidity=55.0,
        smoke_level=120,
        door_open=True,
        distance_outside=250.0,
        event_code=1,
        status_text="Door opened: remote",
    )

    result = ch.update(snap)

    assert result.delivered is True
    assert result.entry_id == 1
    url, data = transport.posts[0]
    assert url == f"{DEFAULT_SERVER}/update"
    assert data["api_key"] == "WRITEKEY"
    assert data["field1"] == 24.5
    assert data["field3"] == 120
    assert data["field4"] == 1
    assert data["field5"] == 0
    assert data["field8"] == 1
    assert data["status"] == "Door opened: remote"
    assert ch.snapshot == snap


def test_empty_status_is_not_sent() -> None:
    ch, transport, _ = _mk_channel()
    ch.update(SystemSnapshot(temperature=20.0))
    assert "status" not in transport.posts[0][1]


def test_fire_alert_bypasses_rate_limit() -> None:
    """
    Fire is logged one second after a routine write despite a 30 s floor.
    """
    ch, transport, clock = _mk_channel(min_interval_s=30.0)
    assert ch.update(SystemSnapshot(temperature=25.0)).delivered is True

    clock.advance(1)
    fire = Event(kind=EventKind.FIRE_ALERT, temperature=72.5, smoke_level=850, humidity=40.0)
    result = ch.log_event(fire)

    assert result.delivered is True
    data = transport.posts[-1][1]
    assert "72.5" in data["status"]
    assert "850" in data["status"]
    assert data["field8"] == event_code(EventKind.FIRE_ALERT) == 4
    assert data["field6"] == 1
    assert ch.snapshot.alarm_on is True
    assert ch.snapshot.temperature == 72.5


def test_routine_write_after_forced_write_is_still_gated() -> None:
    ch, _, clock = _mk_channel(min_interval_s=30.0)
    ch.update(SystemSnapshot())
    clock.advance(1)
    ch.log_event(Event(kind=EventKind.INTRUSION, pir_detected=True))

    result = ch.log_event(Event(kind=EventKind.DOOR_OPEN, reason="remote"))
    assert result.outcome is DeliveryOutcome.RATE_LIMITED


def test_intrusion_bypasses_rate_limit() -> None:
    ch, transport, clock = _mk_channel(min_interval_s=30.0)
    ch.update(SystemSnapshot())
    clock.advance(2)

    result = ch.log_intrusion(Event(kind=EventKind.INTRUSION, pir_detected=True, ultrasonic_detected=True))

    assert result.delivered is True
    data = transport.posts[-1][1]
    assert data["status"] == "INTRUSION DETECTED!"
    assert data["field5"] == 1
    assert data["field6"] == 1
    assert data["field8"] == 3


def test_second_vehicle_event_within_window_is_dropped() -> None:
    """
    A denied routine write makes no remote call and keeps the snapshot.
    """
    ch, transport, clock = _mk_channel(min_interval_s=15.0)
    first = ch.log_event(Event(kind=EventKind.VEHICLE_DETECTED, distance=80.0))
    assert first.delivered is True
    assert transport.posts[-1][1]["status"] == "Vehicle at 80.0cm"
    kept = ch.snapshot

    clock.advance(1)
    second = ch.log_event(Event(kind=EventKind.VEHICLE_DETECTED, distance=40.0))

    assert second.delivered is False
    assert second.outcome is DeliveryOutcome.RATE_LIMITED
    assert len(transport.posts) == 1
    assert ch.snapshot is kept
    assert ch.seconds_until_next_update() == pytest.approx(14.0)


def test_allowed_again_at_exact_interval() -> None:
    ch, _, clock = _mk_channel(min_interval_s=15.0)
    ch.update(SystemSnapshot())
    clock.advance(15)
    assert ch.can_update() is True
    assert ch.update(SystemSnapshot()).delivered is True


def test_failed_write_keeps_snapshot_and_gate() -> None:
    ch, transport, _ = _mk_channel()
    transport.post_queue.append(HttpResponse(500, "0"))

    result = ch.log_event(Event(kind=EventKind.DOOR_OPEN, reason="remote"))

    assert result.outcome is DeliveryOutcome.TRANSPORT_FAILURE
    assert ch.snapshot == SystemSnapshot()
    assert ch.get_send_count() == 0
    assert ch.can_update() is True


def test_transport_error_is_reported_not_raised() -> None:
    ch, transport, _ = _mk_channel()
    transport.post_queue.append(TransportError("connection refused"))

    result = ch.update(SystemSnapshot())

    assert result.delivered is False
    assert result.outcome is DeliveryOutcome.TRANSPORT_FAILURE


def test_system_start_resets_gate_and_zeroes_snapshot() -> None:
    ch, transport, clock = _mk_channel(min_interval_s=30.0)
    ch.update(SystemSnapshot(temperature=30.0, door_open=True, status_text="before"))
    clock.advance(1)

    result = ch.log_system_start()

    assert result.delivered is True
    data = transport.posts[-1][1]
    assert data["field8"] == 10
    assert data["status"] == "System started"
    assert data["field1"] == 0.0
    assert data["field4"] == 0
    assert ch.snapshot == SystemSnapshot(event_code=10, status_text="System started")


def test_door_events_track_door_state() -> None:
    ch, transport, clock = _mk_channel(min_interval_s=15.0)
    ch.log_door_open(Event(kind=EventKind.DOOR_OPEN, reason="remote"))
    assert ch.snapshot.door_open is True
    assert transport.posts[-1][1]["status"] == "Door opened: remote"

    clock.advance(15)
    ch.log_door_close(Event(kind=EventKind.DOOR_CLOSE, reason="auto close"))
    assert ch.snapshot.door_open is False
    assert transport.posts[-1][1]["field8"] == 2


def test_base_snapshot_fragment_is_used() -> None:
    ch, transport, _ = _mk_channel()
    base = SystemSnapshot(temperature=21.0, humidity=60.0, distance_outside=300.0)

    ch.log_alarm_off(Event(kind=EventKind.ALARM_OFF, source="keypad"), base)

    data = transport.posts[-1][1]
    assert data["field1"] == 21.0
    assert data["field2"] == 60.0
    assert data["field6"] == 0
    assert data["status"] == "Alarm OFF by keypad"


def test_update_periodic_clears_event_and_status() -> None:
    ch, transport, clock = _mk_channel(min_interval_s=15.0)
    ch.log_door_open(Event(kind=EventKind.DOOR_OPEN, reason="remote"))
    clock.advance(20)

    result = ch.update_periodic({"temperature": 26.0, "humidity": 48.0})

    assert result.delivered is True
    data = transport.posts[-1][1]
    assert data["field8"] == EVENT_NONE
    assert "status" not in data
    assert data["field4"] == 1
    assert ch.snapshot.temperature == 26.0


def test_update_field_writes_one_field() -> None:
    ch, transport, _ = _mk_channel()

    result = ch.update_field(4, True)

    assert result.delivered is True
    data = transport.posts[-1][1]
    assert data == {"api_key": "WRITEKEY", "field4": 1}
    assert ch.snapshot.door_open is True


@pytest.mark.parametrize("index", [0, 9, -1])
def test_update_field_rejects_bad_index(index: int) -> None:
    ch, transport, _ = _mk_channel()
    with pytest.raises(ValueError):
        ch.update_field(index, 1.0)
    assert transport.posts == []


def test_misconfigured_channel_makes_no_call() -> None:
    ch, transport, _ = _mk_channel(write_key="YOUR_THINGSPEAK_WRITE_KEY")
    result = ch.log_event(Event(kind=EventKind.FIRE_ALERT, temperature=70.0, smoke_level=900))

    assert result.outcome is DeliveryOutcome.MISCONFIGURED
    assert transport.posts == []
    assert ch.is_ready() is False


def test_zero_channel_id_is_misconfigured() -> None:
    ch, transport, _ = _mk_channel(channel_id=0)
    assert ch.update(SystemSnapshot()).outcome is DeliveryOutcome.MISCONFIGURED
    assert transport.posts == []


def test_no_connectivity_is_unavailable() -> None:
    ch, transport, _ = _mk_channel(connected=False)
    assert ch.update(SystemSnapshot()).outcome is DeliveryOutcome.UNAVAILABLE
    assert transport.posts == []


def test_read_field_returns_value() -> None:
    ch, transport, _ = _mk_channel(read_key="READKEY")
    transport.get_queue.append(HttpResponse(200, "24.50\n"))

    assert ch.read_field(1) == pytest.approx(24.5)
    url, params = transport.gets[0]
    assert url == f"{DEFAULT_SERVER}/channels/1234567/fields/1/last.txt"
    assert params == {"api_key": "READKEY"}


def test_read_field_failure_sentinel() -> None:
    ch, transport, _ = _mk_channel()
    transport.get_queue.append(HttpResponse(200, "not-a-number"))
    assert ch.read_field(2) == 0.0

    transport.get_queue.append(TransportError("timeout"))
    assert ch.read_field(2) == 0.0

    assert ch.read_field(2) == 0.0  # default 404


def test_read_without_read_key_sends_no_params() -> None:
    ch, transport, _ = _mk_channel()
    ch.read_field(3)
    assert transport.gets[0][1] is None


def test_read_status() -> None:
    ch, transport, _ = _mk_channel()
    transport.get_queue.append(HttpResponse(200, '{"created_at":"2024-01-01T00:00:00Z","status":"System started"}'))

    assert ch.read_status() == "System started"
    assert transport.gets[0][0].endswith("/channels/1234567/status/last.json")


def test_read_status_failure_sentinel() -> None:
    ch, transport, _ = _mk_channel()
    transport.get_queue.append(HttpResponse(200, "garbage"))
    assert ch.read_status() == ""
    assert ch.read_status() == ""


def test_counters() -> None:
    ch, _, clock = _mk_channel(min_interval_s=15.0)
    ch.update(SystemSnapshot())
    clock.advance(15)
    ch.update(SystemSnapshot())
    assert ch.get_send_count() == 2

    ch.reset_counter()
    assert ch.get_send_count() == 0


def test_zero_entry_id_is_not_delivery() -> None:
    """
    HTTP 200 with entry id 0 means the backend did not store the write.
    """
    ch, transport, _ = _mk_channel()
    transport.post_queue.append(HttpResponse(200, "0"))

    result = ch.log_event(Event(kind=EventKind.DOOR_OPEN, reason="remote"))

    assert result.delivered is False
    assert result.outcome is DeliveryOutcome.APPLICATION_REJECTED
    assert ch.snapshot == SystemSnapshot()
    assert ch.get_send_count() == 0
    assert ch.can_update() is True


def test_rejected_forced_write_keeps_cooldown() -> None:
    ch, transport, clock = _mk_channel(min_interval_s=30.0)
    ch.update(SystemSnapshot())
    clock.advance(1)
    transport.post_queue.append(HttpResponse(200, "0"))

    result = ch.log_event(Event(kind=EventKind.FIRE_ALERT, temperature=70.0, smoke_level=900))

    assert result.outcome is DeliveryOutcome.APPLICATION_REJECTED
    assert ch.snapshot.alarm_on is False
    assert ch.seconds_until_next_update() == pytest.approx(29.0)


def test_non_numeric_success_body_is_delivery() -> None:
    ch, transport, _ = _mk_channel()
    transport.post_queue.append(HttpResponse(200, "OK"))

    result = ch.update(SystemSnapshot(temperature=19.0))

    assert result.delivered is True
    assert result.entry_id is None
    assert ch.snapshot.temperature == 19.0
