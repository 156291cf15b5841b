"""
Domain models and enums.

This module defines the core domain-level types shared by the alert
dispatcher and both reporting channels:
- Event kinds (closed set) and their telemetry event codes
- Severity tiers, whose integer value doubles as the push priority
- SystemSnapshot, the last-known aggregate garage state mirrored to telemetry

Snapshots are immutable (frozen) dataclasses. The telemetry channel owns the
"current" snapshot and replaces it wholesale after each confirmed write.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional


class EventKind(str, Enum):
    """
    Closed set of classified occurrences the dispatcher can report.

    Members
    -------
    DOOR_OPEN, DOOR_CLOSE : str
        Door actuator finished opening / closing.
    INTRUSION : str
        Presence detected inside the closed garage.
    FIRE_ALERT : str
        Fire conditions (temperature and smoke) detected.
    SMOKE_ALERT : str
        Smoke level above the warning threshold.
    VEHICLE_DETECTED : str
        Vehicle waiting in front of the door.
    PERSON_DETECTED : str
        Motion detected by the inside PIR sensor.
    HIGH_TEMPERATURE : str
        Temperature above the warning threshold.
    ALARM_ON, ALARM_OFF : str
        Alarm system armed / disarmed.
    SYSTEM_START : str
        Process boot.
    TEST : str
        Manual end-to-end check of the reporting channels.
    """

    DOOR_OPEN = "DOOR_OPEN"
    DOOR_CLOSE = "DOOR_CLOSE"
    INTRUSION = "INTRUSION"
    FIRE_ALERT = "FIRE_ALERT"
    SMOKE_ALERT = "SMOKE_ALERT"
    VEHICLE_DETECTED = "VEHICLE_DETECTED"
    PERSON_DETECTED = "PERSON_DETECTED"
    HIGH_TEMPERATURE = "HIGH_TEMPERATURE"
    ALARM_ON = "ALARM_ON"
    ALARM_OFF = "ALARM_OFF"
    SYSTEM_START = "SYSTEM_START"
    TEST = "TEST"


class Severity(int, Enum):
    """
    Urgency tier of an event.

    The integer value is the push-provider priority (-2 .. 2), so members
    compare and sort naturally: ``SILENT < LOW < NORMAL < HIGH < EMERGENCY``.

    Members
    -------
    SILENT : int
        No sound, badge only.
    LOW : int
        Delivered without sound.
    NORMAL : int
        Default sound.
    HIGH : int
        Louder sound, stronger vibration.
    EMERGENCY : int
        Re-alerts the recipient until acknowledged or expired.
    """

    SILENT = -2
    LOW = -1
    NORMAL = 0
    HIGH = 1
    EMERGENCY = 2


# Telemetry field 8 values. Codes 0-10 are the ones the deployed dashboards
# already chart; HIGH_TEMPERATURE and TEST were added later.
EVENT_NONE = 0

EVENT_CODES: Dict[EventKind, int] = {
    EventKind.DOOR_OPEN: 1,
    EventKind.DOOR_CLOSE: 2,
    EventKind.INTRUSION: 3,
    EventKind.FIRE_ALERT: 4,
    EventKind.SMOKE_ALERT: 5,
    EventKind.PERSON_DETECTED: 6,
    EventKind.VEHICLE_DETECTED: 7,
    EventKind.ALARM_ON: 8,
    EventKind.ALARM_OFF: 9,
    EventKind.SYSTEM_START: 10,
    EventKind.HIGH_TEMPERATURE: 11,
    EventKind.TEST: 12,
}


def event_code(kind: EventKind) -> int:
    """Return the telemetry event code for ``kind``."""
    return EVENT_CODES[EventKind(kind)]


@dataclass(frozen=True)
class SystemSnapshot:
    """
    Last-known aggregate garage state, as published to telemetry.

    Field order matches the backend channel layout (field1 .. field8) plus
    the free-text status.

    Parameters
    ----------
    temperature
        Garage temperature in degrees Celsius (field 1).
    humidity
        Relative humidity in percent (field 2).
    smoke_level
        Raw gas sensor reading (field 3).
    door_open
        Door open flag (field 4).
    pir_inside
        Inside PIR motion flag (field 5).
    alarm_on
        Alarm armed/triggered flag (field 6).
    distance_outside
        Outside ultrasonic distance in cm (field 7).
    event_code
        Code of the event that produced this snapshot (field 8).
    status_text
        Optional human-readable status; only sent when non-empty.
    """

    temperature: float = 0.0
    humidity: float = 0.0
    smoke_level: int = 0
    door_open: bool = False
    pir_inside: bool = False
    alarm_on: bool = False
    distance_outside: float = 0.0
    event_code: int = EVENT_NONE
    status_text: str = ""

    def merged(self, fragment: Optional[Mapping[str, Any]] = None, **changes: Any) -> "SystemSnapshot":
        """
        Return a copy with the given fields replaced.

        Parameters
        ----------
        fragment
            Partial mapping of snapshot fields (e.g. the caller's best-known
            sensor values). ``None`` values are ignored.
        **changes
            Additional field overrides applied after ``fragment``.

        Raises
        ------
        ValueError
            If a key is not a snapshot field.
        """
        updates: Dict[str, Any] = {}
        for source in (fragment or {}, changes):
            for key, value in source.items():
                if key not in _SNAPSHOT_FIELDS:
                    raise ValueError(f"Unknown snapshot field: {key!r}")
                if value is not None:
                    updates[key] = value
        return replace(self, **updates) if updates else self

    def field_values(self) -> Dict[int, float]:
        """
        Map backend field numbers (1..8) to their numeric values.

        Booleans are written as 0/1.
        """
        return {
            1: float(self.temperature),
            2: float(self.humidity),
            3: int(self.smoke_level),
            4: 1 if self.door_open else 0,
            5: 1 if self.pir_inside else 0,
            6: 1 if self.alarm_on else 0,
            7: float(self.distance_outside),
            8: int(self.event_code),
        }


_SNAPSHOT_FIELDS = frozenset(f.name for f in fields(SystemSnapshot))
