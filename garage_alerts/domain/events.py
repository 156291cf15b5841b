"""
Event domain model.

An `Event` represents *what was detected* at a specific moment, while
`SystemSnapshot` (in models.py) represents *what is currently true*.

Events are created by the sensor/logic layer when a condition is classified,
handed to the dispatcher once and then discarded. They are immutable so they
can be shared safely between the two channel calls of one dispatch.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from garage_alerts.domain.models import EventKind, Severity

# Sensor thresholds used by the classification layer and by severity escalation.
VEHICLE_DETECT_DISTANCE_CM = 100.0
TEMP_WARNING_C = 45.0
TEMP_CRITICAL_C = 60.0
SMOKE_WARNING = 600
SMOKE_CRITICAL = 800

LIFE_SAFETY_KINDS = frozenset({EventKind.INTRUSION, EventKind.FIRE_ALERT})

_BASE_SEVERITY = {
    EventKind.INTRUSION: Severity.EMERGENCY,
    EventKind.FIRE_ALERT: Severity.EMERGENCY,
    EventKind.HIGH_TEMPERATURE: Severity.HIGH,
    EventKind.SMOKE_ALERT: Severity.HIGH,
    EventKind.VEHICLE_DETECTED: Severity.HIGH,
    EventKind.ALARM_ON: Severity.HIGH,
    EventKind.DOOR_OPEN: Severity.NORMAL,
    EventKind.DOOR_CLOSE: Severity.NORMAL,
    EventKind.ALARM_OFF: Severity.NORMAL,
    EventKind.SYSTEM_START: Severity.NORMAL,
    EventKind.PERSON_DETECTED: Severity.NORMAL,
    EventKind.TEST: Severity.LOW,
}


def classify_with(kind: EventKind, context: Optional[Mapping[str, Any]] = None) -> Severity:
    """
    Derive the severity of an event from its kind and measured values.

    Life-safety kinds (fire, intrusion) are always EMERGENCY. High
    temperature and smoke warnings escalate to EMERGENCY once the measured
    value reaches the critical threshold.

    Parameters
    ----------
    kind
        Event kind.
    context
        Optional measured values, e.g. ``{"temperature": 61.0}`` or
        ``{"smoke_level": 820}``.

    Returns
    -------
    Severity
        Severity tier for the event.
    """
    kind = EventKind(kind)
    ctx = context or {}
    severity = _BASE_SEVERITY[kind]

    if kind is EventKind.HIGH_TEMPERATURE:
        temperature = ctx.get("temperature")
        if temperature is not None and temperature >= TEMP_CRITICAL_C:
            return Severity.EMERGENCY

    if kind is EventKind.SMOKE_ALERT:
        smoke = ctx.get("smoke_level")
        if smoke is not None and smoke >= SMOKE_CRITICAL:
            return Severity.EMERGENCY

    return severity


@dataclass(frozen=True)
class Event:
    """
    Classified occurrence to be reported.

    Parameters
    ----------
    kind
        Event kind. Plain strings are accepted if they name an `EventKind`
        member; anything else is rejected with ``ValueError``.
    severity
        Optional explicit severity. When omitted it is derived with
        `classify_with`. Fire and intrusion events are never downgraded.
    reason
        Free-form description (e.g. "remote command", "auto close").
    source
        Free-form origin (e.g. sensor or user name).
    distance
        Outside ultrasonic distance in cm.
    temperature
        Temperature in degrees Celsius.
    smoke_level
        Raw gas sensor reading.
    humidity
        Relative humidity in percent.
    pir_detected, ultrasonic_detected
        Detector flags reported with intrusion events.
    timestamp
        Wall-clock detection time.
    """

    kind: EventKind
    severity: Optional[Severity] = None
    reason: str = ""
    source: str = ""
    distance: Optional[float] = None
    temperature: Optional[float] = None
    smoke_level: Optional[int] = None
    humidity: Optional[float] = None
    pir_detected: Optional[bool] = None
    ultrasonic_detected: Optional[bool] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def __post_init__(self) -> None:
        kind = EventKind(self.kind)
        object.__setattr__(self, "kind", kind)

        derived = classify_with(kind, self.context())
        if self.severity is None:
            severity = derived
        else:
            severity = Severity(self.severity)
            if kind in LIFE_SAFETY_KINDS:
                severity = Severity.EMERGENCY
        object.__setattr__(self, "severity", severity)

    @property
    def is_life_safety(self) -> bool:
        """True for fire and intrusion events."""
        return self.kind in LIFE_SAFETY_KINDS

    def context(self) -> dict:
        """
        Return the numeric context fields that are set.

        Returns
        -------
        dict
            Mapping of field name to value, ``None`` values omitted.
        """
        values = {
            "distance": self.distance,
            "temperature": self.temperature,
            "smoke_level": self.smoke_level,
            "humidity": self.humidity,
        }
        return {k: v for k, v in values.items() if v is not None}
