"""
Dispatch policy table.

Static mapping from event kind to the push-notification parameters (title,
sound, icon, colour, vibration, time-to-live and the emergency re-alert
settings). The table is defined once at import time and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Mapping, Optional

from garage_alerts.domain.models import EventKind, Severity

# Provider sound indexes (0-62)
SOUND_SILENT = 0
SOUND_AHEM = 1
SOUND_POSITIVE = 4
SOUND_ALARM = 8
SOUND_SIREN = 24

# Provider icon indexes (1-181)
ICON_INFO = 1
ICON_WARNING = 2
ICON_ERROR = 3
ICON_SUCCESS = 4
ICON_HOME = 33
ICON_FIRE = 62
ICON_SECURITY = 96
ICON_CAR = 139

VIBRATION_LOW = 1
VIBRATION_MEDIUM = 2
VIBRATION_HIGH = 3

DEFAULT_EMERGENCY_RETRY_S = 60
DEFAULT_EMERGENCY_EXPIRE_S = 1800


@dataclass(frozen=True)
class DispatchPolicy:
    """
    Push parameters for one event kind.

    Parameters
    ----------
    title
        Notification title.
    priority
        Push priority (the event severity tier).
    sound, icon
        Provider sound / icon indexes.
    icon_color
        Icon colour as ``#RRGGBB``.
    vibration
        Vibration strength 1-3 (0 = provider default).
    ttl_minutes
        Time-to-live in minutes, 0 = never expires.
    retry_s, expire_s
        Re-alert interval and absolute expiry in seconds. Only sent for
        EMERGENCY priority.
    """

    title: str
    priority: Severity
    sound: int
    icon: int
    icon_color: str
    vibration: int
    ttl_minutes: int = 0
    retry_s: int = 0
    expire_s: int = 0

    @property
    def is_emergency(self) -> bool:
        return self.priority is Severity.EMERGENCY

    def for_severity(self, severity: Severity) -> "DispatchPolicy":
        """
        Adjust the policy to the actual severity of an event.

        Escalated events get default re-alert settings when the entry has
        none; non-emergency events never carry retry/expire.
        """
        severity = Severity(severity)
        if severity is Severity.EMERGENCY:
            return replace(
                self,
                priority=severity,
                retry_s=self.retry_s or DEFAULT_EMERGENCY_RETRY_S,
                expire_s=self.expire_s or DEFAULT_EMERGENCY_EXPIRE_S,
            )
        if severity is self.priority and not self.retry_s and not self.expire_s:
            return self
        return replace(self, priority=severity, retry_s=0, expire_s=0)


DEFAULT_POLICIES: Mapping[EventKind, DispatchPolicy] = MappingProxyType(
    {
        EventKind.INTRUSION: DispatchPolicy(
            title="INTRUSION!",
            priority=Severity.EMERGENCY,
            sound=SOUND_SIREN,
            icon=ICON_SECURITY,
            icon_color="#FF0000",
            vibration=VIBRATION_HIGH,
            ttl_minutes=60,
            retry_s=60,
            expire_s=3600,
        ),
        EventKind.FIRE_ALERT: DispatchPolicy(
            title="FIRE!",
            priority=Severity.EMERGENCY,
            sound=SOUND_ALARM,
            icon=ICON_FIRE,
            icon_color="#FF6600",
            vibration=VIBRATION_HIGH,
            ttl_minutes=30,
            retry_s=60,
            expire_s=1800,
        ),
        EventKind.VEHICLE_DETECTED: DispatchPolicy(
            title="Vehicle waiting",
            priority=Severity.HIGH,
            sound=SOUND_ALARM,
            icon=ICON_CAR,
            icon_color="#0066FF",
            vibration=VIBRATION_MEDIUM,
            ttl_minutes=5,
        ),
        EventKind.HIGH_TEMPERATURE: DispatchPolicy(
            title="Temperature warning",
            priority=Severity.HIGH,
            sound=SOUND_ALARM,
            icon=ICON_WARNING,
            icon_color="#FFA500",
            vibration=VIBRATION_MEDIUM,
        ),
        EventKind.SMOKE_ALERT: DispatchPolicy(
            title="Smoke warning",
            priority=Severity.HIGH,
            sound=SOUND_ALARM,
            icon=ICON_WARNING,
            icon_color="#808080",
            vibration=VIBRATION_MEDIUM,
        ),
        EventKind.ALARM_ON: DispatchPolicy(
            title="Alarm armed",
            priority=Severity.HIGH,
            sound=SOUND_ALARM,
            icon=ICON_ERROR,
            icon_color="#FF0000",
            vibration=VIBRATION_HIGH,
        ),
        EventKind.DOOR_OPEN: DispatchPolicy(
            title="Garage door opened",
            priority=Severity.NORMAL,
            sound=SOUND_AHEM,
            icon=ICON_HOME,
            icon_color="#00AA00",
            vibration=VIBRATION_LOW,
            ttl_minutes=60,
        ),
        EventKind.DOOR_CLOSE: DispatchPolicy(
            title="Garage door closed",
            priority=Severity.NORMAL,
            sound=SOUND_AHEM,
            icon=ICON_HOME,
            icon_color="#0066FF",
            vibration=VIBRATION_LOW,
            ttl_minutes=60,
        ),
        EventKind.ALARM_OFF: DispatchPolicy(
            title="Alarm disarmed",
            priority=Severity.NORMAL,
            sound=SOUND_POSITIVE,
            icon=ICON_SUCCESS,
            icon_color="#00AA00",
            vibration=VIBRATION_LOW,
        ),
        EventKind.PERSON_DETECTED: DispatchPolicy(
            title="Motion in garage",
            priority=Severity.NORMAL,
            sound=SOUND_AHEM,
            icon=ICON_SECURITY,
            icon_color="#FFA500",
            vibration=VIBRATION_LOW,
            ttl_minutes=10,
        ),
        EventKind.SYSTEM_START: DispatchPolicy(
            title="Garage system online",
            priority=Severity.NORMAL,
            sound=SOUND_POSITIVE,
            icon=ICON_INFO,
            icon_color="#00AA00",
            vibration=VIBRATION_LOW,
            ttl_minutes=60,
        ),
        EventKind.TEST: DispatchPolicy(
            title="Test Notification",
            priority=Severity.LOW,
            sound=SOUND_SILENT,
            icon=ICON_CAR,
            icon_color="#0066FF",
            vibration=VIBRATION_MEDIUM,
        ),
    }
)


def policy_for(
    kind: EventKind,
    severity: Optional[Severity] = None,
    policies: Mapping[EventKind, DispatchPolicy] = DEFAULT_POLICIES,
) -> DispatchPolicy:
    """
    Look up the policy of ``kind`` adjusted to ``severity``.

    Parameters
    ----------
    kind
        Event kind.
    severity
        Actual event severity; defaults to the table priority.
    policies
        Policy table to read from.

    Raises
    ------
    KeyError
        If the table has no entry for ``kind``.
    """
    base = policies[EventKind(kind)]
    if severity is None:
        return base
    return base.for_severity(severity)
