from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from garage_alerts.core.policy import DispatchPolicy
from garage_alerts.domain.events import Event
from garage_alerts.domain.models import SystemSnapshot

Clock = Callable[[], float]
Connectivity = Callable[[], bool]

PLACEHOLDER_CREDENTIALS = frozenset(
    {
        "YOUR_PUSHSAFER_KEY",
        "YOUR_THINGSPEAK_WRITE_KEY",
        "YOUR_WRITE_API_KEY",
        "YOUR_READ_API_KEY",
    }
)


def always_connected() -> bool:
    return True


def monotonic_clock() -> float:
    return time.monotonic()


def is_placeholder(credential: Optional[str]) -> bool:
    """True if ``credential`` is missing, blank or a known placeholder."""
    if credential is None:
        return True
    value = credential.strip()
    return not value or value in PLACEHOLDER_CREDENTIALS or value.upper().startswith("YOUR_")


def mask(credential: str) -> str:
    """Shorten a credential for log output."""
    return f"{credential[:4]}..." if credential else "<unset>"


class DeliveryOutcome(str, Enum):
    """
    Result category of one channel call.

    Members
    -------
    DELIVERED : str
        Remote service confirmed the write/notification.
    MISCONFIGURED : str
        Missing or placeholder credential; no call attempted.
    UNAVAILABLE : str
        No connectivity; no call attempted.
    RATE_LIMITED : str
        Denied by the channel's cooldown; no call attempted.
    TRANSPORT_FAILURE : str
        Timeout, connection error or non-success HTTP status.
    APPLICATION_REJECTED : str
        HTTP succeeded but the provider payload signals rejection.
    """

    DELIVERED = "DELIVERED"
    MISCONFIGURED = "MISCONFIGURED"
    UNAVAILABLE = "UNAVAILABLE"
    RATE_LIMITED = "RATE_LIMITED"
    TRANSPORT_FAILURE = "TRANSPORT_FAILURE"
    APPLICATION_REJECTED = "APPLICATION_REJECTED"


@dataclass(frozen=True)
class PushResult:
    """
    Outcome of `PushChannel.send`.

    Parameters
    ----------
    delivered
        True only for confirmed delivery.
    outcome
        Detailed result category.
    remote_id
        Provider message identifier when delivered.
    """

    delivered: bool
    outcome: DeliveryOutcome
    remote_id: Optional[int] = None


@dataclass(frozen=True)
class TelemetryResult:
    """
    Outcome of a telemetry write.

    Parameters
    ----------
    delivered
        True when the backend answered HTTP 200 with a non-zero entry id.
    outcome
        Detailed result category.
    entry_id
        Backend entry id, if the response body carried one.
    """

    delivered: bool
    outcome: DeliveryOutcome
    entry_id: Optional[int] = None


class PushSender(Protocol):
    """What the dispatcher needs from a push channel."""

    def send(self, event: Event, policy: DispatchPolicy) -> PushResult:
        ...


class TelemetryLogger(Protocol):
    """What the dispatcher needs from a telemetry channel."""

    @property
    def snapshot(self) -> SystemSnapshot:
        ...

    def log_event(self, event: Event, base: Optional[SystemSnapshot] = None) -> TelemetryResult:
        ...
