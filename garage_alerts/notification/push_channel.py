from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from garage_alerts.core.policy import DispatchPolicy, policy_for
from garage_alerts.core.rate_limiter import RateLimiter
from garage_alerts.domain.events import Event
from garage_alerts.domain.models import EventKind, Severity
from garage_alerts.notification.base import (
    Clock,
    Connectivity,
    DeliveryOutcome,
    PushResult,
    always_connected,
    is_placeholder,
    mask,
    monotonic_clock,
)
from garage_alerts.notification.encoding import percent_encode
from garage_alerts.transport.http_transport import Transport, TransportError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.pushsafer.com/api"
FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


@dataclass(frozen=True)
class PushConfig:
    """
    Configuration for the push-notification channel.

    Parameters
    ----------
    api_key
        Provider private key. Placeholder values disable the channel.
    api_url
        Provider endpoint.
    device
        Target device or group; ``"a"`` means all devices.
    min_interval_s
        Minimum seconds between confirmed non-emergency notifications
        (0 = no floor).
    name
        Channel identifier used by the rate limiter.
    """

    api_key: str
    api_url: str = DEFAULT_API_URL
    device: str = "a"
    min_interval_s: float = 0.0
    name: str = "push"


def _fmt(value: Optional[float], unit: str = "") -> str:
    return "n/a" if value is None else f"{value:.1f}{unit}"


def _level(value: Optional[int]) -> str:
    return "n/a" if value is None else str(value)


def _flag(value: Optional[bool]) -> str:
    return "YES" if value else "NO"


def _with_reason(text: str, event: Event) -> str:
    return f"{text} ({event.reason})" if event.reason else text


_MESSAGES: Dict[EventKind, Callable[[Event], str]] = {
    EventKind.INTRUSION: lambda e: _with_reason(
        f"Person detected inside the closed garage! "
        f"PIR: {_flag(e.pir_detected)}, Ultrasonic: {_flag(e.ultrasonic_detected)}",
        e,
    ),
    EventKind.FIRE_ALERT: lambda e: _with_reason(
        f"Fire detected in the garage! Temperature: {_fmt(e.temperature, 'C')}, "
        f"Smoke: {_level(e.smoke_level)}, "
        f"Humidity: {_fmt(e.humidity, '%')}. Call emergency services now!",
        e,
    ),
    EventKind.VEHICLE_DETECTED: lambda e: _with_reason(
        f"Vehicle detected in front of the garage at {_fmt(e.distance, 'cm')}",
        e,
    ),
    EventKind.HIGH_TEMPERATURE: lambda e: _with_reason(
        f"Abnormally high temperature: {_fmt(e.temperature, 'C')}. Check the garage now!",
        e,
    ),
    EventKind.SMOKE_ALERT: lambda e: _with_reason(
        f"High smoke level: {_level(e.smoke_level)}. Check the garage now!",
        e,
    ),
    EventKind.ALARM_ON: lambda e: f"Garage alarm is ON: {e.reason or 'no reason given'}",
    EventKind.ALARM_OFF: lambda e: f"Garage alarm is OFF (by {e.source or e.reason or 'unknown'})",
    EventKind.DOOR_OPEN: lambda e: f"Garage door opened: {e.reason or 'unknown'}",
    EventKind.DOOR_CLOSE: lambda e: f"Garage door closed: {e.reason or 'unknown'}",
    EventKind.PERSON_DETECTED: lambda e: f"Motion detected at: {e.source or e.reason or 'garage'}",
    EventKind.SYSTEM_START: lambda e: _with_reason("Garage monitoring system is online", e),
    EventKind.TEST: lambda e: _with_reason("Garage notification system is working normally", e),
}


def build_message(event: Event) -> str:
    """
    Build the human-readable notification text for an event.

    Physical quantities are formatted to one decimal place.
    """
    return _MESSAGES[event.kind](event)


def parse_message_id(body: str) -> Optional[int]:
    """
    Extract the provider message identifier from a response body.

    Accepts a JSON object (``status`` must be 1 when present; the id comes
    from ``message_ids`` such as ``"18265430:34011"`` or from ``id``) or a
    bare integer body.

    Returns
    -------
    int or None
        First identifier found, or None when the body carries none.
    """
    text = (body or "").strip()
    if not text:
        return None
    try:
        payload = json.loads(text)
    except ValueError:
        return None

    if isinstance(payload, bool):
        return None
    if isinstance(payload, int):
        return payload
    if not isinstance(payload, dict):
        return None

    status = payload.get("status")
    if status is not None and str(status) != "1":
        return None

    for key in ("message_ids", "id"):
        raw = payload.get(key)
        if raw is None or isinstance(raw, bool):
            continue
        if isinstance(raw, int):
            return raw
        token = re.split(r"[:,\s]+", str(raw).strip())[0]
        try:
            return int(token)
        except ValueError:
            return None
    return None


class PushChannel:
    """
    Push-notification channel with escalating urgency.

    Builds a form-encoded provider request from an event and its dispatch
    policy and posts it through the injected transport.

    Notes
    -----
    - EMERGENCY events bypass the rate gate (`RateLimiter.force_acquire`).
    - Delivery counts only when HTTP succeeded AND the response carries a
      positive message id; only then does the channel state advance.
    - No exception leaves `send`; every outcome is a `PushResult`.
    """

    def __init__(
        self,
        cfg: PushConfig,
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
        self._send_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._cfg.name

    def is_configured(self) -> bool:
        return not is_placeholder(self._cfg.api_key)

    def is_ready(self) -> bool:
        """Credential configured AND connectivity present."""
        return self.is_configured() and bool(self._connectivity())

    def build_fields(self, event: Event, policy: DispatchPolicy) -> Dict[str, str]:
        """
        Build the provider fields (not yet encoded), in wire order.

        ``l`` is omitted for a zero time-to-live; ``re``/``ex`` are included
        only for EMERGENCY priority.
        """
        fields: Dict[str, str] = {
            "k": self._cfg.api_key,
            "t": policy.title,
            "m": build_message(event),
            "pr": str(int(policy.priority)),
            "s": str(policy.sound),
            "i": str(policy.icon),
            "c": policy.icon_color,
            "v": str(policy.vibration),
            "d": self._cfg.device or "a",
        }
        if policy.ttl_minutes > 0:
            fields["l"] = str(policy.ttl_minutes)
        if policy.is_emergency:
            if policy.retry_s > 0:
                fields["re"] = str(policy.retry_s)
            if policy.expire_s > 0:
                fields["ex"] = str(policy.expire_s)
        return fields

    def build_post_data(self, event: Event, policy: DispatchPolicy) -> str:
        """Build the form body; title, message and icon colour are percent-encoded."""
        fields = self.build_fields(event, policy)
        for key in ("t", "m", "c"):
            fields[key] = percent_encode(fields[key])
        return "&".join(f"{k}={v}" for k, v in fields.items())

    def send(self, event: Event, policy: DispatchPolicy) -> PushResult:
        """
        Deliver one notification.

        Parameters
        ----------
        event
            Event to report.
        policy
            Push parameters for the event (see `policy_for`).

        Returns
        -------
        PushResult
            ``delivered`` is True only for confirmed delivery.
        """
        if not self.is_configured():
            logger.warning("Push channel %s misconfigured: API key not set", self.name)
            return PushResult(delivered=False, outcome=DeliveryOutcome.MISCONFIGURED)
        if not self._connectivity():
            logger.warning("Push channel %s unavailable: no connectivity", self.name)
            return PushResult(delivered=False, outcome=DeliveryOutcome.UNAVAILABLE)

        with self._send_lock:
            now = self._clock()
            if event.severity is Severity.EMERGENCY:
                logger.info("Emergency %s: bypassing push rate limit", event.kind.value)
                self._limiter.force_acquire(self.name, now)
            elif not self._limiter.try_acquire(self.name, now):
                logger.info(
                    "Skipping %s push (rate limit, %.1fs left)",
                    event.kind.value,
                    self._limiter.seconds_until_next_allowed(self.name, now),
                )
                return PushResult(delivered=False, outcome=DeliveryOutcome.RATE_LIMITED)

            body = self.build_post_data(event, policy)
            logger.info(
                "Sending %s push (priority %d, key %s)",
                event.kind.value,
                int(policy.priority),
                mask(self._cfg.api_key),
            )
            try:
                resp = self._transport.post(self._cfg.api_url, data=body, headers=FORM_HEADERS)
            except TransportError as e:
                logger.warning("Push request failed: %s", e)
                return PushResult(delivered=False, outcome=DeliveryOutcome.TRANSPORT_FAILURE)

            if resp.status_code != 200:
                logger.warning("Push provider returned HTTP %d", resp.status_code)
                return PushResult(delivered=False, outcome=DeliveryOutcome.TRANSPORT_FAILURE)

            remote_id = parse_message_id(resp.text)
            if remote_id is None or remote_id <= 0:
                logger.warning("Push provider rejected notification: %r", resp.text[:200])
                return PushResult(delivered=False, outcome=DeliveryOutcome.APPLICATION_REJECTED)

            self._limiter.record_success(self.name, self._clock())
            logger.info("Push %s delivered (id %d)", event.kind.value, remote_id)
            return PushResult(delivered=True, outcome=DeliveryOutcome.DELIVERED, remote_id=remote_id)

    def send_test(self, reason: str = "") -> PushResult:
        """Send the end-to-end test notification."""
        event = Event(kind=EventKind.TEST, reason=reason)
        return self.send(event, policy_for(event.kind, event.severity))

    def get_send_count(self) -> int:
        return self._limiter.send_count(self.name)

    def reset_counter(self) -> None:
        self._limiter.reset_counter(self.name)

    def seconds_until_next_allowed(self) -> float:
        return self._limiter.seconds_until_next_allowed(self.name, self._clock())
