"""
Per-channel minimum-interval gate.

Each reporting channel registers a minimum interval between confirmed sends.
Routine sends ask `RateLimiter.try_acquire` and are dropped when denied;
life-safety sends call `RateLimiter.force_acquire`, which moves the channel's
last-send time backwards so the one send that follows is treated as allowed.

State only advances through `RateLimiter.record_success`, i.e. after the
remote service confirmed delivery, never merely after an attempt.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class ChannelState:
    """
    Throughput state of one channel.

    Parameters
    ----------
    min_interval
        Minimum seconds between confirmed sends (0 disables the gate).
    last_sent_at
        Monotonic timestamp of the last confirmed send. ``None`` is the
        epoch: nothing sent yet, so the next send is always allowed.
    send_count
        Number of confirmed sends since start or the last counter reset.
    override_from
        Real last-send timestamp saved by an outstanding override. Set by
        `RateLimiter.force_acquire` and cleared by the next confirmed send.
    override_pending
        Whether an override is outstanding (``override_from`` may be None).
    """

    min_interval: float
    last_sent_at: Optional[float] = None
    send_count: int = 0
    override_from: Optional[float] = None
    override_pending: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class RateLimiter:
    """
    Minimum-interval gate keyed by channel name.

    Concurrency Model
    -----------------
    Every channel has its own lock; operations on different channels never
    contend. There is no cross-channel state.

    Parameters
    ----------
    intervals
        Optional mapping of channel name -> minimum interval (seconds) to
        register up front.
    """

    def __init__(self, intervals: Optional[Dict[str, float]] = None):
        self._channels: Dict[str, ChannelState] = {}
        self._registry_lock = threading.Lock()
        for name, interval in (intervals or {}).items():
            self.register(name, interval)

    def register(self, channel: str, min_interval: float) -> ChannelState:
        """
        Register a channel (or return the existing registration).

        Raises
        ------
        ValueError
            If ``min_interval`` is negative.
        """
        if min_interval < 0:
            raise ValueError("min_interval must be >= 0")
        with self._registry_lock:
            st = self._channels.get(channel)
            if st is None:
                st = ChannelState(min_interval=float(min_interval))
                self._channels[channel] = st
            return st

    def state(self, channel: str) -> ChannelState:
        """
        Return the live state object of a channel.

        Raises
        ------
        KeyError
            If the channel was never registered.
        """
        try:
            return self._channels[channel]
        except KeyError:
            raise KeyError(f"Unknown rate-limited channel: {channel!r}") from None

    def try_acquire(self, channel: str, now: float) -> bool:
        """
        Check whether an ordinary send is allowed at ``now``. Does not mutate.

        An outstanding override was granted to exactly one send, so ordinary
        checks keep using the real last-send time until a send is confirmed.
        """
        st = self.state(channel)
        with st.lock:
            return self._elapsed_ok(st, now)

    def force_acquire(self, channel: str, now: float) -> None:
        """
        Bypass the gate for one life-safety send.

        Moves the logical last-send time to ``now - min_interval`` so the
        following send counts as allowed even though less real time elapsed.
        """
        st = self.state(channel)
        with st.lock:
            if not st.override_pending:
                st.override_from = st.last_sent_at
                st.override_pending = True
            st.last_sent_at = now - st.min_interval

    def record_success(self, channel: str, now: float) -> None:
        """Register a confirmed send at ``now``."""
        st = self.state(channel)
        with st.lock:
            st.last_sent_at = now
            st.send_count += 1
            st.override_from = None
            st.override_pending = False

    def reset(self, channel: str) -> None:
        """Return a channel to the epoch so its next send is always allowed."""
        st = self.state(channel)
        with st.lock:
            st.last_sent_at = None
            st.override_from = None
            st.override_pending = False

    def seconds_until_next_allowed(self, channel: str, now: float) -> float:
        """Seconds until an ordinary send is allowed (0.0 if allowed now)."""
        st = self.state(channel)
        with st.lock:
            last = self._effective_last(st)
            if last is None:
                return 0.0
            return max(0.0, st.min_interval - (now - last))

    def send_count(self, channel: str) -> int:
        """Number of confirmed sends on a channel."""
        st = self.state(channel)
        with st.lock:
            return st.send_count

    def reset_counter(self, channel: str) -> None:
        """Zero the confirmed-send counter of a channel."""
        st = self.state(channel)
        with st.lock:
            st.send_count = 0

    @staticmethod
    def _effective_last(st: ChannelState) -> Optional[float]:
        return st.override_from if st.override_pending else st.last_sent_at

    def _elapsed_ok(self, st: ChannelState, now: float) -> bool:
        last = self._effective_last(st)
        if last is None:
            return True
        return now - last >= st.min_interval
