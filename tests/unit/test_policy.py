"""
Unit tests for garage_alerts.core.policy.

These tests validate the dispatch policy table:
- every event kind has an entry whose priority matches its base severity
- emergency entries carry re-alert parameters, others do not
- for_severity() escalation and de-escalation
- the table is read-only
"""

from __future__ import annotations

import pytest

from garage_alerts.core.policy import (
    DEFAULT_EMERGENCY_EXPIRE_S,
    DEFAULT_EMERGENCY_RETRY_S,
    DEFAULT_POLICIES,
    ICON_FIRE,
    ICON_SECURITY,
    SOUND_SIREN,
    policy_for,
)
from garage_alerts.domain.events import classify_with
from garage_alerts.domain.models import EventKind, Severity


def test_table_covers_every_kind() -> None:
    assert set(DEFAULT_POLICIES) == set(EventKind)


@pytest.mark.parametrize("kind", list(EventKind))
def test_table_priority_matches_base_severity(kind: EventKind) -> None:
    assert DEFAULT_POLICIES[kind].priority is classify_with(kind)


def test_only_emergency_entries_have_retry_and_expire() -> None:
    for kind, policy in DEFAULT_POLICIES.items():
        if policy.priority is Severity.EMERGENCY:
            assert policy.retry_s > 0 and policy.expire_s > 0, kind
        else:
            assert policy.retry_s == 0 and policy.expire_s == 0, kind


def test_intrusion_policy_values() -> None:
    p = DEFAULT_POLICIES[EventKind.INTRUSION]
    assert p.sound == SOUND_SIREN
    assert p.icon == ICON_SECURITY
    assert p.icon_color == "#FF0000"
    assert (p.ttl_minutes, p.retry_s, p.expire_s) == (60, 60, 3600)


def test_fire_policy_values() -> None:
    p = DEFAULT_POLICIES[EventKind.FIRE_ALERT]
    assert p.icon == ICON_FIRE
    assert p.icon_color == "#FF6600"
    assert (p.ttl_minutes, p.retry_s, p.expire_s) == (30, 60, 1800)


def test_escalation_fills_emergency_defaults() -> None:
    """
    A smoke warning escalated by its measured value re-alerts like an emergency.
    """
    p = policy_for(EventKind.SMOKE_ALERT, Severity.EMERGENCY)
    assert p.priority is Severity.EMERGENCY
    assert p.retry_s == DEFAULT_EMERGENCY_RETRY_S
    assert p.expire_s == DEFAULT_EMERGENCY_EXPIRE_S
    assert p.title == DEFAULT_POLICIES[EventKind.SMOKE_ALERT].title


def test_downgrade_strips_retry_and_expire() -> None:
    p = DEFAULT_POLICIES[EventKind.INTRUSION].for_severity(Severity.HIGH)
    assert p.priority is Severity.HIGH
    assert p.retry_s == 0 and p.expire_s == 0


def test_same_severity_returns_table_entry() -> None:
    base = DEFAULT_POLICIES[EventKind.DOOR_OPEN]
    assert policy_for(EventKind.DOOR_OPEN, Severity.NORMAL) is base
    assert policy_for(EventKind.DOOR_OPEN) is base


def test_table_is_read_only() -> None:
    with pytest.raises(TypeError):
        DEFAULT_POLICIES[EventKind.TEST] = DEFAULT_POLICIES[EventKind.DOOR_OPEN]  # type: ignore[index]
