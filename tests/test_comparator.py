"""Tests for risk level vs. privilege level ordering."""

import pytest

from access_audit.comparator import permission_allowed, privilege_ordinal, risk_ordinal
from access_audit.models import PrivilegeLevel, RiskLevel

# ── Ordinals ─────────────────────────────────────────────────────


def test_enum_cardinalities() -> None:
    assert len(RiskLevel) == 6
    assert len(PrivilegeLevel) == 5


def test_ordinals_follow_declaration_order() -> None:
    assert risk_ordinal(RiskLevel.BLOCKED) == 0
    assert risk_ordinal(RiskLevel.UNKNOWN) == 5
    assert privilege_ordinal(PrivilegeLevel.DEVELOPER) == 0
    assert privilege_ordinal("Standard User") == 3


# ── permission_allowed ───────────────────────────────────────────


@pytest.mark.parametrize(
    ("risk", "privilege", "expected"),
    [
        (RiskLevel.LOW, PrivilegeLevel.STANDARD_USER, True),
        (RiskLevel.MEDIUM, PrivilegeLevel.STANDARD_USER, False),
        (RiskLevel.MEDIUM, PrivilegeLevel.POWER_USER, True),
        (RiskLevel.HIGH, PrivilegeLevel.POWER_USER, False),
        (RiskLevel.HIGH, PrivilegeLevel.ADMIN, True),
        (RiskLevel.HIGH, PrivilegeLevel.DEVELOPER, True),
    ],
)
def test_permission_allowed_reference_values(
    risk: RiskLevel, privilege: PrivilegeLevel, expected: bool
) -> None:
    assert permission_allowed(risk, privilege) is expected


def test_critical_requires_developer() -> None:
    assert permission_allowed(RiskLevel.CRITICAL, PrivilegeLevel.DEVELOPER) is True
    assert permission_allowed(RiskLevel.CRITICAL, PrivilegeLevel.ADMIN) is False


def test_blocked_is_never_allowed() -> None:
    for privilege in PrivilegeLevel:
        assert permission_allowed(RiskLevel.BLOCKED, privilege) is False


def test_unknown_privilege_only_allows_unknown_risk() -> None:
    assert permission_allowed(RiskLevel.UNKNOWN, PrivilegeLevel.UNKNOWN) is True
    assert permission_allowed(RiskLevel.LOW, PrivilegeLevel.UNKNOWN) is False


def test_accepts_plain_strings() -> None:
    assert permission_allowed("Low", "Standard User") is True
