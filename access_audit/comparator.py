"""Ordering of permission risk levels against privilege levels.

Both enums are declared most-restrictive-first and have different sizes,
so each value is compared by its rank counted from the bottom of its own
enum. This holds as long as new levels are inserted with that in mind.
"""

from __future__ import annotations

from access_audit.models import PrivilegeLevel, RiskLevel

_RISK_LEVELS = list(RiskLevel)
_PRIVILEGE_LEVELS = list(PrivilegeLevel)


def risk_ordinal(level: RiskLevel | str) -> int:
    return _RISK_LEVELS.index(RiskLevel(level))


def privilege_ordinal(level: PrivilegeLevel | str) -> int:
    return _PRIVILEGE_LEVELS.index(PrivilegeLevel(level))


def permission_allowed(risk: RiskLevel | str, privilege: PrivilegeLevel | str) -> bool:
    """Return True if a permission of ``risk`` may be granted at ``privilege``."""
    risk_rank = len(_RISK_LEVELS) - risk_ordinal(risk)
    privilege_rank = len(_PRIVILEGE_LEVELS) - privilege_ordinal(privilege)
    return privilege_rank >= risk_rank
