"""Configuration and classification models for an audit run.

A ``RunConfig`` is built once by whoever loads the operator's files and is
treated as read-only for the lifetime of the run.
"""

from __future__ import annotations

from enum import StrEnum
from ipaddress import IPv4Address
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ── Enums ──────────────────────────────────────────────────────────


class RiskLevel(StrEnum):
    """Risk classification of a user or custom permission.

    Declaration order is significant: most restrictive first.
    """

    BLOCKED = "Blocked"
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"
    UNKNOWN = "Unknown"


class PrivilegeLevel(StrEnum):
    """Privilege level of a profile, permission set or user.

    Declaration order is significant: most privileged first.
    """

    DEVELOPER = "Developer"
    ADMIN = "Admin"
    POWER_USER = "Power User"
    STANDARD_USER = "Standard User"
    UNKNOWN = "Unknown"


class PolicyName(StrEnum):
    PROFILES = "profiles"
    PERMISSION_SETS = "permissionSets"
    USERS = "users"
    CONNECTED_APPS = "connectedApps"
    SETTINGS = "settings"


# ── Classifications ────────────────────────────────────────────────


class PermissionClassification(BaseModel):
    """Risk assessment of a single permission."""

    label: str | None = None
    reason: str | None = None
    risk_level: RiskLevel


class IpRange(BaseModel):
    """Inclusive IPv4 login range."""

    start: IPv4Address
    end: IPv4Address


class EntityClassification(BaseModel):
    """Privilege level assigned to a profile, permission set or user."""

    model_config = ConfigDict(extra="forbid")

    privilege_level: PrivilegeLevel


class ProfileClassification(EntityClassification):
    allowed_login_ips: list[IpRange] = []


class Classifications(BaseModel):
    user_permissions: dict[str, PermissionClassification] = {}
    custom_permissions: dict[str, PermissionClassification] = {}
    profiles: dict[str, ProfileClassification] = {}
    permission_sets: dict[str, EntityClassification] = {}
    users: dict[str, EntityClassification] = {}


# ── Policies ───────────────────────────────────────────────────────


class RuleConfig(BaseModel):
    enabled: bool = False
    options: dict[str, Any] = {}


class PolicyConfig(BaseModel):
    enabled: bool = True
    rules: dict[str, RuleConfig] = {}
    options: dict[str, Any] = {}


class UsersPolicyOptions(BaseModel):
    """Policy-level options of the users policy."""

    model_config = ConfigDict(extra="forbid")

    default_privilege_level: PrivilegeLevel = PrivilegeLevel.STANDARD_USER
    analyse_last_n_days_of_login_history: int | None = Field(default=None, gt=0)


# ── Accepted risks ─────────────────────────────────────────────────

WILDCARD = "*"


def is_leaf(node: Any) -> bool:
    """A node is a leaf when it carries a string ``reason``."""
    return isinstance(node, dict) and isinstance(node.get("reason"), str)


def check_risk_tree(node: Any, path: list[str] | None = None) -> None:
    """Validate an accepted-risk tree, raising ValueError on the first bad node."""
    path = path or []
    if not isinstance(node, dict):
        location = ".".join(path) or "<root>"
        raise ValueError(f"Expected a mapping or a reason at {location}, got {type(node).__name__}")
    if is_leaf(node):
        return
    for key, child in node.items():
        if not isinstance(key, str):
            raise ValueError(f"Identifier keys must be strings, got {key!r}")
        if key == "reason" and not isinstance(child, dict):
            location = ".".join([*path, key])
            raise ValueError(f"Reason at {location} must be a string")
        check_risk_tree(child, [*path, key])


# ── Run configuration ──────────────────────────────────────────────


class RunConfig(BaseModel):
    """Immutable input of an audit run."""

    model_config = ConfigDict(frozen=True)

    classifications: Classifications = Field(default_factory=Classifications)
    policies: dict[str, PolicyConfig] = {}
    accepted_risks: dict[str, Any] = {}

    @field_validator("accepted_risks")
    @classmethod
    def _validate_accepted_risks(cls, value: dict[str, Any]) -> dict[str, Any]:
        check_risk_tree(value)
        return value
