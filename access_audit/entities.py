"""Resolved entities: org metadata merged with its configured classification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from access_audit.models import IpRange, PrivilegeLevel
from access_audit.repositories import ConnectedApp, ProfileLikeMetadata, User

# A resolved setting is the raw settings document
ResolvedSetting = dict[str, Any]
ResolvedConnectedApp = ConnectedApp


@dataclass(frozen=True)
class ResolvedProfileLike:
    """A classified profile or permission set with its metadata."""

    name: str
    privilege_level: PrivilegeLevel
    metadata: ProfileLikeMetadata
    allowed_login_ips: tuple[IpRange, ...] = ()


@dataclass(frozen=True)
class ResolvedUser:
    user: User
    privilege_level: PrivilegeLevel

    @property
    def username(self) -> str:
        return self.user.username
