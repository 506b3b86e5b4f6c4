"""Translation of org records and metadata documents into audit entities.

Repositories only use the three ``Connection`` operations; named metadata
always goes through the run's ``MetadataCache`` so policies that need the
same profile or permission set share one retrieve.
"""

from __future__ import annotations

import asyncio
import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from access_audit.connection import AuditContext

logger = logging.getLogger(__name__)

# ── Queries ────────────────────────────────────────────────────────

ORGANIZATION_QUERY = "SELECT Id FROM Organization"
PROFILES_QUERY = (
    "SELECT Profile.Name,Profile.UserType,IsCustom FROM PermissionSet WHERE IsOwnedByProfile = TRUE"
)
PERMISSION_SETS_QUERY = (
    "SELECT Name,Label,IsCustom,NamespacePrefix FROM PermissionSet"
    " WHERE IsOwnedByProfile = FALSE AND NamespacePrefix = NULL"
)
USERS_QUERY = (
    "SELECT Id,Username,IsActive,LastLoginDate,CreatedDate,Profile.Name"
    " FROM User WHERE UserType = 'Standard'"
)
PERMISSION_SET_ASSIGNMENTS_QUERY = (
    "SELECT AssigneeId,PermissionSet.Name,PermissionSetGroupId,PermissionSetGroup.DeveloperName"
    " FROM PermissionSetAssignment WHERE PermissionSet.IsOwnedByProfile = FALSE"
)
CONNECTED_APPS_OBJECT = "ConnectedApplication"
ADMIN_APPROVED_FIELD = "OptionsAllowAdminApprovedUsersOnly"
OAUTH_TOKEN_QUERY = "SELECT User.Username,UseCount,AppName FROM OauthToken"


def build_login_history_query(days: int) -> str:
    return (
        "SELECT UserId,LoginType,Application,COUNT(Id)LoginCount,MAX(LoginTime)LastLogin"
        f" FROM LoginHistory WHERE LoginTime = LAST_N_DAYS:{days}"
        " GROUP BY UserId,LoginType,Application"
    )


def build_connected_apps_query(fields: list[str]) -> str:
    return f"SELECT {','.join(fields)} FROM {CONNECTED_APPS_OBJECT}"


# ── Value helpers ──────────────────────────────────────────────────

_OFFSET_WITHOUT_COLON = re.compile(r"([+-]\d{2})(\d{2})$")


def parse_datetime(value: str | datetime) -> datetime:
    """Parse an org timestamp such as ``2024-05-01T10:00:00.000+0000``."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        text = _OFFSET_WITHOUT_COLON.sub(r"\1:\2", text)
        parsed = datetime.fromisoformat(text)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def as_list(value: Any) -> list[Any]:
    """Metadata lists with a single element are parsed as a bare mapping."""
    if value is None:
        return []
    if isinstance(value, list):
        return value
    return [value]


def _nested(record: dict[str, Any], path: str) -> Any:
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, dict):
            return None
        current = current.get(part)
    return current


# ── Entities ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class LoginIpRange:
    start_address: str
    end_address: str
    description: str | None = None


@dataclass(frozen=True)
class ProfileLikeMetadata:
    """Permission-relevant parts of a profile or permission set document."""

    user_permissions: tuple[str, ...] = ()
    custom_permissions: tuple[str, ...] = ()
    login_ip_ranges: tuple[LoginIpRange, ...] = ()
    custom: bool = True

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> ProfileLikeMetadata:
        return cls(
            user_permissions=_enabled_permissions(document.get("userPermissions")),
            custom_permissions=_enabled_permissions(document.get("customPermissions")),
            login_ip_ranges=tuple(
                LoginIpRange(
                    start_address=str(r["startAddress"]),
                    end_address=str(r["endAddress"]),
                    description=r.get("description"),
                )
                for r in as_list(document.get("loginIpRanges"))
            ),
            custom=as_bool(document.get("custom", True)),
        )


def _enabled_permissions(raw: Any) -> tuple[str, ...]:
    return tuple(
        str(p["name"]) for p in as_list(raw) if as_bool(p.get("enabled", True))
    )


@dataclass(frozen=True)
class Profile:
    name: str
    user_type: str | None = None
    is_custom: bool = False


@dataclass(frozen=True)
class PermissionSet:
    name: str
    label: str | None = None
    is_custom: bool = True


@dataclass(frozen=True)
class UserLogin:
    login_type: str
    application: str
    login_count: int
    last_login: datetime


@dataclass(frozen=True)
class PermissionSetAssignment:
    permission_set_name: str
    source: str  # "direct" or "group"
    group_name: str | None = None
    metadata: ProfileLikeMetadata | None = None


@dataclass(frozen=True)
class User:
    user_id: str
    username: str
    profile_name: str
    is_active: bool
    created_date: datetime
    last_login: datetime | None = None
    logins: tuple[UserLogin, ...] | None = None
    assignments: tuple[PermissionSetAssignment, ...] | None = None
    profile_metadata: ProfileLikeMetadata | None = None


@dataclass(frozen=True)
class ConnectedApp:
    name: str
    origin: str  # "Owned" or "OauthToken"
    only_admin_approved_users_allowed: bool = False
    users: tuple[str, ...] = ()
    use_count: int = 0


# ── Repositories ───────────────────────────────────────────────────


class ProfileLikeRepository:
    """Shared retrieval of profile and permission set metadata."""

    metadata_type = ""

    def __init__(self, context: AuditContext) -> None:
        self._context = context

    async def list(self) -> dict[str, Any]:
        raise NotImplementedError

    async def fetch_metadata(self, names: list[str]) -> dict[str, ProfileLikeMetadata]:
        if not names:
            return {}
        documents = await self._context.cache.retrieve(self.metadata_type, names)
        return {name: ProfileLikeMetadata.from_document(doc) for name, doc in documents.items()}


class ProfileRepository(ProfileLikeRepository):
    metadata_type = "Profile"

    async def list(self) -> dict[str, Profile]:
        records = await self._context.connection.query(PROFILES_QUERY)
        profiles: dict[str, Profile] = {}
        for record in records:
            name = _nested(record, "Profile.Name")
            if not name:
                continue
            profiles[name] = Profile(
                name=name,
                user_type=_nested(record, "Profile.UserType"),
                is_custom=as_bool(record.get("IsCustom", False)),
            )
        return profiles


class PermissionSetRepository(ProfileLikeRepository):
    metadata_type = "PermissionSet"

    async def list(self) -> dict[str, PermissionSet]:
        records = await self._context.connection.query(PERMISSION_SETS_QUERY)
        return {
            r["Name"]: PermissionSet(
                name=r["Name"],
                label=r.get("Label"),
                is_custom=as_bool(r.get("IsCustom", True)),
            )
            for r in records
        }


class UserRepository:
    def __init__(self, context: AuditContext) -> None:
        self._context = context

    async def list(
        self,
        *,
        with_login_history: bool = False,
        login_history_days: int = 30,
        with_permissions: bool = False,
        with_permissions_metadata: bool = False,
    ) -> dict[str, User]:
        """Resolve all users of the org, enriched as requested."""
        records = await self._context.connection.query(USERS_QUERY)
        users: dict[str, dict[str, Any]] = {}
        for record in records:
            users[record["Username"]] = {
                "user_id": record["Id"],
                "username": record["Username"],
                "profile_name": _nested(record, "Profile.Name") or "",
                "is_active": as_bool(record.get("IsActive", True)),
                "created_date": parse_datetime(record["CreatedDate"]),
                "last_login": parse_datetime(record["LastLoginDate"]) if record.get("LastLoginDate") else None,
            }

        if with_login_history:
            logins = await self._resolve_logins(login_history_days)
            for fields in users.values():
                fields["logins"] = tuple(logins.get(fields["user_id"], []))

        if with_permissions:
            assignments = await self._resolve_assignments()
            profile_metadata: dict[str, ProfileLikeMetadata] = {}
            permset_metadata: dict[str, ProfileLikeMetadata] = {}
            if with_permissions_metadata:
                profile_names = sorted({f["profile_name"] for f in users.values() if f["profile_name"]})
                permset_names = sorted({a.permission_set_name for al in assignments.values() for a in al})
                profile_metadata, permset_metadata = await asyncio.gather(
                    ProfileRepository(self._context).fetch_metadata(profile_names),
                    PermissionSetRepository(self._context).fetch_metadata(permset_names),
                )
            for fields in users.values():
                fields["assignments"] = tuple(
                    PermissionSetAssignment(
                        permission_set_name=a.permission_set_name,
                        source=a.source,
                        group_name=a.group_name,
                        metadata=permset_metadata.get(a.permission_set_name),
                    )
                    for a in assignments.get(fields["user_id"], [])
                )
                fields["profile_metadata"] = profile_metadata.get(fields["profile_name"])

        return {username: User(**fields) for username, fields in users.items()}

    async def _resolve_logins(self, days: int) -> dict[str, list[UserLogin]]:
        records = await self._context.connection.query(build_login_history_query(days))
        logins: dict[str, list[UserLogin]] = defaultdict(list)
        for row in records:
            logins[row["UserId"]].append(
                UserLogin(
                    login_type=row["LoginType"],
                    application=row.get("Application") or "",
                    login_count=int(row.get("LoginCount") or 0),
                    last_login=parse_datetime(row["LastLogin"]),
                )
            )
        return logins

    async def _resolve_assignments(self) -> dict[str, list[PermissionSetAssignment]]:
        records = await self._context.connection.query(PERMISSION_SET_ASSIGNMENTS_QUERY)
        assignments: dict[str, list[PermissionSetAssignment]] = defaultdict(list)
        for row in records:
            name = _nested(row, "PermissionSet.Name")
            if not name:
                continue
            group_name = _nested(row, "PermissionSetGroup.DeveloperName")
            assignments[row["AssigneeId"]].append(
                PermissionSetAssignment(
                    permission_set_name=name,
                    source="group" if row.get("PermissionSetGroupId") else "direct",
                    group_name=group_name,
                )
            )
        return assignments


class ConnectedAppRepository:
    def __init__(self, context: AuditContext) -> None:
        self._context = context

    async def list(self) -> dict[str, ConnectedApp]:
        """Registered connected apps plus apps only known through OAuth tokens."""
        connection = self._context.connection
        description = await connection.describe(CONNECTED_APPS_OBJECT)
        field_names = {f.get("name") for f in description.get("fields", [])}
        fields = ["Name"]
        if ADMIN_APPROVED_FIELD in field_names:
            fields.append(ADMIN_APPROVED_FIELD)
        else:
            logger.warning("%s.%s is not available", CONNECTED_APPS_OBJECT, ADMIN_APPROVED_FIELD)

        app_records = await connection.query(build_connected_apps_query(fields))
        token_records = await connection.query(OAUTH_TOKEN_QUERY)

        token_users: dict[str, set[str]] = defaultdict(set)
        use_counts: dict[str, int] = defaultdict(int)
        for token in token_records:
            app_name = token["AppName"]
            username = _nested(token, "User.Username")
            if username:
                token_users[app_name].add(username)
            use_counts[app_name] += int(token.get("UseCount") or 0)

        apps: dict[str, ConnectedApp] = {}
        for record in app_records:
            name = record["Name"]
            apps[name] = ConnectedApp(
                name=name,
                origin="Owned",
                only_admin_approved_users_allowed=as_bool(record.get(ADMIN_APPROVED_FIELD, False)),
                users=tuple(sorted(token_users.get(name, ()))),
                use_count=use_counts.get(name, 0),
            )
        for app_name, usernames in token_users.items():
            if app_name not in apps:
                apps[app_name] = ConnectedApp(
                    name=app_name,
                    origin="OauthToken",
                    users=tuple(sorted(usernames)),
                    use_count=use_counts[app_name],
                )
        return apps


class SettingsRepository:
    metadata_type = "Settings"

    def __init__(self, context: AuditContext) -> None:
        self._context = context

    async def fetch(self, names: list[str]) -> dict[str, dict[str, Any]]:
        if not names:
            return {}
        return await self._context.cache.retrieve(self.metadata_type, names)
