"""Policy rules."""

from access_audit.rules.base import PolicyRule, RuleContext, RuleOptions
from access_audit.rules.connected_apps import AllUsedAppsUnderManagement, NoUserCanSelfAuthorize
from access_audit.rules.login_ips import EnforceLoginIpRanges
from access_audit.rules.permissions import (
    EnforcePermissionPresets,
    EnforcePermissionsOnProfileLike,
    EnforcePermissionsOnUser,
)
from access_audit.rules.settings import EnforceSettings
from access_audit.rules.users import (
    NoInactiveUsers,
    NoOtherApexApiLogins,
    NoStandardProfilesOnActiveUsers,
)

__all__ = [
    "AllUsedAppsUnderManagement",
    "EnforceLoginIpRanges",
    "EnforcePermissionPresets",
    "EnforcePermissionsOnProfileLike",
    "EnforcePermissionsOnUser",
    "EnforceSettings",
    "NoInactiveUsers",
    "NoOtherApexApiLogins",
    "NoStandardProfilesOnActiveUsers",
    "NoUserCanSelfAuthorize",
    "PolicyRule",
    "RuleContext",
    "RuleOptions",
]
