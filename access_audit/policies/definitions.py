"""Known policies and the rules each of them offers."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from access_audit.models import PolicyName
from access_audit.policies.base import EntityResolver, Policy
from access_audit.policies.connected_apps import ConnectedAppsResolver
from access_audit.policies.permission_sets import PermissionSetsResolver
from access_audit.policies.profiles import ProfilesResolver
from access_audit.policies.settings import SettingsResolver
from access_audit.policies.users import UsersResolver
from access_audit.registry import RuleRegistry, SettingsRuleRegistry
from access_audit.rules import (
    AllUsedAppsUnderManagement,
    EnforceLoginIpRanges,
    EnforcePermissionPresets,
    EnforcePermissionsOnProfileLike,
    EnforcePermissionsOnUser,
    NoInactiveUsers,
    NoOtherApexApiLogins,
    NoStandardProfilesOnActiveUsers,
    NoUserCanSelfAuthorize,
    PolicyRule,
)

if TYPE_CHECKING:
    from access_audit.config import AuditSettings
    from access_audit.models import RunConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicyDefinition:
    """How to build a policy: its resolution strategy, registry and rules."""

    resolver: type[EntityResolver[Any]]
    rules: Mapping[str, type[PolicyRule[Any]]] = field(default_factory=dict)
    registry: type[RuleRegistry] = RuleRegistry


POLICY_DEFINITIONS: dict[str, PolicyDefinition] = {
    PolicyName.PROFILES: PolicyDefinition(
        resolver=ProfilesResolver,
        rules={
            "EnforcePermissionClassifications": EnforcePermissionsOnProfileLike,
            "EnforceLoginIpRanges": EnforceLoginIpRanges,
        },
    ),
    PolicyName.PERMISSION_SETS: PolicyDefinition(
        resolver=PermissionSetsResolver,
        rules={"EnforcePermissionClassifications": EnforcePermissionsOnProfileLike},
    ),
    PolicyName.USERS: PolicyDefinition(
        resolver=UsersResolver,
        rules={
            "EnforcePermissionClassifications": EnforcePermissionsOnUser,
            "EnforcePermissionPresets": EnforcePermissionPresets,
            "NoInactiveUsers": NoInactiveUsers,
            "NoOtherApexApiLogins": NoOtherApexApiLogins,
            "NoStandardProfilesOnActiveUsers": NoStandardProfilesOnActiveUsers,
        },
    ),
    PolicyName.CONNECTED_APPS: PolicyDefinition(
        resolver=ConnectedAppsResolver,
        rules={
            "AllUsedAppsUnderManagement": AllUsedAppsUnderManagement,
            "NoUserCanSelfAuthorize": NoUserCanSelfAuthorize,
        },
    ),
    PolicyName.SETTINGS: PolicyDefinition(
        resolver=SettingsResolver,
        registry=SettingsRuleRegistry,
    ),
}


def load_policy(
    name: str,
    run_config: RunConfig,
    *,
    definitions: Mapping[str, PolicyDefinition] = POLICY_DEFINITIONS,
    settings: AuditSettings | None = None,
) -> Policy[Any] | None:
    """Build the configured policy ``name``, or None if it is not defined.

    Raises:
        ConfigurationError: If rule or policy options are invalid.
    """
    definition = definitions.get(name)
    if definition is None:
        logger.warning("Policy %s is not defined and will be ignored", name)
        return None
    config = run_config.policies[name]
    return Policy(
        name=name,
        config=config,
        run_config=run_config,
        registry=definition.registry(definition.rules),
        resolver=definition.resolver(config, run_config, settings),
    )
