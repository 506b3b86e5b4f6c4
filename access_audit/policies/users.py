"""Entity resolution for users."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic import ValidationError

from access_audit.entities import ResolvedUser
from access_audit.errors import ConfigurationError
from access_audit.models import PolicyName, PrivilegeLevel, UsersPolicyOptions
from access_audit.policies.base import EntityResolver, ResolveEntityResult
from access_audit.repositories import UserRepository
from access_audit.results import EntityResolveError

if TYPE_CHECKING:
    from access_audit.config import AuditSettings
    from access_audit.connection import AuditContext
    from access_audit.events import ResolveProgress
    from access_audit.models import PolicyConfig, RunConfig

logger = logging.getLogger(__name__)

PRIVILEGE_UNKNOWN = "User has privilege level Unknown and was not audited."

# Rules that need more than the plain user records
LOGIN_HISTORY_RULES = frozenset({"NoInactiveUsers", "NoOtherApexApiLogins"})
PERMISSION_RULES = frozenset({"EnforcePermissionPresets", "EnforcePermissionClassifications"})
PERMISSION_METADATA_RULES = frozenset({"EnforcePermissionClassifications", "NoStandardProfilesOnActiveUsers"})


class UsersResolver(EntityResolver[ResolvedUser]):
    """All standard users of the org, each with an effective privilege level.

    Users without a classification get the policy's default level.
    Login history and permission assignments are only fetched when an
    enabled rule needs them.
    """

    def __init__(
        self,
        config: PolicyConfig,
        run_config: RunConfig,
        settings: AuditSettings | None = None,
    ) -> None:
        super().__init__(config, run_config, settings)
        try:
            self.options = UsersPolicyOptions.model_validate(config.options)
        except ValidationError as exc:
            first = exc.errors()[0]
            raise ConfigurationError(
                f"Invalid options for policy '{PolicyName.USERS}': {first['msg']}",
                ["policies", PolicyName.USERS, "options", *(str(p) for p in first["loc"])],
            ) from exc
        enabled = {name for name, rule in config.rules.items() if rule.enabled}
        self.with_login_history = bool(enabled & LOGIN_HISTORY_RULES)
        self.with_permissions_metadata = bool(enabled & PERMISSION_METADATA_RULES)
        self.with_permissions = self.with_permissions_metadata or bool(enabled & PERMISSION_RULES)

    @property
    def login_history_days(self) -> int:
        return self.options.analyse_last_n_days_of_login_history or self.settings.default_login_history_days

    async def resolve(self, context: AuditContext, progress: ResolveProgress) -> ResolveEntityResult[ResolvedUser]:
        classified = self.run_config.classifications.users
        progress.update(total=len(classified), resolved=0)
        users = await UserRepository(context).list(
            with_login_history=self.with_login_history,
            login_history_days=self.login_history_days,
            with_permissions=self.with_permissions,
            with_permissions_metadata=self.with_permissions_metadata,
        )
        progress.update(total=len(users))

        result: ResolveEntityResult[ResolvedUser] = ResolveEntityResult()
        for username, user in users.items():
            classification = classified.get(username)
            level = classification.privilege_level if classification else self.options.default_privilege_level
            if level == PrivilegeLevel.UNKNOWN:
                result.ignored_entities.append(EntityResolveError(name=username, message=PRIVILEGE_UNKNOWN))
            else:
                result.resolved_entities[username] = ResolvedUser(user=user, privilege_level=level)
        logger.debug("Resolved %d users, %d with classification", len(users), len(users.keys() & classified.keys()))
        progress.update(resolved=result.total)
        return result
