"""Rules for the connected apps policy."""

from __future__ import annotations

import logging

from access_audit.entities import ResolvedConnectedApp
from access_audit.repositories import SettingsRepository, as_bool
from access_audit.results import PartialRuleResult, RuleComponentMessage, Violation
from access_audit.rules.base import PolicyRule, RuleContext

logger = logging.getLogger(__name__)

CONNECTED_APP_SETTINGS = "ConnectedApp"
ADMIN_APPROVED_APPS_ONLY = "enableAdminApprovedAppsOnly"


class AllUsedAppsUnderManagement(PolicyRule[ResolvedConnectedApp]):
    """Every app that holds OAuth tokens must be installed and managed."""

    async def run(self, context: RuleContext[ResolvedConnectedApp]) -> PartialRuleResult:
        result = self.init_result()
        for app in context.resolved_entities.values():
            if app.origin == "OauthToken":
                result.violations.append(
                    Violation(
                        identifier=[app.name],
                        message=(
                            f"App is used by {len(app.users)} user(s) ({app.use_count} uses)"
                            " but is not installed."
                        ),
                        hint="Install the connected app to manage its access policies.",
                    )
                )
        return result


class NoUserCanSelfAuthorize(PolicyRule[ResolvedConnectedApp]):
    """Only admin-approved users may authorize connected apps."""

    async def run(self, context: RuleContext[ResolvedConnectedApp]) -> PartialRuleResult:
        result = self.init_result()
        override = False
        try:
            settings = await SettingsRepository(context.context).fetch([CONNECTED_APP_SETTINGS])
            document = settings.get(CONNECTED_APP_SETTINGS) or {}
            override = as_bool(document.get(ADMIN_APPROVED_APPS_ONLY, False))
        except Exception as exc:
            logger.warning("Failed to retrieve %s settings: %s", CONNECTED_APP_SETTINGS, exc)
            result.errors.append(
                RuleComponentMessage(
                    identifier=[f"{CONNECTED_APP_SETTINGS}Settings"],
                    message=f"Failed to retrieve settings: {exc}",
                )
            )

        for app in context.resolved_entities.values():
            if app.only_admin_approved_users_allowed:
                continue
            if override:
                result.warnings.append(
                    RuleComponentMessage(
                        identifier=[app.name],
                        message=(
                            "Users can self-authorize, but API access control"
                            " restricts access to admin-approved apps."
                        ),
                    )
                )
            else:
                result.violations.append(
                    Violation(
                        identifier=[app.name],
                        message="All users are allowed to self-authorize this app.",
                        hint="Set permitted users to 'Admin approved users are pre-authorized'.",
                    )
                )
        return result
