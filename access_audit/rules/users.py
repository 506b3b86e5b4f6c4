"""Rules for the users policy."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from access_audit.entities import ResolvedUser
from access_audit.results import PartialRuleResult, RuleComponentMessage, Violation
from access_audit.rules.base import PolicyRule, RuleContext

OTHER_APEX_API_LOGIN = "Other Apex API"


class NoInactiveUsersOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    days_after_user_is_inactive: int = Field(default=90, ge=0)


class NoInactiveUsers(PolicyRule[ResolvedUser]):
    """Users must have logged in within the configured number of days."""

    options_model = NoInactiveUsersOptions

    async def run(self, context: RuleContext[ResolvedUser]) -> PartialRuleResult:
        result = self.init_result()
        now = datetime.now(UTC)
        threshold = self.options.days_after_user_is_inactive
        for resolved in context.resolved_entities.values():
            user = resolved.user
            if user.last_login is None:
                created_days_ago = (now - user.created_date).days
                result.violations.append(
                    Violation(
                        identifier=[user.username],
                        message=(
                            f"User has never logged in. User was created on"
                            f" {user.created_date.isoformat()} ({created_days_ago} days ago)."
                        ),
                    )
                )
                continue
            inactive_days = (now - user.last_login).days
            if inactive_days > threshold:
                result.violations.append(
                    Violation(
                        identifier=[user.username],
                        message=(
                            f"User is inactive for {inactive_days} days."
                            f" Last login was {user.last_login.isoformat()}."
                        ),
                    )
                )
        return result


class NoOtherApexApiLogins(PolicyRule[ResolvedUser]):
    """Users must not log in through the deprecated Other Apex API login type."""

    async def run(self, context: RuleContext[ResolvedUser]) -> PartialRuleResult:
        result = self.init_result()
        for resolved in context.resolved_entities.values():
            for login in resolved.user.logins or ():
                if login.login_type != OTHER_APEX_API_LOGIN:
                    continue
                result.violations.append(
                    Violation(
                        identifier=[resolved.username, login.last_login.isoformat()],
                        message=(
                            f"User logged in {login.login_count} time(s) with login type"
                            f" {OTHER_APEX_API_LOGIN} ({login.application or 'unknown application'})."
                        ),
                    )
                )
        return result


class NoStandardProfilesOnActiveUsers(PolicyRule[ResolvedUser]):
    """Active users must not be assigned a standard (non-custom) profile."""

    async def run(self, context: RuleContext[ResolvedUser]) -> PartialRuleResult:
        result = self.init_result()
        for resolved in context.resolved_entities.values():
            user = resolved.user
            if user.profile_metadata is None or user.profile_metadata.custom:
                continue
            identifier = [user.username, user.profile_name]
            if user.is_active:
                result.violations.append(
                    Violation(
                        identifier=identifier,
                        message="Active user has a standard profile assigned.",
                        hint="Clone the standard profile and assign the custom copy.",
                    )
                )
            else:
                result.warnings.append(
                    RuleComponentMessage(
                        identifier=identifier,
                        message="Inactive user has a standard profile assigned.",
                    )
                )
        return result
