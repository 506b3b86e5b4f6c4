"""Rule registries: map configured rule names to rule instances."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from access_audit.results import EntityResolveError, SkippedRule
from access_audit.rules.base import PolicyRule, RuleOptions
from access_audit.rules.settings import EnforceSettings

if TYPE_CHECKING:
    from access_audit.models import RuleConfig, RunConfig

logger = logging.getLogger(__name__)

RULE_NOT_ENABLED = "Rule is not enabled."
RULE_NOT_REGISTERED = "Rule is not registered for this policy."
NOT_A_SETTINGS_RULE = "Rule name does not match 'Enforce<Name>Settings'."

SETTINGS_RULE_PATTERN = re.compile(r"^Enforce(.+)Settings$")


@dataclass
class RuleResolveResult:
    """Configured rules partitioned into enabled, skipped and unresolved."""

    enabled_rules: list[PolicyRule] = field(default_factory=list)
    skipped_rules: list[SkippedRule] = field(default_factory=list)
    resolve_errors: list[EntityResolveError] = field(default_factory=list)


class RuleRegistry:
    """Holds the rules available to a policy.

    New rules can be registered at run time, so users can bring
    their own rules.
    """

    def __init__(self, rules: Mapping[str, type[PolicyRule]] | None = None) -> None:
        self._rules: dict[str, type[PolicyRule]] = dict(rules or {})

    def register(self, name: str, rule_cls: type[PolicyRule]) -> None:
        self._rules[name] = rule_cls
        logger.debug("Registered rule: %s", name)

    def registered_rules(self) -> list[str]:
        return list(self._rules)

    def resolve_rules(
        self,
        configured: Mapping[str, RuleConfig],
        run_config: RunConfig,
    ) -> RuleResolveResult:
        """Instantiate enabled rules. Unknown names never raise.

        Raises:
            ConfigurationError: If a rule's options are invalid.
        """
        result = RuleResolveResult()
        for name, rule_config in configured.items():
            rule_cls = self._rules.get(name)
            if rule_cls is not None and rule_config.enabled:
                result.enabled_rules.append(
                    rule_cls(RuleOptions(run_config=run_config, name=name, options=rule_config.options))
                )
            elif not rule_config.enabled:
                result.skipped_rules.append(SkippedRule(name=name, skip_reason=RULE_NOT_ENABLED))
            else:
                logger.warning("Rule %s is not registered", name)
                result.resolve_errors.append(EntityResolveError(name=name, message=RULE_NOT_REGISTERED))
        return result


def find_setting_name(rule_name: str) -> str | None:
    match = SETTINGS_RULE_PATTERN.match(rule_name)
    return match.group(1) if match else None


class SettingsRuleRegistry(RuleRegistry):
    """Convention-based registry: ``Enforce<Name>Settings`` enforces the <Name> setting."""

    def resolve_rules(
        self,
        configured: Mapping[str, RuleConfig],
        run_config: RunConfig,
    ) -> RuleResolveResult:
        result = RuleResolveResult()
        for name, rule_config in configured.items():
            setting_name = find_setting_name(name)
            if setting_name and rule_config.enabled:
                result.enabled_rules.append(
                    EnforceSettings(
                        RuleOptions(run_config=run_config, name=name, options=rule_config.options),
                        setting_name=setting_name,
                    )
                )
            elif not rule_config.enabled:
                result.skipped_rules.append(SkippedRule(name=name, skip_reason=RULE_NOT_ENABLED))
            else:
                result.skipped_rules.append(SkippedRule(name=name, skip_reason=NOT_A_SETTINGS_RULE))
        return result
