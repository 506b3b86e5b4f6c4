"""Entity resolution for org settings.

Entities are derived from the configured ``Enforce<Name>Settings`` rules:
each enabled rule names exactly one settings document.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from access_audit.entities import ResolvedSetting
from access_audit.policies.base import EntityResolver, ResolveEntityResult
from access_audit.registry import RULE_NOT_ENABLED, find_setting_name
from access_audit.repositories import SettingsRepository
from access_audit.results import EntityResolveError, SkippedRule
from access_audit.rules.settings import EnforceSettings

if TYPE_CHECKING:
    from access_audit.connection import AuditContext
    from access_audit.events import ResolveProgress
    from access_audit.registry import RuleResolveResult

logger = logging.getLogger(__name__)

SETTING_NOT_RESOLVED = "Setting could not be retrieved from the org."
SKIP_SETTING_NOT_RESOLVED = "Setting {name} could not be retrieved from the org."


class SettingsResolver(EntityResolver[ResolvedSetting]):
    def enabled_settings(self) -> list[str]:
        names = []
        for rule_name, rule in self.config.rules.items():
            setting_name = find_setting_name(rule_name)
            if setting_name and rule.enabled:
                names.append(setting_name)
        return names

    async def resolve(
        self,
        context: AuditContext,
        progress: ResolveProgress,
    ) -> ResolveEntityResult[ResolvedSetting]:
        names = self.enabled_settings()
        progress.update(total=len(names), resolved=0)
        documents: dict[str, dict[str, Any]] = {}
        try:
            documents = await SettingsRepository(context).fetch(names)
        except Exception as exc:
            logger.warning("Failed to retrieve settings %s: %s", ", ".join(names), exc)

        result: ResolveEntityResult[ResolvedSetting] = ResolveEntityResult(
            resolved_entities={name: documents[name] for name in names if name in documents}
        )
        for rule_name, rule in self.config.rules.items():
            setting_name = find_setting_name(rule_name)
            if setting_name is None:
                continue
            if not rule.enabled:
                result.ignored_entities.append(EntityResolveError(name=setting_name, message=RULE_NOT_ENABLED))
            elif setting_name not in documents:
                result.ignored_entities.append(EntityResolveError(name=setting_name, message=SETTING_NOT_RESOLVED))
        progress.update(resolved=len(result.resolved_entities))
        return result

    def filter_rules(self, rules: RuleResolveResult, result: ResolveEntityResult[ResolvedSetting]) -> None:
        """Skip rules whose settings document could not be retrieved."""
        kept = []
        for rule in rules.enabled_rules:
            if isinstance(rule, EnforceSettings) and rule.setting_name not in result.resolved_entities:
                rules.skipped_rules.append(
                    SkippedRule(name=rule.name, skip_reason=SKIP_SETTING_NOT_RESOLVED.format(name=rule.setting_name))
                )
            else:
                kept.append(rule)
        rules.enabled_rules[:] = kept
