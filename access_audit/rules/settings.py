"""Structural comparison of org settings against expected values."""

from __future__ import annotations

from typing import Any

from access_audit.entities import ResolvedSetting
from access_audit.errors import ConfigurationError
from access_audit.results import PartialRuleResult, RuleComponentMessage, Violation
from access_audit.rules.base import PolicyRule, RuleContext, RuleOptions


def _normalize(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _check_expected_tree(name: str, node: dict[str, Any], path: list[str]) -> None:
    for key, value in node.items():
        if isinstance(value, dict):
            _check_expected_tree(name, value, [*path, key])
        elif not isinstance(value, str | int | float | bool):
            raise ConfigurationError(
                f"Invalid options for rule '{name}': expected a value or a mapping",
                ["rules", name, "options", *path, key],
            )


def check_settings(
    expected: dict[str, Any],
    actual: Any,
    path: list[str],
    result: PartialRuleResult,
) -> None:
    """Compare ``expected`` against ``actual``.

    Keys that only exist on ``actual`` are ignored.
    """
    for key, expected_value in expected.items():
        key_path = [*path, key]
        if not isinstance(actual, dict) or actual.get(key) is None:
            result.warnings.append(
                RuleComponentMessage(
                    identifier=key_path,
                    message="Property does not exist on the org and was not evaluated.",
                )
            )
            continue
        actual_value = actual[key]
        if isinstance(expected_value, dict):
            check_settings(expected_value, actual_value, key_path, result)
        elif _normalize(expected_value) != _normalize(actual_value):
            result.violations.append(
                Violation(
                    identifier=key_path,
                    message=(
                        f"Expected value {_normalize(expected_value)!r}"
                        f" but found {_normalize(actual_value)!r}."
                    ),
                )
            )


class EnforceSettings(PolicyRule[ResolvedSetting]):
    """Enforces configured values on one settings document.

    Rule options are the expected key/value tree. The rule reports its
    own compliant and violated entities (the setting itself).
    """

    def __init__(self, opts: RuleOptions, setting_name: str) -> None:
        super().__init__(opts)
        self.setting_name = setting_name
        _check_expected_tree(self.name, opts.options or {}, [])
        self.expected: dict[str, Any] = dict(opts.options or {})

    async def run(self, context: RuleContext[ResolvedSetting]) -> PartialRuleResult:
        result = self.init_result()
        root = f"{self.setting_name}Settings"
        check_settings(
            self.expected,
            context.resolved_entities.get(self.setting_name),
            [root],
            result,
        )
        if result.violations:
            result.compliant_entities = []
            result.violated_entities = [root]
        else:
            result.compliant_entities = [root]
            result.violated_entities = []
        return result
