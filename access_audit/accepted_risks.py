"""Muting of violations that match documented accepted risks.

The tree is keyed by policy, then rule, then one key per identifier
segment, and ends in a leaf ``{"reason": ...}``. ``*`` matches any
segment but is only taken when no exact key exists.

Built-in risks are merged under the configured tree; a configured node
replaces a built-in leaf at the same path.
"""

from __future__ import annotations

import copy
import logging
from collections import Counter
from collections.abc import Iterator, Mapping
from typing import Any

from access_audit.errors import ConfigurationError
from access_audit.models import WILDCARD, check_risk_tree, is_leaf
from access_audit.results import MutedViolation, PartialRuleResult, RiskStat, RiskType, Violation

logger = logging.getLogger(__name__)

INTEGRATION_USER_NOT_MANAGEABLE = (
    "Integration users are provisioned with a standard profile that cannot be changed."
)

BUILTIN_RISKS: dict[str, Any] = {
    "users": {
        "NoStandardProfilesOnActiveUsers": {
            WILDCARD: {
                "Sales Insights Integration User": {"reason": INTEGRATION_USER_NOT_MANAGEABLE},
            },
        },
    },
}


class AcceptedRisks:
    """Matches violations against the accepted-risk tree of a run."""

    def __init__(
        self,
        tree: Mapping[str, Any] | None = None,
        *,
        builtin: Mapping[str, Any] = BUILTIN_RISKS,
    ) -> None:
        custom = dict(tree or {})
        try:
            check_risk_tree(custom)
        except ValueError as exc:
            raise ConfigurationError(f"Malformed accepted risks: {exc}", ["accepted_risks"]) from exc
        self._custom = custom
        self._tree = merge_trees(copy.deepcopy(dict(builtin)), custom)
        self._applied: Counter[tuple[str, ...]] = Counter()

    def rule_tree(self, policy_name: str, rule_name: str) -> dict[str, Any] | None:
        policy_node = self._tree.get(policy_name)
        if not isinstance(policy_node, dict) or is_leaf(policy_node):
            return None
        rule_node = policy_node.get(rule_name)
        if not isinstance(rule_node, dict) or not rule_node:
            return None
        return rule_node

    def scrub(self, policy_name: str, result: PartialRuleResult) -> PartialRuleResult:
        """Move violations that match an accepted risk to ``muted_violations``.

        Returns ``result`` itself when no risks are configured for the rule,
        otherwise a new result. Muted violations already on ``result`` are kept.
        Every match counts towards the usage reported by :meth:`stats`.
        """
        rule_node = self.rule_tree(policy_name, result.rule_name)
        if rule_node is None:
            return result

        violations: list[Violation] = []
        muted: list[MutedViolation] = list(result.muted_violations)
        for violation in result.violations:
            match = match_identifier(rule_node, violation.identifier)
            if match is None:
                violations.append(violation)
                continue
            reason, path = match
            source_path = [policy_name, result.rule_name, *path]
            self._applied[tuple(source_path)] += 1
            muted.append(
                MutedViolation(
                    **violation.model_dump(),
                    reason=reason,
                    source_path=source_path,
                )
            )
        if len(muted) > len(result.muted_violations):
            logger.debug(
                "Muted %d violation(s) of %s.%s",
                len(muted) - len(result.muted_violations),
                policy_name,
                result.rule_name,
            )
        return result.model_copy(update={"violations": violations, "muted_violations": muted})

    def stats(self) -> list[RiskStat]:
        """All accepted risks as a flat list, built-in ones first, with their usage so far."""
        stats: list[RiskStat] = []
        for policy_name, policy_node in self._tree.items():
            if not isinstance(policy_node, dict) or is_leaf(policy_node):
                continue
            for rule_name, rule_node in policy_node.items():
                if not isinstance(rule_node, dict) or is_leaf(rule_node):
                    continue
                for path in iter_leaf_paths(rule_node):
                    source_path = (policy_name, rule_name, *path)
                    stats.append(
                        RiskStat(
                            policy=policy_name,
                            rule=rule_name,
                            matcher=path,
                            applied_count=self._applied[source_path],
                            type=RiskType.CUSTOM if self._is_custom(source_path) else RiskType.STANDARD,
                        )
                    )
        return stats

    def _is_custom(self, source_path: tuple[str, ...]) -> bool:
        node: Any = self._custom
        for key in source_path:
            if not isinstance(node, dict) or key not in node:
                return False
            node = node[key]
        return is_leaf(node)


def merge_trees(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into ``base`` in place; branches merge, anything else replaces."""
    for key, value in override.items():
        current = base.get(key)
        if (
            isinstance(current, dict)
            and isinstance(value, dict)
            and not is_leaf(current)
            and not is_leaf(value)
        ):
            merge_trees(current, value)
        else:
            base[key] = copy.deepcopy(value)
    return base


def iter_leaf_paths(node: dict[str, Any], path: list[str] | None = None) -> Iterator[list[str]]:
    path = path or []
    for key, child in node.items():
        if is_leaf(child):
            yield [*path, key]
        elif isinstance(child, dict):
            yield from iter_leaf_paths(child, [*path, key])


def match_identifier(node: dict[str, Any], identifier: list[str]) -> tuple[str, list[str]] | None:
    """Walk ``identifier`` down ``node`` and return the leaf reason and matched keys.

    Exact keys win over the wildcard and there is no backtracking. Only a
    leaf reached with the last segment matches.
    """
    path: list[str] = []
    for segment in identifier:
        if is_leaf(node):
            return None
        if segment in node:
            key = segment
        elif WILDCARD in node:
            key = WILDCARD
        else:
            return None
        node = node[key]
        path.append(key)
    if path and is_leaf(node):
        return node["reason"], path
    return None
