"""Generic policy: resolve entities once, run rules concurrently, finalise results."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Generic, TypeVar

from access_audit.config import settings as default_settings
from access_audit.errors import ConfigurationError
from access_audit.events import ResolveProgress
from access_audit.results import (
    EntityResolveError,
    PartialRuleResult,
    PolicyResult,
    RuleComponentMessage,
    RuleResult,
)
from access_audit.rules.base import RuleContext

if TYPE_CHECKING:
    from access_audit.accepted_risks import AcceptedRisks
    from access_audit.config import AuditSettings
    from access_audit.connection import AuditContext
    from access_audit.events import AuditListener
    from access_audit.models import PolicyConfig, RunConfig
    from access_audit.registry import RuleRegistry, RuleResolveResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

ENTITIES_CONFLICT = "Rule reported entities as both compliant and violated: {names}."


@dataclass
class ResolveEntityResult(Generic[T]):
    """Entities of a policy, split into audited and ignored."""

    resolved_entities: dict[str, T] = field(default_factory=dict)
    ignored_entities: list[EntityResolveError] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.resolved_entities) + len(self.ignored_entities)


class EntityResolver(ABC, Generic[T]):
    """Domain-specific resolution strategy of a policy.

    Cross-references entities on the org with the configured
    classifications. Only remote failures of individual entities
    belong in ``ignored_entities``; anything else may raise.
    """

    def __init__(
        self,
        config: PolicyConfig,
        run_config: RunConfig,
        settings: AuditSettings | None = None,
    ) -> None:
        self.config = config
        self.run_config = run_config
        self.settings = settings or default_settings

    @abstractmethod
    async def resolve(self, context: AuditContext, progress: ResolveProgress) -> ResolveEntityResult[T]:
        """Resolve all entities of the policy."""

    def filter_rules(self, rules: RuleResolveResult, result: ResolveEntityResult[T]) -> None:
        """Adjust the resolved rule set once entities are known."""


class Policy(Generic[T]):
    """One audit domain: owns its entities and executes its rules.

    Rules are resolved at construction, so invalid rule options fail
    before anything touches the org. Entities are resolved at most once
    per policy; concurrent callers share the same in-flight resolve.
    """

    def __init__(
        self,
        name: str,
        config: PolicyConfig,
        run_config: RunConfig,
        registry: RuleRegistry,
        resolver: EntityResolver[T],
    ) -> None:
        self.name = name
        self.config = config
        self.run_config = run_config
        self.registry = registry
        self.resolver = resolver
        self.rules = registry.resolve_rules(config.rules, run_config)
        self._resolve_task: asyncio.Task[ResolveEntityResult[T]] | None = None
        self._entities: ResolveEntityResult[T] | None = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    @property
    def entities(self) -> ResolveEntityResult[T] | None:
        return self._entities

    async def resolve(
        self,
        context: AuditContext,
        listener: AuditListener | None = None,
    ) -> ResolveEntityResult[T]:
        """Resolve the policy's entities. Disabled policies never touch the org."""
        if not self.enabled:
            self._entities = ResolveEntityResult()
            return self._entities
        if self._resolve_task is None:
            self._resolve_task = asyncio.ensure_future(self._resolve(context, listener))
        return await asyncio.shield(self._resolve_task)

    async def _resolve(
        self,
        context: AuditContext,
        listener: AuditListener | None,
    ) -> ResolveEntityResult[T]:
        progress = ResolveProgress(self.name, listener)
        try:
            result = await self.resolver.resolve(context, progress)
        except ConfigurationError:
            raise
        except Exception as exc:
            logger.exception("Failed to resolve entities of policy %s", self.name)
            result = ResolveEntityResult(
                ignored_entities=[
                    EntityResolveError(name=self.name, message=f"Failed to resolve entities: {exc}")
                ]
            )
        self.resolver.filter_rules(self.rules, result)
        progress.complete(result.total)
        logger.info(
            "Policy %s resolved %d entities, ignored %d",
            self.name,
            len(result.resolved_entities),
            len(result.ignored_entities),
        )
        self._entities = result
        return result

    async def execute_rules(self, context: AuditContext) -> dict[str, PartialRuleResult]:
        """Run all enabled rules concurrently and return their raw results."""
        if not self.enabled:
            return {}
        entities = await self.resolve(context)
        rule_context: RuleContext[T] = RuleContext(
            context=context,
            resolved_entities=MappingProxyType(entities.resolved_entities),
        )
        rules = list(self.rules.enabled_rules)
        outcomes = await asyncio.gather(
            *(rule.run(rule_context) for rule in rules),
            return_exceptions=True,
        )

        results: dict[str, PartialRuleResult] = {}
        for rule, outcome in zip(rules, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                if isinstance(outcome, ConfigurationError) or not isinstance(outcome, Exception):
                    raise outcome
                logger.warning("Rule %s of policy %s failed: %s", rule.name, self.name, outcome)
                failed = rule.init_result()
                failed.errors.append(
                    RuleComponentMessage(
                        identifier=[rule.name],
                        message=f"Rule failed to execute: {outcome!r}",
                    )
                )
                outcome = failed
            results[rule.name] = outcome
        return results

    def finalise(
        self,
        partials: Mapping[str, PartialRuleResult],
        accepted_risks: AcceptedRisks,
    ) -> PolicyResult:
        """Mute accepted risks, derive entity partitions and compute compliance."""
        if not self.enabled:
            return PolicyResult(enabled=False, is_compliant=True)
        entities = self._entities or ResolveEntityResult()
        executed: dict[str, RuleResult] = {}
        for partial in partials.values():
            scrubbed = accepted_risks.scrub(self.name, partial)
            partition = partition_entities(scrubbed, entities.resolved_entities)
            errors = list(scrubbed.errors)
            if partition.conflicting:
                logger.warning(
                    "Rule %s of policy %s reported entities as compliant and violated: %s",
                    scrubbed.rule_name,
                    self.name,
                    ", ".join(partition.conflicting),
                )
                errors.append(
                    RuleComponentMessage(
                        identifier=[scrubbed.rule_name],
                        message=ENTITIES_CONFLICT.format(names=", ".join(partition.conflicting)),
                    )
                )
            executed[scrubbed.rule_name] = RuleResult(
                rule_name=scrubbed.rule_name,
                is_compliant=not scrubbed.violations,
                violations=scrubbed.violations,
                muted_violations=scrubbed.muted_violations,
                compliant_entities=partition.compliant,
                violated_entities=partition.violated,
                warnings=scrubbed.warnings,
                errors=errors,
            )
        return PolicyResult(
            enabled=True,
            is_compliant=all(r.is_compliant for r in executed.values()),
            executed_rules=executed,
            skipped_rules=list(self.rules.skipped_rules),
            unresolved_rules=list(self.rules.resolve_errors),
            audited_entities=list(entities.resolved_entities),
            ignored_entities=list(entities.ignored_entities),
        )

    async def run(self, context: AuditContext, accepted_risks: AcceptedRisks) -> PolicyResult:
        """Execute all rules and finalise the policy result."""
        if not self.enabled:
            return PolicyResult(enabled=False, is_compliant=True)
        partials = await self.execute_rules(context)
        return self.finalise(partials, accepted_risks)


@dataclass
class EntityPartition:
    compliant: list[str]
    violated: list[str]
    conflicting: list[str] = field(default_factory=list)


def partition_entities(
    result: PartialRuleResult,
    resolved_entities: Mapping[str, object],
) -> EntityPartition:
    """Split entities into compliant and violated, honouring lists the rule reported.

    An entity is violated when it is the first identifier segment of at
    least one violation. Muted violations do not count, so an entity the
    rule reported as violated moves to compliant once all its violations
    are muted. A side the rule left out is derived without the side it
    reported. Entities the rule reported on both sides stay violated and
    are returned as ``conflicting``.
    """
    derived = list(dict.fromkeys(v.identifier[0] for v in result.violations if v.identifier))
    muted_only = {m.identifier[0] for m in result.muted_violations if m.identifier} - set(derived)

    if result.violated_entities is None:
        violated, cleared = derived, []
    else:
        violated = [name for name in result.violated_entities if name not in muted_only]
        cleared = [name for name in result.violated_entities if name in muted_only]

    if result.compliant_entities is None:
        excluded = set(violated)
        compliant = [name for name in resolved_entities if name not in excluded]
    else:
        compliant = list(result.compliant_entities)
        if result.violated_entities is None:
            reported = set(compliant)
            violated = [name for name in violated if name not in reported]
    compliant += [name for name in cleared if name not in compliant]

    violated_set = set(violated)
    conflicting = [name for name in compliant if name in violated_set]
    if conflicting:
        compliant = [name for name in compliant if name not in violated_set]
    return EntityPartition(compliant, violated, conflicting)
