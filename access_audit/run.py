"""Audit run orchestrator: resolve, execute and finalise all configured policies."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Mapping
from datetime import UTC, datetime
from typing import Any, TypeVar

from access_audit.accepted_risks import AcceptedRisks
from access_audit.config import AuditSettings
from access_audit.config import settings as default_settings
from access_audit.connection import AuditContext, Connection
from access_audit.errors import ConfigurationError
from access_audit.events import AuditListener, AuditStage, StageEvent
from access_audit.models import RunConfig
from access_audit.policies import POLICY_DEFINITIONS, Policy, PolicyDefinition, load_policy
from access_audit.repositories import ORGANIZATION_QUERY
from access_audit.results import AuditResult, PolicyResult

logger = logging.getLogger(__name__)

R = TypeVar("R")


async def gather_stage(*aws: Awaitable[R]) -> list[R]:
    """Await every task of a stage, then raise the first failure."""
    outcomes = await asyncio.gather(*aws, return_exceptions=True)
    for outcome in outcomes:
        if isinstance(outcome, BaseException):
            raise outcome
    return list(outcomes)


class AuditRun:
    """One execution of the configured policies against an org.

    Stages run strictly in sequence, each one concurrent across policies.
    Only configuration errors abort a run; remote failures end up in
    the policy results.
    """

    def __init__(
        self,
        config: RunConfig,
        *,
        definitions: Mapping[str, PolicyDefinition] = POLICY_DEFINITIONS,
        settings: AuditSettings | None = None,
    ) -> None:
        self.config = config
        self.definitions = definitions
        self.settings = settings or default_settings
        self.accepted_risks = AcceptedRisks(config.accepted_risks)
        self.policy_names = [name for name in config.policies if name in definitions]
        for name in config.policies:
            if name not in definitions:
                logger.warning("Ignoring unknown policy %s", name)
        if not self.policy_names:
            raise ConfigurationError("At least one known policy must be configured", ["policies"])
        self.policies: dict[str, Policy[Any]] = {}
        self._stage = AuditStage.PENDING

    @property
    def stage(self) -> AuditStage:
        return self._stage

    def executable_rules_count(self, policy_name: str) -> int:
        policy = self.policies.get(policy_name)
        return len(policy.rules.enabled_rules) if policy else 0

    async def execute(self, connection: Connection, listener: AuditListener | None = None) -> AuditResult:
        """Run all stages and return the audit result.

        Raises:
            ConfigurationError: If a policy or rule cannot be built from the config.
            RuntimeError: If the run was already executed.
        """
        if self._stage != AuditStage.PENDING:
            raise RuntimeError(f"Audit run cannot be executed in stage {self._stage}")
        context = AuditContext.create(
            connection,
            batch_size=self.settings.retrieve_batch_size,
            cache_metadata=self.settings.cache_metadata,
        )

        self._advance(AuditStage.RESOLVING, listener)
        self.policies = self._load_policies()
        subject_id, *_ = await gather_stage(
            self._fetch_subject_id(context),
            *(policy.resolve(context, listener) for policy in self.policies.values()),
        )

        self._advance(AuditStage.EXECUTING, listener)
        partials = await gather_stage(*(policy.execute_rules(context) for policy in self.policies.values()))

        self._advance(AuditStage.FINALISING, listener)
        results: dict[str, PolicyResult] = {
            name: policy.finalise(partial, self.accepted_risks)
            for (name, policy), partial in zip(self.policies.items(), partials, strict=True)
        }
        is_compliant = all(r.is_compliant for r in results.values() if r.enabled)

        self._advance(AuditStage.COMPLETED, listener)
        logger.info(
            "Audit of %s completed: %d policies, compliant=%s",
            subject_id or "<unknown org>",
            len(results),
            is_compliant,
        )
        return AuditResult(
            is_compliant=is_compliant,
            subject_id=subject_id,
            timestamp=datetime.now(UTC),
            policies=results,
            accepted_risks=self.accepted_risks.stats(),
        )

    def _load_policies(self) -> dict[str, Policy[Any]]:
        policies: dict[str, Policy[Any]] = {}
        for name in self.policy_names:
            policy = load_policy(name, self.config, definitions=self.definitions, settings=self.settings)
            if policy is not None:
                policies[name] = policy
        return policies

    async def _fetch_subject_id(self, context: AuditContext) -> str:
        try:
            records = await context.connection.query(ORGANIZATION_QUERY)
        except Exception as exc:
            logger.warning("Failed to query organization id: %s", exc)
            return ""
        return str(records[0]["Id"]) if records else ""

    def _advance(self, stage: AuditStage, listener: AuditListener | None) -> None:
        self._stage = stage
        logger.info("Audit run stage: %s", stage)
        if listener is not None:
            listener(StageEvent(stage=stage))
