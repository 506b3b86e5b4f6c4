"""Result models produced by rules, policies and the audit run."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field, model_validator


class RuleComponentMessage(BaseModel):
    """Warning or error attached to one component of a rule."""

    identifier: list[str]
    message: str


class Violation(RuleComponentMessage):
    """A single violation reported by a rule."""

    hint: str | None = None
    details: list[str] = []


class MutedViolation(Violation):
    """A violation that matched an accepted risk."""

    reason: str
    source_path: list[str] | None = None


class EntityResolveError(BaseModel):
    """A configured entity that could not be audited on the target org."""

    name: str
    message: str


class SkippedRule(BaseModel):
    name: str
    skip_reason: str


class PartialRuleResult(BaseModel):
    """What a rule returns. The policy completes the remaining fields."""

    rule_name: str
    violations: list[Violation] = []
    muted_violations: list[MutedViolation] = []
    warnings: list[RuleComponentMessage] = []
    errors: list[RuleComponentMessage] = []
    compliant_entities: list[str] | None = None
    violated_entities: list[str] | None = None


class RuleResult(BaseModel):
    """Full execution summary of a single rule."""

    rule_name: str
    is_compliant: bool
    violations: list[Violation] = []
    muted_violations: list[MutedViolation] = []
    compliant_entities: list[str] = []
    violated_entities: list[str] = []
    warnings: list[RuleComponentMessage] = []
    errors: list[RuleComponentMessage] = []

    @model_validator(mode="after")
    def _entities_are_disjoint(self) -> RuleResult:
        overlap = set(self.compliant_entities) & set(self.violated_entities)
        if overlap:
            raise ValueError(
                f"Entities cannot be compliant and violated at once: {sorted(overlap)}"
            )
        return self


class PolicyResult(BaseModel):
    """Full execution result of a policy."""

    enabled: bool
    is_compliant: bool
    executed_rules: dict[str, RuleResult] = {}
    skipped_rules: list[SkippedRule] = []
    unresolved_rules: list[EntityResolveError] = []
    audited_entities: list[str] = []
    ignored_entities: list[EntityResolveError] = []


class RiskType(StrEnum):
    STANDARD = "standard"
    CUSTOM = "custom"


class RiskStat(BaseModel):
    """Usage of one accepted risk during a run."""

    policy: str
    rule: str
    matcher: list[str]
    applied_count: int = 0
    type: RiskType


class AuditResult(BaseModel):
    """Final report of an audit run."""

    is_compliant: bool
    subject_id: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    policies: dict[str, PolicyResult] = {}
    accepted_risks: list[RiskStat] = []
