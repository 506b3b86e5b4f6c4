"""Base class and execution context for policy rules."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from access_audit.errors import ConfigurationError
from access_audit.results import PartialRuleResult

if TYPE_CHECKING:
    from access_audit.connection import AuditContext, Connection, MetadataCache
    from access_audit.models import RunConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RuleOptions:
    """Construction arguments handed to every rule by the registry."""

    run_config: RunConfig
    name: str
    options: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RuleContext(Generic[T]):
    """Run-time context of a rule: remote access plus the policy's entities."""

    context: AuditContext
    resolved_entities: Mapping[str, T]

    @property
    def connection(self) -> Connection:
        return self.context.connection

    @property
    def cache(self) -> MetadataCache:
        return self.context.cache


class PolicyRule(ABC, Generic[T]):
    """Abstract base for all rules.

    A rule evaluates the resolved entities of its policy and reports
    violations, warnings and errors. Rules are stateless after
    construction; typed options are validated here so a bad config
    fails before anything touches the org.
    """

    options_model: ClassVar[type[BaseModel] | None] = None

    def __init__(self, opts: RuleOptions) -> None:
        self.run_config = opts.run_config
        self.name = opts.name
        self.options = self._parse_options(opts.options)

    def _parse_options(self, raw: dict[str, Any]) -> Any:
        if self.options_model is None:
            return None
        try:
            return self.options_model.model_validate(raw or {})
        except ValidationError as exc:
            first = exc.errors()[0]
            raise ConfigurationError(
                f"Invalid options for rule '{self.name}': {first['msg']}",
                ["rules", self.name, "options", *(str(p) for p in first["loc"])],
            ) from exc

    def init_result(self) -> PartialRuleResult:
        return PartialRuleResult(rule_name=self.name)

    @abstractmethod
    async def run(self, context: RuleContext[T]) -> PartialRuleResult:
        """Evaluate the resolved entities and return the partial result."""
