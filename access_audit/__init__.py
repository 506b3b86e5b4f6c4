"""Access-control audit engine: policies, rules and accepted risks."""

from access_audit.accepted_risks import AcceptedRisks
from access_audit.comparator import permission_allowed
from access_audit.config import AuditSettings, load_run_config
from access_audit.connection import AuditContext, Connection, MetadataCache
from access_audit.errors import ConfigurationError
from access_audit.events import AuditStage, EntityResolveEvent, StageEvent
from access_audit.models import (
    Classifications,
    PolicyConfig,
    PolicyName,
    PrivilegeLevel,
    RiskLevel,
    RuleConfig,
    RunConfig,
)
from access_audit.results import AuditResult, PolicyResult, RiskStat, RuleResult
from access_audit.run import AuditRun

__all__ = [
    "AcceptedRisks",
    "AuditContext",
    "AuditResult",
    "AuditRun",
    "AuditSettings",
    "AuditStage",
    "Classifications",
    "ConfigurationError",
    "Connection",
    "EntityResolveEvent",
    "MetadataCache",
    "PolicyConfig",
    "PolicyName",
    "PolicyResult",
    "PrivilegeLevel",
    "RiskLevel",
    "RiskStat",
    "RuleConfig",
    "RuleResult",
    "RunConfig",
    "StageEvent",
    "load_run_config",
    "permission_allowed",
]
