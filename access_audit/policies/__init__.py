"""Policies: entity resolution strategies and the generic policy."""

from access_audit.policies.base import EntityResolver, Policy, ResolveEntityResult
from access_audit.policies.definitions import POLICY_DEFINITIONS, PolicyDefinition, load_policy

__all__ = [
    "POLICY_DEFINITIONS",
    "EntityResolver",
    "Policy",
    "PolicyDefinition",
    "ResolveEntityResult",
    "load_policy",
]
