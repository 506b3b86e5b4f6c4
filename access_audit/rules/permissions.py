"""Rules that compare granted permissions with privilege levels."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from access_audit.comparator import permission_allowed, privilege_ordinal
from access_audit.entities import ResolvedProfileLike, ResolvedUser
from access_audit.models import PermissionClassification, PrivilegeLevel, RiskLevel
from access_audit.results import PartialRuleResult, RuleComponentMessage, Violation
from access_audit.rules.base import PolicyRule, RuleContext

if TYPE_CHECKING:
    from access_audit.models import Classifications
    from access_audit.repositories import ProfileLikeMetadata


@dataclass
class ScanResult:
    violations: list[Violation] = field(default_factory=list)
    warnings: list[RuleComponentMessage] = field(default_factory=list)

    def extend(self, other: ScanResult) -> None:
        self.violations.extend(other.violations)
        self.warnings.extend(other.warnings)

    def merge_into(self, result: PartialRuleResult) -> None:
        result.violations.extend(self.violations)
        result.warnings.extend(self.warnings)


def scan_permissions(
    entity_name: str,
    privilege_level: PrivilegeLevel,
    permissions: tuple[str, ...],
    classifications: dict[str, PermissionClassification],
    root_identifier: list[str] | None = None,
) -> ScanResult:
    """Check each granted permission against its classification.

    Blocked or too risky permissions are violations. Permissions that are
    unclassified or classified as Unknown are warnings.
    """
    result = ScanResult()
    prefix = [*(root_identifier or []), entity_name]
    for permission in permissions:
        identifier = [*prefix, permission]
        classification = classifications.get(permission)
        if classification is None:
            result.warnings.append(
                RuleComponentMessage(
                    identifier=identifier,
                    message="Permission is not classified and was not evaluated.",
                )
            )
        elif classification.risk_level == RiskLevel.BLOCKED:
            result.violations.append(
                Violation(
                    identifier=identifier,
                    message="Permission is blocked and must not be assigned.",
                )
            )
        elif not permission_allowed(classification.risk_level, privilege_level):
            result.violations.append(
                Violation(
                    identifier=identifier,
                    message=(
                        f"Permission is classified as {classification.risk_level}"
                        f" but is granted at privilege level {privilege_level}."
                    ),
                    hint=classification.reason,
                )
            )
        elif classification.risk_level == RiskLevel.UNKNOWN:
            result.warnings.append(
                RuleComponentMessage(
                    identifier=identifier,
                    message="Permission is classified as Unknown and was not evaluated.",
                )
            )
    return result


def scan_profile_like(
    entity_name: str,
    privilege_level: PrivilegeLevel,
    metadata: ProfileLikeMetadata,
    classifications: Classifications,
    root_identifier: list[str] | None = None,
) -> ScanResult:
    """Scan user and custom permissions of a profile or permission set."""
    result = scan_permissions(
        entity_name,
        privilege_level,
        metadata.user_permissions,
        classifications.user_permissions,
        root_identifier,
    )
    result.extend(
        scan_permissions(
            entity_name,
            privilege_level,
            metadata.custom_permissions,
            classifications.custom_permissions,
            root_identifier,
        )
    )
    return result


class EnforcePermissionsOnProfileLike(PolicyRule[ResolvedProfileLike]):
    """Permissions of profiles and permission sets must fit their privilege level."""

    async def run(self, context: RuleContext[ResolvedProfileLike]) -> PartialRuleResult:
        result = self.init_result()
        for entity in context.resolved_entities.values():
            scan_profile_like(
                entity.name,
                entity.privilege_level,
                entity.metadata,
                self.run_config.classifications,
            ).merge_into(result)
        return result


class EnforcePermissionsOnUser(PolicyRule[ResolvedUser]):
    """Permissions a user receives through profile and permission sets must fit the user."""

    async def run(self, context: RuleContext[ResolvedUser]) -> PartialRuleResult:
        result = self.init_result()
        classifications = self.run_config.classifications
        for resolved in context.resolved_entities.values():
            user = resolved.user
            for assignment in user.assignments or ():
                if assignment.metadata is None:
                    continue
                scan_profile_like(
                    assignment.permission_set_name,
                    resolved.privilege_level,
                    assignment.metadata,
                    classifications,
                    [user.username],
                ).merge_into(result)
            if user.profile_metadata is not None:
                scan_profile_like(
                    user.profile_name,
                    resolved.privilege_level,
                    user.profile_metadata,
                    classifications,
                    [user.username],
                ).merge_into(result)
        return result


class EnforcePermissionPresets(PolicyRule[ResolvedUser]):
    """Users may only hold profiles and permission sets up to their own privilege level."""

    async def run(self, context: RuleContext[ResolvedUser]) -> PartialRuleResult:
        result = self.init_result()
        classifications = self.run_config.classifications
        for resolved in context.resolved_entities.values():
            user = resolved.user
            profile = classifications.profiles.get(user.profile_name)
            self._audit_entity(
                result,
                resolved,
                "profile",
                user.profile_name,
                profile.privilege_level if profile else None,
            )
            for assignment in user.assignments or ():
                permset = classifications.permission_sets.get(assignment.permission_set_name)
                self._audit_entity(
                    result,
                    resolved,
                    "permission set",
                    assignment.permission_set_name,
                    permset.privilege_level if permset else None,
                )
        return result

    @staticmethod
    def _audit_entity(
        result: PartialRuleResult,
        resolved: ResolvedUser,
        entity_type: str,
        entity_name: str,
        entity_level: PrivilegeLevel | None,
    ) -> None:
        identifier = [resolved.username, entity_name]
        if entity_level is None:
            result.violations.append(
                Violation(
                    identifier=identifier,
                    message=(
                        f"{entity_type.capitalize()} is not classified, but is assigned."
                        f" Classify the {entity_type} to audit it."
                    ),
                )
            )
        elif entity_level == PrivilegeLevel.UNKNOWN:
            result.violations.append(
                Violation(
                    identifier=identifier,
                    message=f"{entity_type.capitalize()} is classified as Unknown, but is assigned.",
                )
            )
        elif privilege_ordinal(entity_level) < privilege_ordinal(resolved.privilege_level):
            result.violations.append(
                Violation(
                    identifier=identifier,
                    message=(
                        f"User has privilege level {resolved.privilege_level}"
                        f" but is assigned a {entity_type} of level {entity_level}."
                    ),
                )
            )
