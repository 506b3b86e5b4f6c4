"""Entity resolution for profiles, shared with permission sets."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, ClassVar

from access_audit.entities import ResolvedProfileLike
from access_audit.models import EntityClassification, PrivilegeLevel
from access_audit.policies.base import EntityResolver, ResolveEntityResult
from access_audit.repositories import ProfileLikeRepository, ProfileRepository
from access_audit.results import EntityResolveError

if TYPE_CHECKING:
    from access_audit.connection import AuditContext
    from access_audit.events import ResolveProgress

logger = logging.getLogger(__name__)

PRIVILEGE_UNKNOWN = "Privilege level is Unknown. {kind} was not audited."
NOT_FOUND = "{kind} was not found on the org."
NOT_CLASSIFIED = "{kind} exists on the org but is not classified."
METADATA_UNAVAILABLE = "Failed to retrieve {kind} metadata."


class ProfileLikeResolver(EntityResolver[ResolvedProfileLike]):
    """Merge classified profiles or permission sets with their org metadata.

    Subclasses pick the repository and the classification map.
    """

    kind: ClassVar[str] = ""
    repository_cls: ClassVar[type[ProfileLikeRepository]] = ProfileLikeRepository

    def classifications(self) -> dict[str, EntityClassification]:
        raise NotImplementedError

    async def resolve(
        self,
        context: AuditContext,
        progress: ResolveProgress,
    ) -> ResolveEntityResult[ResolvedProfileLike]:
        classified = self.classifications()
        repository = self.repository_cls(context)
        result: ResolveEntityResult[ResolvedProfileLike] = ResolveEntityResult()
        progress.update(total=len(classified), resolved=0)

        on_org = await repository.list()
        candidates: list[str] = []
        for name, classification in classified.items():
            if classification.privilege_level == PrivilegeLevel.UNKNOWN:
                self._ignore(result, name, PRIVILEGE_UNKNOWN)
            elif name not in on_org:
                self._ignore(result, name, NOT_FOUND)
            else:
                candidates.append(name)
        for name in on_org:
            if name not in classified:
                self._ignore(result, name, NOT_CLASSIFIED)
        progress.update(total=len(classified.keys() | on_org.keys()), resolved=result.total)

        try:
            metadata = await repository.fetch_metadata(candidates)
        except Exception as exc:
            logger.warning("Failed to retrieve %s metadata: %s", self.kind, exc)
            metadata = {}
        for name in candidates:
            document = metadata.get(name)
            if document is None:
                self._ignore(result, name, METADATA_UNAVAILABLE)
                continue
            classification = classified[name]
            result.resolved_entities[name] = ResolvedProfileLike(
                name=name,
                privilege_level=classification.privilege_level,
                metadata=document,
                allowed_login_ips=tuple(getattr(classification, "allowed_login_ips", ())),
            )
        progress.update(resolved=result.total)
        return result

    def _ignore(self, result: ResolveEntityResult[ResolvedProfileLike], name: str, template: str) -> None:
        result.ignored_entities.append(EntityResolveError(name=name, message=template.format(kind=self.kind)))


class ProfilesResolver(ProfileLikeResolver):
    kind = "Profile"
    repository_cls = ProfileRepository

    def classifications(self) -> dict[str, EntityClassification]:
        return dict(self.run_config.classifications.profiles)
