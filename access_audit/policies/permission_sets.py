"""Entity resolution for permission sets."""

from __future__ import annotations

from access_audit.models import EntityClassification
from access_audit.policies.profiles import ProfileLikeResolver
from access_audit.repositories import PermissionSetRepository


class PermissionSetsResolver(ProfileLikeResolver):
    kind = "Permission set"
    repository_cls = PermissionSetRepository

    def classifications(self) -> dict[str, EntityClassification]:
        return dict(self.run_config.classifications.permission_sets)
