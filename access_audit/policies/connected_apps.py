"""Entity resolution for connected apps."""

from __future__ import annotations

from typing import TYPE_CHECKING

from access_audit.entities import ResolvedConnectedApp
from access_audit.policies.base import EntityResolver, ResolveEntityResult
from access_audit.repositories import ConnectedAppRepository

if TYPE_CHECKING:
    from access_audit.connection import AuditContext
    from access_audit.events import ResolveProgress


class ConnectedAppsResolver(EntityResolver[ResolvedConnectedApp]):
    """Installed connected apps plus apps only known from OAuth tokens."""

    async def resolve(
        self,
        context: AuditContext,
        progress: ResolveProgress,
    ) -> ResolveEntityResult[ResolvedConnectedApp]:
        apps = await ConnectedAppRepository(context).list()
        progress.update(total=len(apps), resolved=len(apps))
        return ResolveEntityResult(resolved_entities=dict(apps))
