"""Tests for resolve progress reporting."""

from access_audit.events import AuditEvent, EntityResolveEvent, ResolveProgress


def test_progress_emits_to_listener() -> None:
    events: list[AuditEvent] = []
    progress = ResolveProgress("profiles", events.append)
    progress.update(total=3, resolved=0)
    progress.update(resolved=2)
    assert events == [
        EntityResolveEvent(policy_name="profiles", total=3, resolved=0),
        EntityResolveEvent(policy_name="profiles", total=3, resolved=2),
    ]


def test_resolved_never_decreases() -> None:
    progress = ResolveProgress("users")
    progress.update(total=10, resolved=4)
    progress.update(resolved=1)
    assert progress.resolved == 4


def test_complete_sets_resolved_to_total() -> None:
    events: list[AuditEvent] = []
    progress = ResolveProgress("users", events.append)
    progress.update(total=5, resolved=2)
    progress.complete()
    assert events[-1] == EntityResolveEvent(policy_name="users", total=5, resolved=5)


def test_complete_never_lowers_resolved() -> None:
    progress = ResolveProgress("settings")
    progress.update(total=4, resolved=4)
    progress.complete(total=2)
    assert progress.total == 4
    assert progress.resolved == 4


def test_progress_without_listener() -> None:
    progress = ResolveProgress("connectedApps")
    progress.complete(total=0)
    assert (progress.total, progress.resolved) == (0, 0)


def test_update_never_reports_total_below_resolved() -> None:
    events: list[AuditEvent] = []
    progress = ResolveProgress("profiles", events.append)
    progress.update(total=5, resolved=4)
    progress.update(total=2)
    progress.update(resolved=7)
    assert [(e.total, e.resolved) for e in events] == [(5, 4), (4, 4), (7, 7)]
