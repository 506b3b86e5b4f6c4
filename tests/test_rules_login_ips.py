"""Tests for login IP range enforcement."""

from __future__ import annotations

import pytest

from access_audit.connection import AuditContext
from access_audit.entities import ResolvedProfileLike
from access_audit.models import IpRange, PrivilegeLevel, RunConfig
from access_audit.repositories import LoginIpRange, ProfileLikeMetadata
from access_audit.results import PartialRuleResult
from access_audit.rules import EnforceLoginIpRanges
from access_audit.rules.base import RuleContext, RuleOptions
from access_audit.rules.login_ips import range_digest

OFFICE = IpRange(start="10.0.0.1", end="10.0.0.255")
VPN = IpRange(start="192.168.1.1", end="192.168.1.10")


def _profile(name: str, allowed: tuple[IpRange, ...], actual: tuple[LoginIpRange, ...]) -> ResolvedProfileLike:
    return ResolvedProfileLike(
        name=name,
        privilege_level=PrivilegeLevel.STANDARD_USER,
        metadata=ProfileLikeMetadata(login_ip_ranges=actual),
        allowed_login_ips=allowed,
    )


def _rule(**options: object) -> EnforceLoginIpRanges:
    return EnforceLoginIpRanges(RuleOptions(run_config=RunConfig(), name="EnforceLoginIpRanges", options=options))


async def _run(
    context: AuditContext, rule: EnforceLoginIpRanges, *profiles: ResolvedProfileLike
) -> PartialRuleResult:
    return await rule.run(RuleContext(context=context, resolved_entities={p.name: p for p in profiles}))


def test_range_digest_is_short_and_stable() -> None:
    assert range_digest("10.0.0.1", "10.0.0.255") == range_digest("10.0.0.1", "10.0.0.255")
    assert len(range_digest("10.0.0.1", "10.0.0.255")) == 8
    assert range_digest("10.0.0.1", "10.0.0.255") != range_digest("10.0.0.1", "10.0.0.254")


@pytest.mark.asyncio
async def test_configured_ranges_present_is_compliant(context: AuditContext) -> None:
    profile = _profile("Sales", (OFFICE,), (LoginIpRange("10.0.0.1", "10.0.0.255"),))
    result = await _run(context, _rule(), profile)
    assert result.violations == []


@pytest.mark.asyncio
async def test_missing_range_without_any_ranges(context: AuditContext) -> None:
    result = await _run(context, _rule(), _profile("Sales", (OFFICE,), ()))
    assert [v.identifier for v in result.violations] == [["Sales", range_digest("10.0.0.1", "10.0.0.255")]]
    assert "any IP" in result.violations[0].message


@pytest.mark.asyncio
async def test_missing_range_lists_other_ranges(context: AuditContext) -> None:
    profile = _profile("Sales", (OFFICE, VPN), (LoginIpRange("10.0.0.1", "10.0.0.255", "Office"),))
    result = await _run(context, _rule(), profile)
    assert len(result.violations) == 1
    assert result.violations[0].identifier[1] == range_digest("192.168.1.1", "192.168.1.10")
    assert result.violations[0].details == ["10.0.0.1 - 10.0.0.255 (Office)"]


@pytest.mark.asyncio
async def test_excessive_ranges_only_flagged_when_enabled(context: AuditContext) -> None:
    profile = _profile(
        "Sales",
        (OFFICE,),
        (LoginIpRange("10.0.0.1", "10.0.0.255"), LoginIpRange("0.0.0.0", "255.255.255.255")),
    )
    assert (await _run(context, _rule(), profile)).violations == []
    strict = await _run(context, _rule(no_excessive_ranges=True), profile)
    assert [v.identifier for v in strict.violations] == [["Sales", range_digest("0.0.0.0", "255.255.255.255")]]


@pytest.mark.asyncio
async def test_profiles_without_configured_ranges_are_skipped(context: AuditContext) -> None:
    profile = _profile("Admin", (), (LoginIpRange("0.0.0.0", "255.255.255.255"),))
    result = await _run(context, _rule(no_excessive_ranges=True), profile)
    assert result.violations == []
