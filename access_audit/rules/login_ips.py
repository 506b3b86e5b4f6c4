"""Login IP range enforcement on profiles."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from access_audit.entities import ResolvedProfileLike
from access_audit.results import PartialRuleResult, Violation
from access_audit.rules.base import PolicyRule, RuleContext


def range_digest(start: str, end: str) -> str:
    """Short stable identifier of an IP range."""
    return hashlib.sha256(f"{start}-{end}".encode()).hexdigest()[:8]


@dataclass(frozen=True)
class NormalizedIpRange:
    start: str
    end: str
    description: str | None = None

    @property
    def digest(self) -> str:
        return range_digest(self.start, self.end)

    def __str__(self) -> str:
        text = f"{self.start} - {self.end}"
        return f"{text} ({self.description})" if self.description else text


class EnforceLoginIpRangesOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    no_excessive_ranges: bool = False


class EnforceLoginIpRanges(PolicyRule[ResolvedProfileLike]):
    """Profiles must restrict logins to the configured IP ranges.

    Profiles without configured ranges are not evaluated.
    """

    options_model = EnforceLoginIpRangesOptions

    async def run(self, context: RuleContext[ResolvedProfileLike]) -> PartialRuleResult:
        result = self.init_result()
        for profile in context.resolved_entities.values():
            if not profile.allowed_login_ips:
                continue
            actual = [
                NormalizedIpRange(r.start_address, r.end_address, r.description)
                for r in profile.metadata.login_ip_ranges
            ]
            excessive = {r.digest: r for r in actual}
            missing: list[NormalizedIpRange] = []
            for allowed in profile.allowed_login_ips:
                expected = NormalizedIpRange(str(allowed.start), str(allowed.end))
                if excessive.pop(expected.digest, None) is None:
                    missing.append(expected)

            for expected in missing:
                if actual:
                    result.violations.append(
                        Violation(
                            identifier=[profile.name, expected.digest],
                            message=(
                                f"Required login IP range {expected} is not configured."
                                f" The profile has {len(actual)} other range(s)."
                            ),
                            details=[str(r) for r in actual],
                        )
                    )
                else:
                    result.violations.append(
                        Violation(
                            identifier=[profile.name, expected.digest],
                            message=f"Profile allows logins from any IP, but requires {expected}.",
                        )
                    )
            if self.options.no_excessive_ranges:
                for extra in excessive.values():
                    result.violations.append(
                        Violation(
                            identifier=[profile.name, extra.digest],
                            message=f"Profile allows an unapproved login IP range {extra}.",
                        )
                    )
        return result
