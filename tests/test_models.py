"""Tests for configuration models, settings and config loading."""

from __future__ import annotations

from ipaddress import IPv4Address

import pytest
from pydantic import ValidationError

from access_audit.config import AuditSettings, load_run_config
from access_audit.errors import ConfigurationError
from access_audit.models import (
    PrivilegeLevel,
    ProfileClassification,
    RiskLevel,
    RunConfig,
    UsersPolicyOptions,
    check_risk_tree,
    is_leaf,
)

# ── Classifications ──────────────────────────────────────────────


def test_profile_classification_parses_ip_ranges() -> None:
    profile = ProfileClassification.model_validate(
        {
            "privilege_level": "Power User",
            "allowed_login_ips": [{"start": "10.0.0.1", "end": "10.0.0.255"}],
        }
    )
    assert profile.privilege_level == PrivilegeLevel.POWER_USER
    assert profile.allowed_login_ips[0].start == IPv4Address("10.0.0.1")


def test_profile_classification_rejects_invalid_ip() -> None:
    with pytest.raises(ValidationError):
        ProfileClassification.model_validate(
            {"privilege_level": "Admin", "allowed_login_ips": [{"start": "10.0.0.300", "end": "10.0.1.1"}]}
        )


def test_users_policy_options_defaults() -> None:
    options = UsersPolicyOptions()
    assert options.default_privilege_level == PrivilegeLevel.STANDARD_USER
    assert options.analyse_last_n_days_of_login_history is None


def test_users_policy_options_forbid_unknown_keys() -> None:
    with pytest.raises(ValidationError):
        UsersPolicyOptions.model_validate({"default_role": "Admin"})


# ── RunConfig ────────────────────────────────────────────────────


def test_run_config_is_frozen() -> None:
    config = RunConfig()
    with pytest.raises(ValidationError):
        config.accepted_risks = {}  # type: ignore[misc]


def test_run_config_rejects_non_mapping_risk_node() -> None:
    with pytest.raises(ValidationError, match="users.NoInactiveUsers"):
        RunConfig(accepted_risks={"users": {"NoInactiveUsers": "because"}})


def test_run_config_rejects_non_string_reason() -> None:
    with pytest.raises(ValidationError, match="must be a string"):
        RunConfig(accepted_risks={"users": {"NoInactiveUsers": {"jane@example.com": {"reason": 42}}}})


def test_risk_tree_leaf_detection() -> None:
    assert is_leaf({"reason": "Approved by security"})
    assert not is_leaf({"reason": {"nested": {"reason": "x"}}})
    assert not is_leaf({"*": {"reason": "x"}})


def test_check_risk_tree_accepts_wildcards() -> None:
    check_risk_tree({"users": {"NoInactiveUsers": {"*": {"reason": "Service accounts"}}}})


# ── load_run_config ──────────────────────────────────────────────


def test_load_run_config_parses_policies() -> None:
    config = load_run_config(
        {
            "classifications": {
                "user_permissions": {"ModifyAllData": {"risk_level": "Critical", "reason": "Full access"}},
            },
            "policies": {
                "users": {"rules": {"NoInactiveUsers": {"enabled": True}}},
            },
        }
    )
    assert config.classifications.user_permissions["ModifyAllData"].risk_level == RiskLevel.CRITICAL
    assert config.policies["users"].enabled is True
    assert config.policies["users"].rules["NoInactiveUsers"].enabled is True
    assert config.policies["users"].rules["NoInactiveUsers"].options == {}


def test_load_run_config_reports_path() -> None:
    with pytest.raises(ConfigurationError) as exc_info:
        load_run_config(
            {"classifications": {"user_permissions": {"ModifyAllData": {"risk_level": "Extreme"}}}}
        )
    assert exc_info.value.path == ["classifications", "user_permissions", "ModifyAllData", "risk_level"]
    assert 'in "classifications.user_permissions.ModifyAllData.risk_level"' in str(exc_info.value)


# ── Errors and settings ──────────────────────────────────────────


def test_configuration_error_without_path() -> None:
    error = ConfigurationError("No policies")
    assert str(error) == "No policies"
    assert error.path == []


def test_settings_defaults() -> None:
    settings = AuditSettings()
    assert settings.cache_metadata is True
    assert settings.retrieve_batch_size == 50
    assert settings.default_login_history_days == 30


def test_settings_env_override(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUDIT_RETRIEVE_BATCH_SIZE", "10")
    monkeypatch.setenv("AUDIT_CACHE_METADATA", "false")
    settings = AuditSettings()
    assert settings.retrieve_batch_size == 10
    assert settings.cache_metadata is False
