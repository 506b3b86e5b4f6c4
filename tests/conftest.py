"""Shared fixtures: an in-memory org connection."""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from access_audit.connection import AuditContext
from access_audit.repositories import (
    ADMIN_APPROVED_FIELD,
    CONNECTED_APPS_OBJECT,
    OAUTH_TOKEN_QUERY,
    ORGANIZATION_QUERY,
    PERMISSION_SET_ASSIGNMENTS_QUERY,
    PERMISSION_SETS_QUERY,
    PROFILES_QUERY,
    USERS_QUERY,
    build_connected_apps_query,
    build_login_history_query,
)

ORG_ID = "00D000000000001EAA"


class FakeConnection:
    """Connection double that serves canned records and metadata.

    Queries are matched on the exact query string. Every call is recorded.
    """

    def __init__(
        self,
        *,
        records: dict[str, list[dict[str, Any]]] | None = None,
        describes: dict[str, dict[str, Any]] | None = None,
        metadata: dict[str, dict[str, dict[str, Any]]] | None = None,
        failing_types: Iterable[str] = (),
        failing_queries: Iterable[str] = (),
    ) -> None:
        self.records = dict(records or {})
        self.describes = dict(describes or {})
        self.metadata = dict(metadata or {})
        self.failing_types = set(failing_types)
        self.failing_queries = set(failing_queries)
        self.queries: list[str] = []
        self.described: list[str] = []
        self.retrieves: list[tuple[str, list[str]]] = []

    @property
    def call_count(self) -> int:
        return len(self.queries) + len(self.described) + len(self.retrieves)

    def retrieved_names(self, metadata_type: str) -> list[str]:
        return [n for t, names in self.retrieves if t == metadata_type for n in names]

    async def query(self, soql: str) -> list[dict[str, Any]]:
        self.queries.append(soql)
        await asyncio.sleep(0)
        if soql in self.failing_queries:
            raise RuntimeError(f"Query failed: {soql}")
        return [dict(r) for r in self.records.get(soql, [])]

    async def describe(self, sobject: str) -> dict[str, Any]:
        self.described.append(sobject)
        await asyncio.sleep(0)
        return self.describes.get(sobject, {"fields": []})

    async def retrieve(self, metadata_type: str, names: list[str]) -> dict[str, dict[str, Any]]:
        self.retrieves.append((metadata_type, list(names)))
        await asyncio.sleep(0)
        if metadata_type in self.failing_types:
            raise RuntimeError(f"Retrieve of {metadata_type} failed")
        documents = self.metadata.get(metadata_type, {})
        return {name: documents[name] for name in names if name in documents}


def _timestamp(value: datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%S.000+0000")


def make_org_connection(**overrides: Any) -> FakeConnection:
    """A small org with two profiles, one permission set, two users and two apps."""
    now = datetime.now(UTC)
    records: dict[str, list[dict[str, Any]]] = {
        ORGANIZATION_QUERY: [{"Id": ORG_ID}],
        PROFILES_QUERY: [
            {"Profile": {"Name": "System Administrator", "UserType": "Standard"}, "IsCustom": False},
            {"Profile": {"Name": "Custom Sales", "UserType": "Standard"}, "IsCustom": True},
        ],
        PERMISSION_SETS_QUERY: [
            {"Name": "Api_Access", "Label": "API Access", "IsCustom": True},
        ],
        USERS_QUERY: [
            {
                "Id": "005000000000001AAA",
                "Username": "admin@example.com",
                "IsActive": True,
                "LastLoginDate": _timestamp(now - timedelta(days=2)),
                "CreatedDate": "2020-01-01T00:00:00.000+0000",
                "Profile": {"Name": "System Administrator"},
            },
            {
                "Id": "005000000000002AAA",
                "Username": "sales@example.com",
                "IsActive": True,
                "LastLoginDate": None,
                "CreatedDate": "2021-06-15T08:30:00.000+0000",
                "Profile": {"Name": "Custom Sales"},
            },
        ],
        build_login_history_query(30): [
            {
                "UserId": "005000000000001AAA",
                "LoginType": "Other Apex API",
                "Application": "Data Loader",
                "LoginCount": 4,
                "LastLogin": _timestamp(now - timedelta(days=3)),
            },
        ],
        PERMISSION_SET_ASSIGNMENTS_QUERY: [
            {
                "AssigneeId": "005000000000002AAA",
                "PermissionSet": {"Name": "Api_Access"},
                "PermissionSetGroupId": None,
            },
        ],
        build_connected_apps_query(["Name", ADMIN_APPROVED_FIELD]): [
            {"Name": "Data Loader", ADMIN_APPROVED_FIELD: False},
        ],
        OAUTH_TOKEN_QUERY: [
            {"User": {"Username": "admin@example.com"}, "UseCount": 3, "AppName": "Data Loader"},
            {"User": {"Username": "sales@example.com"}, "UseCount": 1, "AppName": "Shady App"},
        ],
    }
    describes = {
        CONNECTED_APPS_OBJECT: {"fields": [{"name": "Name"}, {"name": ADMIN_APPROVED_FIELD}]},
    }
    metadata = {
        "Profile": {
            "System Administrator": {
                "custom": "false",
                "userPermissions": [
                    {"name": "ModifyAllData", "enabled": "true"},
                    {"name": "ViewSetup", "enabled": "true"},
                ],
            },
            "Custom Sales": {
                "custom": "true",
                "userPermissions": {"name": "ViewSetup", "enabled": "true"},
                "loginIpRanges": {"startAddress": "10.0.0.1", "endAddress": "10.0.0.255"},
            },
        },
        "PermissionSet": {
            "Api_Access": {
                "userPermissions": [
                    {"name": "ApiEnabled", "enabled": "true"},
                    {"name": "ModifyAllData", "enabled": "false"},
                ],
            },
        },
        "Settings": {
            "Security": {"passwordPolicies": {"minimumPasswordLength": "8", "complexity": "AlphaNumeric"}},
            "ConnectedApp": {"enableAdminApprovedAppsOnly": "false"},
        },
    }
    records.update(overrides.pop("records", {}))
    return FakeConnection(records=records, describes=describes, metadata=metadata, **overrides)


@pytest.fixture
def connection() -> FakeConnection:
    return FakeConnection()


@pytest.fixture
def org() -> FakeConnection:
    return make_org_connection()


@pytest.fixture
def context(connection: FakeConnection) -> AuditContext:
    return AuditContext.create(connection)


@pytest.fixture
def org_context(org: FakeConnection) -> AuditContext:
    return AuditContext.create(org)
