import logging

import pytest

from admin_console.features.permissions.evaluation import (
    can_delete,
    can_read,
    can_write,
    has_any_permission,
    has_global_wildcard,
    has_permission,
    normalize_grants,
)
from admin_console.features.permissions.models import PermissionKey


def test_exact_and_module_wildcard_grants() -> None:
    granted = ["users.read", "properties.*"]

    assert has_permission(granted, "users.read") is True
    assert has_permission(granted, "properties.delete") is True
    assert has_permission(granted, "billing.read") is False
    assert has_any_permission(granted, "properties") is True


@pytest.mark.parametrize("wildcard", ["*", "all"])
def test_global_wildcard_grants_everything(wildcard: str) -> None:
    granted = [wildcard]

    assert has_global_wildcard(granted)
    assert has_permission(granted, "roles_permissions.delete")
    assert has_permission(granted, "anything")
    assert has_any_permission(granted, "notifications")


def test_empty_grant_set_denies() -> None:
    assert has_permission([], "dashboard.read") is False
    assert has_any_permission([], "dashboard") is False


def test_exact_key_does_not_grant_siblings() -> None:
    granted = ["users.read"]

    assert not has_permission(granted, "users.update")
    assert not has_permission(granted, "users.*")


def test_module_wildcard_does_not_cross_modules() -> None:
    granted = ["properties.*"]

    assert not has_permission(granted, "properties_archive.read")
    assert not has_permission(granted, "users.read")
    assert not has_any_permission(granted, "prop")


def test_key_is_split_at_first_dot() -> None:
    assert PermissionKey.parse("reports.export.csv") == PermissionKey("reports", "export.csv")
    assert has_permission(["reports.*"], "reports.export.csv")


def test_parsed_key_is_accepted() -> None:
    assert has_permission(["staff.*"], PermissionKey("staff", "update"))
    assert has_permission(["staff.update"], PermissionKey.parse("staff.update"))


def test_grant_order_and_duplicates_are_irrelevant() -> None:
    assert has_permission(["a.read", "b.*", "a.read"], "b.delete") == has_permission(["b.*", "a.read"], "b.delete")


def test_read_write_delete_compositions() -> None:
    granted = ["users.read", "properties.update", "support.delete"]

    assert can_read(granted, "users")
    assert not can_write(granted, "users")
    assert can_write(granted, "properties")
    assert can_write(["properties.add"], "properties")
    assert can_delete(granted, "support")
    assert not can_delete(granted, "users")


@pytest.mark.parametrize(
    "granted",
    [None, "users.read", 42, ["users.read", 5], {"users.read": True}, b"users.read"],
)
def test_malformed_grants_deny_everything(granted) -> None:
    assert normalize_grants(granted) == frozenset()
    assert has_permission(granted, "users.read") is False
    assert has_any_permission(granted, "users") is False


def test_malformed_grants_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING):
        has_permission("*", "users.read")

    assert "Malformed permission set" in caplog.text


@pytest.mark.parametrize("requested", [None, 3, ["users.read"]])
def test_non_string_request_is_a_type_error(requested) -> None:
    with pytest.raises(TypeError):
        has_permission(["*"], requested)


def test_non_string_module_is_a_type_error() -> None:
    with pytest.raises(TypeError):
        has_any_permission(["*"], None)
