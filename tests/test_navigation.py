import pytest
from httpx import AsyncClient

from admin_console.features.navigation.menu import (
    DEFAULT_NAVIGATION,
    NavigationItem,
    can_access_route,
    get_filtered_navigation_items,
)


def test_filter_keeps_permitted_and_untagged_items_in_order() -> None:
    items = [
        {"label": "Dashboard", "permission": "dashboard.read"},
        {"label": "Billing", "permission": "billing.read"},
        {"label": "Help"},
    ]

    visible = get_filtered_navigation_items(items, ["dashboard.read"])

    assert visible == [items[0], items[2]]


def test_filter_does_not_mutate_input() -> None:
    items = list(DEFAULT_NAVIGATION)

    get_filtered_navigation_items(items, ["users.read"])

    assert items == DEFAULT_NAVIGATION


def test_filter_preserves_order_of_models() -> None:
    visible = get_filtered_navigation_items(DEFAULT_NAVIGATION, ["subscriptions.read", "dashboard.read"])

    assert [item.to for item in visible] == ["/dashboard", "/plans", "/billing"]


def test_filter_with_global_wildcard_keeps_everything() -> None:
    assert get_filtered_navigation_items(DEFAULT_NAVIGATION, ["*"]) == DEFAULT_NAVIGATION


def test_filter_with_malformed_grants_keeps_only_untagged() -> None:
    items = [
        NavigationItem(to="/dashboard", label="Dashboard", permission="dashboard.read"),
        NavigationItem(to="/help", label="Help"),
    ]

    assert get_filtered_navigation_items(items, None) == [items[1]]


@pytest.mark.parametrize(
    ("route", "granted", "expected"),
    [
        ("/staff", ["staff.read"], True),
        ("/staff/42", ["staff.*"], True),
        ("/billing", ["subscriptions.read"], True),
        ("/roles-permissions", ["users.read"], False),
        ("/signin", [], True),
    ],
)
def test_can_access_route(route: str, granted: list, expected: bool) -> None:
    assert can_access_route(route, granted) is expected


@pytest.mark.asyncio
async def test_navigation_endpoint_filters_for_session(async_client: AsyncClient, sign_in) -> None:
    await sign_in("clerk")

    response = await async_client.get("/navigation")

    assert response.status_code == 200
    assert [item["to"] for item in response.json()["items"]] == ["/dashboard", "/plans", "/billing"]


@pytest.mark.asyncio
async def test_navigation_endpoint_requires_session(async_client: AsyncClient) -> None:
    response = await async_client.get("/navigation")

    assert response.status_code == 303
    assert response.headers["location"] == "/signin"
