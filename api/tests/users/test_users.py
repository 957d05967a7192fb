"""
Tests for user endpoints:
- GET /api/v1/users/me
- PATCH /api/v1/users/me
- GET/PUT /api/v1/users/me/interests
- GET /api/v1/users/discover
"""

from httpx import AsyncClient


class TestGetCurrentUser:
    """GET /api/v1/users/me tests."""

    async def test_get_me_returns_user_info(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        """Response includes user details."""
        response = await async_client.get(
            "/api/v1/users/me",
            headers=auth_headers(test_user["api_key"]),
        )
        assert response.status_code == 200

        data = response.json()["data"]
        assert data["user_id"] == test_user["user_id"]
        assert data["username"] == "testuser"
        assert data["tier"] == "free"
        assert data["poke_enabled"] is True
        assert data["roles"] == []
        assert data["interests"] == ["coffee", "jazz"]

    async def test_get_me_requires_auth(self, async_client: AsyncClient):
        """Unauthenticated request returns 401."""
        response = await async_client.get("/api/v1/users/me")
        assert response.status_code == 401

    async def test_invalid_key_returns_401(self, async_client: AsyncClient, test_user: dict):
        response = await async_client.get(
            "/api/v1/users/me", headers={"X-API-Key": "bmi_live_not-a-real-key"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHORIZED"


class TestUpdateMe:
    """PATCH /api/v1/users/me tests."""

    async def test_update_display_name(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        response = await async_client.patch(
            "/api/v1/users/me",
            json={"display_name": "Espresso Fan"},
            headers=auth_headers(test_user["api_key"]),
        )
        assert response.status_code == 200
        assert response.json()["data"]["display_name"] == "Espresso Fan"
        assert response.json()["data"]["poke_enabled"] is True

    async def test_disabling_pokes_refuses_new_pokes(
        self, async_client: AsyncClient, test_user: dict, second_user: dict, auth_headers
    ):
        await async_client.patch(
            "/api/v1/users/me",
            json={"poke_enabled": False},
            headers=auth_headers(second_user["api_key"]),
        )

        response = await async_client.post(
            "/api/v1/pokes",
            json={"to_user_id": second_user["user_id"], "shared_interest": "coffee"},
            headers=auth_headers(test_user["api_key"]),
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "POKES_DISABLED"


class TestInterests:
    """GET/PUT /api/v1/users/me/interests tests."""

    async def test_replace_interests(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        headers = auth_headers(test_user["api_key"])
        response = await async_client.put(
            "/api/v1/users/me/interests",
            json={"interests": ["Pour Over", "pastries", "pour over"]},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["data"]["interests"] == ["pastries", "pour over"]

        current = await async_client.get("/api/v1/users/me/interests", headers=headers)
        assert current.json()["data"]["interests"] == ["pastries", "pour over"]

    async def test_overlong_interest_returns_400(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        response = await async_client.put(
            "/api/v1/users/me/interests",
            json={"interests": ["x" * 60]},
            headers=auth_headers(test_user["api_key"]),
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_INTEREST"


class TestDiscover:
    """GET /api/v1/users/discover tests."""

    async def test_discover_by_own_interests(
        self, async_client: AsyncClient, test_user: dict, second_user: dict, auth_headers
    ):
        response = await async_client.get(
            "/api/v1/users/discover", headers=auth_headers(test_user["api_key"])
        )
        items = response.json()["data"]["items"]
        assert [i["username"] for i in items] == ["seconduser"]
        assert items[0]["shared_interests"] == ["coffee"]
        assert items[0]["shared_count"] == 1

    async def test_discover_by_query(
        self, async_client: AsyncClient, test_user: dict, second_user: dict, auth_headers
    ):
        response = await async_client.get(
            "/api/v1/users/discover",
            params={"interests": "books,chess"},
            headers=auth_headers(test_user["api_key"]),
        )
        items = response.json()["data"]["items"]
        assert [i["shared_interests"] for i in items] == [["books"]]
