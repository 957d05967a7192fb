"""
Tests for spam endpoints:
- POST /api/v1/spam/check
- GET /api/v1/spam/mute
"""

from httpx import AsyncClient


class TestSpamCheck:
    """POST /api/v1/spam/check tests."""

    async def test_clean_content_is_allowed(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        response = await async_client.post(
            "/api/v1/spam/check",
            json={"content": "Is the oat milk back in stock?"},
            headers=auth_headers(test_user["api_key"]),
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["is_spam"] is False
        assert data["action"] == "allow"
        assert data["violations"] == []

    async def test_reports_every_violation(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        response = await async_client.post(
            "/api/v1/spam/check",
            json={"content": "HELLOOOOOOOO"},
            headers=auth_headers(test_user["api_key"]),
        )
        data = response.json()["data"]
        assert data["action"] == "block"
        assert {v["type"] for v in data["violations"]} == {
            "excessive_caps",
            "repeated_characters",
        }

    async def test_check_counts_toward_duplicates(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        headers = auth_headers(test_user["api_key"])
        await async_client.post("/api/v1/spam/check", json={"content": "hello"}, headers=headers)
        response = await async_client.post(
            "/api/v1/spam/check", json={"content": "hello"}, headers=headers
        )
        assert response.json()["data"]["violations"][0]["type"] == "duplicate_message"

    async def test_per_ip_limit(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        """The endpoint is additionally limited per client address."""
        headers = auth_headers(test_user["api_key"])
        statuses = []
        for i in range(61):
            response = await async_client.post(
                "/api/v1/spam/check", json={"content": f"message {i}"}, headers=headers
            )
            statuses.append(response.status_code)

        assert statuses[:60] == [200] * 60
        assert statuses[60] == 429
        assert "Retry-After" in response.headers


class TestMuteStatus:
    """GET /api/v1/spam/mute tests."""

    async def test_not_muted(self, async_client: AsyncClient, test_user: dict, auth_headers):
        response = await async_client.get(
            "/api/v1/spam/mute", headers=auth_headers(test_user["api_key"])
        )
        assert response.json()["data"] == {"muted": False, "mute": None}

    async def test_muted_after_mute_verdict(
        self, async_client: AsyncClient, test_user: dict, auth_headers
    ):
        headers = auth_headers(test_user["api_key"])
        check = await async_client.post(
            "/api/v1/spam/check",
            json={"content": "https://a.io https://b.io https://c.io"},
            headers=headers,
        )
        assert check.json()["data"]["action"] == "mute"

        response = await async_client.get("/api/v1/spam/mute", headers=headers)
        data = response.json()["data"]
        assert data["muted"] is True
        assert data["mute"]["user_id"] == test_user["user_id"]
        assert data["mute"]["violations"][0]["type"] == "url_spam"
