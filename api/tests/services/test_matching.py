"""Tests for interest normalization and user discovery."""

import pytest

from app.errors import ValidationError
from app.services.matching import MatchingService, normalize_interests


def test_normalize_interests():
    assert normalize_interests([" Coffee", "JAZZ", "coffee", "", "jazz "]) == ["coffee", "jazz"]


def test_normalize_rejects_long_interest():
    with pytest.raises(ValidationError) as exc_info:
        normalize_interests(["x" * 51])
    assert exc_info.value.code == "INVALID_INTEREST"


def test_normalize_rejects_too_many():
    with pytest.raises(ValidationError) as exc_info:
        normalize_interests([f"topic{i}" for i in range(21)])
    assert exc_info.value.code == "TOO_MANY_INTERESTS"


async def test_set_interests_replaces_existing(db_session, test_user):
    service = MatchingService(db_session)

    stored = await service.set_user_interests(test_user["id"], ["Tea", "coffee", "tea"])

    assert stored == ["coffee", "tea"]
    assert await service.get_user_interests(test_user["id"]) == ["coffee", "tea"]


async def test_discover_orders_by_shared_count(db_session, test_user, make_user):
    await make_user("alice", interests=["coffee"])
    await make_user("bob", interests=["coffee", "jazz"])
    await make_user("carol", interests=["books"])
    await make_user("dave", interests=["coffee", "jazz"], poke_enabled=False)

    found = await MatchingService(db_session).discover_users(test_user["id"])

    assert [d.user.username for d in found] == ["bob", "alice"]
    assert found[0].shared_interests == ["coffee", "jazz"]
    assert found[1].shared_count == 1


async def test_discover_with_explicit_interests_and_paging(db_session, test_user, make_user):
    await make_user("alice", interests=["books"])
    await make_user("bob", interests=["books"])

    service = MatchingService(db_session)
    first = await service.discover_users(test_user["id"], ["Books"], limit=1)
    second = await service.discover_users(test_user["id"], ["Books"], limit=1, offset=1)

    assert [d.user.username for d in first] == ["alice"]
    assert [d.user.username for d in second] == ["bob"]


async def test_discover_without_interests_is_empty(db_session, make_user):
    loner = await make_user("loner")
    assert await MatchingService(db_session).discover_users(loner["id"]) == []
