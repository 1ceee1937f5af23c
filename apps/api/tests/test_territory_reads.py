"""
Tests for user resolution, territory read accessors and the admin reset.
"""
import uuid

import pytest
from sqlalchemy import func, select

from models import Activity, TileHistory, TileOwnership, User
from schemas import StravaAthleteProfile
from services.ownership_ledger import claim
from services.territory_admin import reset_territory
from services.territory_errors import UserNotFound
from services.territory_reads import current_tiles, tile_history
from services.user_directory import get_user, get_user_by_athlete_id, resolve_user


class TestResolveUser:
    def test_first_resolution_creates_user(self, db_session):
        profile = StravaAthleteProfile(id=31_415_926_535, username="niranjan_run", firstname="Niranjan", lastname="Shirke")
        user = resolve_user(db_session, profile)

        assert user.strava_athlete_id == 31_415_926_535
        assert user.display_name == "Niranjan Shirke"

    def test_later_resolution_updates_display_fields_only(self, db_session):
        first = resolve_user(db_session, StravaAthleteProfile(id=7, username="old", firstname="Old"))
        second = resolve_user(db_session, StravaAthleteProfile(id=7, username="new", firstname="New", profile="https://img/x.png"))

        assert second.id == first.id
        assert second.username == "new"
        assert second.profile_url == "https://img/x.png"
        assert db_session.execute(select(func.count()).select_from(User)).scalar_one() == 1

    def test_display_name_falls_back_to_username(self, db_session):
        user = resolve_user(db_session, StravaAthleteProfile(id=8, username="ghost"))
        assert user.display_name == "ghost"


class TestLookups:
    def test_get_user(self, db_session, user_a):
        assert get_user(db_session, user_a.id).id == user_a.id
        assert get_user(db_session, str(user_a.id)).id == user_a.id

    def test_get_user_unknown(self, db_session):
        with pytest.raises(UserNotFound) as exc:
            get_user(db_session, uuid.uuid4())
        assert exc.value.reason == "USER_NOT_FOUND"

    def test_get_user_malformed_id(self, db_session):
        with pytest.raises(UserNotFound):
            get_user(db_session, "not-a-uuid")

    def test_get_user_by_athlete_id(self, db_session, user_a):
        assert get_user_by_athlete_id(db_session, 1001).id == user_a.id
        with pytest.raises(UserNotFound):
            get_user_by_athlete_id(db_session, 424242)


class TestCurrentTiles:
    def test_lists_owned_tiles_sorted(self, db_session, user_a, user_b, make_activity):
        claim(db_session, {"c", "a", "b"}, user_a.id, make_activity(user_a).id)
        claim(db_session, {"b"}, user_b.id, make_activity(user_b).id)

        assert current_tiles(db_session, user_a.id) == ["a", "c"]
        assert current_tiles(db_session, user_b.id) == ["b"]

    def test_unknown_user(self, db_session):
        with pytest.raises(UserNotFound):
            current_tiles(db_session, uuid.uuid4())


class TestTileHistory:
    @pytest.fixture
    def contested(self, db_session, user_a, user_b, make_activity):
        # A claims t1, t2; B takes t2; A claims t3.
        claim(db_session, {"t1", "t2"}, user_a.id, make_activity(user_a).id)
        claim(db_session, {"t2"}, user_b.id, make_activity(user_b).id)
        claim(db_session, {"t3"}, user_a.id, make_activity(user_a).id)

    def test_owned_scope_covers_tiles_held_now(self, db_session, user_a, user_b, contested):
        a_rows = tile_history(db_session, user_a.id, scope="owned")
        assert sorted(r.tile_id for r in a_rows) == ["t1", "t3"]

        b_rows = tile_history(db_session, user_b.id, scope="owned")
        # Full chain for t2, including A's original claim.
        assert [(r.previous_owner_id, r.new_owner_id) for r in b_rows] == [
            (user_a.id, user_b.id),
            (None, user_a.id),
        ]

    def test_involved_scope_includes_losses(self, db_session, user_a, contested):
        rows = tile_history(db_session, user_a.id, scope="involved")
        assert len(rows) == 4
        assert any(r.previous_owner_id == user_a.id and r.tile_id == "t2" for r in rows)

    def test_newest_first(self, db_session, user_a, contested):
        rows = tile_history(db_session, user_a.id, scope="involved")
        ids = [r.id for r in rows]
        assert ids == sorted(ids, reverse=True)
        assert rows[0].tile_id == "t3"

    def test_pagination(self, db_session, user_a, contested):
        page1 = tile_history(db_session, user_a.id, scope="involved", limit=3)
        page2 = tile_history(db_session, user_a.id, scope="involved", limit=3, offset=3)
        assert len(page1) == 3
        assert len(page2) == 1
        assert {r.id for r in page1}.isdisjoint({r.id for r in page2})

    def test_bad_scope(self, db_session, user_a):
        with pytest.raises(ValueError):
            tile_history(db_session, user_a.id, scope="everything")


class TestReset:
    def test_reset_clears_territory_but_keeps_users(self, db_session, user_a, make_activity):
        claim(db_session, {"t1"}, user_a.id, make_activity(user_a).id)

        counts = reset_territory(db_session)

        assert counts == {"tile_history": 1, "tile_ownership": 1, "activities": 1, "users": 0}
        for model in (TileHistory, TileOwnership, Activity):
            assert db_session.execute(select(func.count()).select_from(model)).scalar_one() == 0
        assert db_session.execute(select(func.count()).select_from(User)).scalar_one() == 1

    def test_reset_with_users(self, db_session, user_a):
        assert reset_territory(db_session, include_users=True)["users"] == 1
