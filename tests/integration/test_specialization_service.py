"""Integration: specialization awards, reads and leaderboard."""

from __future__ import annotations

import pytest
from sqlalchemy import func, select

from yup.db.models import UserSpecialization
from yup.progression import specialization
from yup.progression.errors import UnknownSpecialization


class TestSpecializationAward:
    @pytest.mark.asyncio
    async def test_first_award_initializes_all_tracks(self, db_session, make_user):
        user_id = await make_user("kickerkid")
        result = await specialization.award(db_session, user_id, "kicker", 105, trick_id="trick-1")
        await db_session.commit()

        assert result["xp_awarded"] == 105
        assert result["multiplier"] == 1.0
        assert result["level"] == 1
        assert result["level_title"] == "Apprentice"
        assert result["tricks_completed"] == 1
        assert result["is_best_trick"] is True

        count = (await db_session.execute(
            select(func.count()).select_from(UserSpecialization).where(UserSpecialization.user_id == user_id)
        )).scalar_one()
        assert count == 3

    @pytest.mark.asyncio
    async def test_multiplier_uses_level_before_award(self, db_session, make_user):
        user_id = await make_user("slider")
        first = await specialization.award(db_session, user_id, "slider", 500)
        second = await specialization.award(db_session, user_id, "slider", 100)
        await db_session.commit()

        assert first["multiplier"] == 1.0
        assert first["leveled_up"] is True
        assert first["level"] == 2
        assert second["multiplier"] == 1.05
        assert second["xp_awarded"] == 105
        assert second["xp_total"] == 605
        assert second["previous_level"] == 2

    @pytest.mark.asyncio
    async def test_best_trick_only_replaced_by_higher_xp(self, db_session, make_user):
        user_id = await make_user("surfer")
        await specialization.award(db_session, user_id, "surface", 200, trick_id="big")
        result = await specialization.award(db_session, user_id, "surface", 50, trick_id="small")
        await db_session.commit()

        assert result["is_best_trick"] is False
        (spec,) = [s for s in await specialization.get_user_specializations(db_session, user_id)
                   if s["specialization"] == "surface"]
        assert spec["best_trick"] == {"id": "big", "xp": 200}
        assert spec["tricks_completed"] == 2

    @pytest.mark.asyncio
    async def test_xp_current_tracks_threshold(self, db_session, make_user):
        user_id = await make_user("kicker2")
        await specialization.award(db_session, user_id, "kicker", 700)
        await db_session.commit()

        row = (await db_session.execute(
            select(UserSpecialization).where(
                UserSpecialization.user_id == user_id,
                UserSpecialization.specialization == "kicker",
            )
        )).scalar_one()
        assert row.level == 2
        assert row.xp_current == 200

    @pytest.mark.asyncio
    async def test_unknown_track_rejected(self, db_session, make_user):
        user_id = await make_user("nobody")
        with pytest.raises(UnknownSpecialization):
            await specialization.award(db_session, user_id, "halfpipe", 100)


class TestSpecializationReads:
    @pytest.mark.asyncio
    async def test_no_rows_before_first_award(self, db_session):
        assert await specialization.get_user_specializations(db_session, 999) == []

    @pytest.mark.asyncio
    async def test_rows_ordered_by_track(self, db_session, make_user):
        user_id = await make_user("allrounder")
        await specialization.award(db_session, user_id, "surface", 10)
        await db_session.commit()

        specs = await specialization.get_user_specializations(db_session, user_id)
        assert [s["specialization"] for s in specs] == ["kicker", "slider", "surface"]
        assert specs[0]["name"] == "Kicker Specialist"
        assert specs[2]["progress"]["current"] == 10

    @pytest.mark.asyncio
    async def test_leaderboard_order(self, db_session, make_user):
        low = await make_user("low")
        high = await make_user("high")
        tie_a = await make_user("tie_a")
        tie_b = await make_user("tie_b")

        await specialization.award(db_session, low, "kicker", 100)
        await specialization.award(db_session, high, "kicker", 1500)
        await specialization.award(db_session, tie_a, "kicker", 300)
        await specialization.award(db_session, tie_b, "kicker", 300)
        await db_session.commit()

        board = await specialization.get_specialization_leaderboard(db_session, "kicker", limit=10)
        assert [entry["user_id"] for entry in board] == [high, tie_a, tie_b, low]
        assert [entry["rank"] for entry in board] == [1, 2, 3, 4]
        assert board[0]["username"] == "high"
        assert board[0]["level"] == 3

    @pytest.mark.asyncio
    async def test_leaderboard_limit(self, db_session, make_user):
        for index in range(3):
            user_id = await make_user(f"rider{index}")
            await specialization.award(db_session, user_id, "slider", 100 * (index + 1))
        await db_session.commit()

        board = await specialization.get_specialization_leaderboard(db_session, "slider", limit=2)
        assert len(board) == 2

    @pytest.mark.asyncio
    async def test_leaderboard_unknown_track(self, db_session):
        with pytest.raises(UnknownSpecialization):
            await specialization.get_specialization_leaderboard(db_session, "halfpipe")
