"""Integration: award -> ledger -> notification, and revocation on video delete."""

from __future__ import annotations

import json

import pytest
import pytest_asyncio
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from yup.db.models import Notification, UserProgression, XPLedger
from yup.progression import ledger
from yup.progression.level_curve import REQUIREMENTS, XP_TOTAL_CAP
from yup.progression.notifications import LEVEL_UP_CHANNEL, user_channel

CONTRIBUTIONS = [
    {"code": "entry.ollie", "label": "Ollie", "value": 20},
    {"code": "spins.fs180", "label": "FS 180", "value": 35},
    {"code": "base_moves.boardslide", "label": "Boardslide", "value": 50},
]


@pytest_asyncio.fixture
async def rider(make_user) -> int:
    return await make_user("rider")


async def _ledger_rows(db: AsyncSession, user_id: int) -> list[XPLedger]:
    result = await db.execute(select(XPLedger).where(XPLedger.user_id == user_id).order_by(XPLedger.id))
    return list(result.scalars().all())


class TestAward:
    @pytest.mark.asyncio
    async def test_first_award_creates_progression(self, db_session, rider):
        result = await ledger.award(db_session, None, rider, 105, video_id="vid-1", contributions=CONTRIBUTIONS)
        await db_session.commit()

        assert result["awarded"] == 105
        assert result["total"] == 105
        assert result["level"] == 1
        assert result["current"] == 105
        assert result["leveled_up"] is False
        assert result["source"] == "video_upload"

        progression = await db_session.get(UserProgression, rider)
        assert progression.xp_total == 105
        assert progression.xp_current == 105
        assert progression.level == 1

    @pytest.mark.asyncio
    async def test_award_appends_ledger_entry(self, db_session, rider):
        await ledger.award(db_session, None, rider, 105, video_id="vid-1", contributions=CONTRIBUTIONS)
        await db_session.commit()

        (row,) = await _ledger_rows(db_session, rider)
        assert row.amount == 105
        assert row.video_id == "vid-1"
        assert row.source == "video_upload"
        assert [c["code"] for c in row.contributions] == [c["code"] for c in CONTRIBUTIONS]

    @pytest.mark.asyncio
    async def test_invalid_contributions_are_dropped(self, db_session, rider):
        await ledger.award(
            db_session, None, rider, 20, video_id="vid-1",
            contributions=[{"code": "entry.ollie", "label": "Ollie", "value": 20}, {"code": "x", "value": 0}, "junk"],
        )
        await db_session.commit()
        (row,) = await _ledger_rows(db_session, rider)
        assert row.contributions == [{"code": "entry.ollie", "label": "Ollie", "value": 20}]

    @pytest.mark.asyncio
    async def test_zero_award_writes_nothing(self, db_session, rider, mock_redis):
        result = await ledger.award(db_session, mock_redis, rider, 0, video_id="vid-0")
        await db_session.commit()

        assert result["awarded"] == 0
        assert result["total"] == 0
        assert await _ledger_rows(db_session, rider) == []
        mock_redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_level_up_reported(self, db_session, rider):
        result = await ledger.award(db_session, None, rider, REQUIREMENTS[1] + REQUIREMENTS[2] + 5)
        await db_session.commit()

        assert result["previous_level"] == 1
        assert result["level"] == 3
        assert result["level_ups"] == 2
        assert result["leveled_up"] is True
        assert result["current"] == 5

    @pytest.mark.asyncio
    async def test_total_clamped_at_cap(self, db_session, rider):
        await ledger.award(db_session, None, rider, XP_TOTAL_CAP - 10)
        result = await ledger.award(db_session, None, rider, 500)
        await db_session.commit()

        assert result["total"] == XP_TOTAL_CAP
        assert result["remaining"] == 0
        assert result["progress"] == 1.0

    @pytest.mark.asyncio
    async def test_clamped_award_logs_applied_amount(self, db_session, rider, mock_redis):
        await ledger.award(db_session, None, rider, XP_TOTAL_CAP - 100, video_id="seed", notify=False)
        result = await ledger.award(
            db_session, mock_redis, rider, 105, video_id="vid-cap", contributions=CONTRIBUTIONS,
        )
        await db_session.commit()

        assert result["awarded"] == 100
        row = (await db_session.execute(
            select(XPLedger).where(XPLedger.video_id == "vid-cap")
        )).scalar_one()
        assert row.amount == 100
        assert sum(item["value"] for item in row.contributions) == 100
        assert row.contributions[-1] == {"code": "base_moves.boardslide", "label": "Boardslide", "value": 45}
        assert row.context == {"requested_amount": 105, "clamped_at_cap": True}

        notification = (await db_session.execute(
            select(Notification).where(Notification.user_id == rider)
        )).scalar_one()
        assert notification.notification_metadata["amount"] == 100

    @pytest.mark.asyncio
    async def test_award_at_cap_writes_nothing(self, db_session, rider, mock_redis):
        await ledger.award(db_session, None, rider, XP_TOTAL_CAP, video_id="seed")
        result = await ledger.award(db_session, mock_redis, rider, 50, video_id="vid-late")
        await db_session.commit()

        assert result["awarded"] == 0
        assert result["total"] == XP_TOTAL_CAP
        assert [row.video_id for row in await _ledger_rows(db_session, rider)] == ["seed"]
        mock_redis.publish.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_award_creates_no_progression_row(self, db_session, rider):
        await ledger.award(db_session, None, rider, 0)
        await db_session.commit()
        assert await db_session.get(UserProgression, rider) is None

    @pytest.mark.asyncio
    async def test_quest_source_recorded(self, db_session, rider):
        result = await ledger.award(
            db_session, None, rider, 250, video_id="vid-2",
            contributions=[{"code": "quest.kicker_fs180_air", "label": "Frontside 180 Air", "value": 250}],
            source=ledger.SOURCE_QUEST_COMPLETION,
        )
        await db_session.commit()
        assert result["source"] == "quest_completion"
        (row,) = await _ledger_rows(db_session, rider)
        assert row.source == "quest_completion"


class TestNotifications:
    @pytest.mark.asyncio
    async def test_xp_gained_notification(self, db_session, rider, mock_redis):
        await ledger.award(db_session, mock_redis, rider, 105, video_id="vid-1", contributions=CONTRIBUTIONS)
        await db_session.commit()

        notification = (await db_session.execute(
            select(Notification).where(Notification.user_id == rider)
        )).scalar_one()
        assert notification.type == "progression"
        assert notification.subtype == "xp_gained"
        assert notification.title == "You gained 105 XP"
        assert "Ollie +20" in notification.description
        assert notification.notification_metadata["video_id"] == "vid-1"

        channel, raw = mock_redis.publish.await_args_list[0].args
        assert channel == user_channel(rider)
        payload = json.loads(raw)
        assert payload["event"] == "notification"
        assert payload["data"]["subtype"] == "xp_gained"

    @pytest.mark.asyncio
    async def test_level_up_broadcast(self, db_session, rider, mock_redis):
        await ledger.award(db_session, mock_redis, rider, REQUIREMENTS[1])
        await db_session.commit()

        channels = [call.args[0] for call in mock_redis.publish.await_args_list]
        assert channels == [user_channel(rider), LEVEL_UP_CHANNEL]
        broadcast = json.loads(mock_redis.publish.await_args_list[1].args[1])
        assert broadcast == {"user_id": rider, "old_level": 1, "new_level": 2}

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_award(self, db_session, rider, mock_redis):
        mock_redis.publish.side_effect = ConnectionError("redis down")
        result = await ledger.award(db_session, mock_redis, rider, 50)
        await db_session.commit()

        assert result["total"] == 50
        count = (await db_session.execute(
            select(func.count()).select_from(Notification).where(Notification.user_id == rider)
        )).scalar_one()
        assert count == 1

    @pytest.mark.asyncio
    async def test_notify_false_skips_notification(self, db_session, rider, mock_redis):
        await ledger.award(db_session, mock_redis, rider, 50, notify=False)
        await db_session.commit()
        mock_redis.publish.assert_not_awaited()


class TestRevoke:
    @pytest.mark.asyncio
    async def test_round_trip_restores_total(self, db_session, rider):
        await ledger.award(db_session, None, rider, 40, video_id="vid-0")
        await ledger.award(db_session, None, rider, 105, video_id="vid-1")
        await db_session.commit()

        revoked = await ledger.revoke(db_session, rider, "vid-1")
        await db_session.commit()

        assert revoked == 105
        assert await ledger.get_stored_total(db_session, rider) == 40
        assert [row.video_id for row in await _ledger_rows(db_session, rider)] == ["vid-0"]

    @pytest.mark.asyncio
    async def test_revokes_upload_and_quest_bonus_together(self, db_session, rider):
        """A video that earned 105 plus a 250 quest bonus loses all 355."""
        await ledger.award(db_session, None, rider, 105, video_id="vid-1")
        await ledger.award(db_session, None, rider, 250, video_id="vid-1", source=ledger.SOURCE_QUEST_COMPLETION)
        await db_session.commit()

        revoked = await ledger.revoke(db_session, rider, "vid-1")
        await db_session.commit()

        assert revoked == 355
        assert await ledger.get_stored_total(db_session, rider) == 0

    @pytest.mark.asyncio
    async def test_unknown_video_revokes_nothing(self, db_session, rider):
        await ledger.award(db_session, None, rider, 40, video_id="vid-0")
        await db_session.commit()

        assert await ledger.revoke(db_session, rider, "vid-missing") == 0
        assert await ledger.get_stored_total(db_session, rider) == 40

    @pytest.mark.asyncio
    async def test_round_trip_near_cap_restores_total(self, db_session, rider):
        await ledger.award(db_session, None, rider, XP_TOTAL_CAP - 100, video_id="seed", notify=False)
        await ledger.award(db_session, None, rider, 250, video_id="vid-cap", notify=False)
        await db_session.commit()

        revoked = await ledger.revoke(db_session, rider, "vid-cap")
        await db_session.commit()

        assert revoked == 100
        assert await ledger.get_stored_total(db_session, rider) == XP_TOTAL_CAP - 100
        report = await ledger.verify_ledger(db_session, rider)
        assert report["consistent"] is True

    @pytest.mark.asyncio
    async def test_empty_revoke_creates_no_progression_row(self, db_session, rider):
        assert await ledger.revoke(db_session, rider, "vid-missing") == 0
        await db_session.commit()
        assert await db_session.get(UserProgression, rider) is None

    @pytest.mark.asyncio
    async def test_missing_ids_are_a_no_op(self, db_session, rider):
        assert await ledger.revoke(db_session, rider, None) == 0
        assert await ledger.revoke(db_session, 0, "vid-1") == 0

    @pytest.mark.asyncio
    async def test_revoke_is_idempotent(self, db_session, rider):
        await ledger.award(db_session, None, rider, 105, video_id="vid-1")
        await db_session.commit()

        assert await ledger.revoke(db_session, rider, "vid-1") == 105
        await db_session.commit()
        assert await ledger.revoke(db_session, rider, "vid-1") == 0

    @pytest.mark.asyncio
    async def test_revocation_level_down_keeps_invariants(self, db_session, rider):
        await ledger.award(db_session, None, rider, REQUIREMENTS[1] + 10, video_id="vid-big")
        await db_session.commit()
        await ledger.revoke(db_session, rider, "vid-big")
        await db_session.commit()

        progression = await db_session.get(UserProgression, rider)
        assert progression.xp_total == 0
        assert progression.level == 1
        assert progression.xp_current == 0


class TestReads:
    @pytest.mark.asyncio
    async def test_snapshot_for_unknown_user(self, db_session):
        snapshot = await ledger.get_user_snapshot(db_session, 4242)
        assert snapshot["user_id"] == 4242
        assert snapshot["total"] == 0
        assert snapshot["level"] == 1

    @pytest.mark.asyncio
    async def test_verify_ledger_consistent(self, db_session, rider):
        await ledger.award(db_session, None, rider, 105, video_id="vid-1")
        await ledger.award(db_session, None, rider, 250, video_id="vid-1")
        await ledger.revoke(db_session, rider, "vid-1")
        await ledger.award(db_session, None, rider, 60, video_id="vid-2")
        await db_session.commit()

        report = await ledger.verify_ledger(db_session, rider)
        assert report == {"user_id": rider, "stored_total": 60, "ledger_sum": 60, "consistent": True}

    @pytest.mark.asyncio
    async def test_history_newest_first_and_paginated(self, db_session, rider):
        for index in range(3):
            await ledger.award(db_session, None, rider, 10 + index, video_id=f"vid-{index}")
        await db_session.commit()

        page_one = await ledger.get_xp_history(db_session, rider, page=1, per_page=2)
        assert page_one["total"] == 3
        assert [entry["video_id"] for entry in page_one["entries"]] == ["vid-2", "vid-1"]

        page_two = await ledger.get_xp_history(db_session, rider, page=2, per_page=2)
        assert [entry["video_id"] for entry in page_two["entries"]] == ["vid-0"]
