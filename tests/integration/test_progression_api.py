"""Progression API tests over the ASGI app."""

from __future__ import annotations

import pytest
from httpx import AsyncClient

from yup.progression.level_curve import LEVEL_CAP, REQUIREMENTS, XP_TOTAL_CAP


class TestManeuverEndpoints:
    @pytest.mark.asyncio
    async def test_preview(self, client: AsyncClient, scenario_payload):
        response = await client.post("/api/v1/maneuvers/preview", json=scenario_payload)
        assert response.status_code == 200
        data = response.json()
        assert data["maneuver_total"] == 105
        assert data["spins"] == {"component_id": "fs180", "name": "FS 180", "xp": 35}
        assert data["description"] == "No approach Ollie FS 180 No grab Boardslide"

    @pytest.mark.asyncio
    async def test_preview_missing_division(self, client: AsyncClient, scenario_payload):
        del scenario_payload["spins"]
        response = await client.post("/api/v1/maneuvers/preview", json=scenario_payload)
        assert response.status_code == 400
        assert response.json() == {"detail": "Missing required division: spins", "code": "missing_division"}

    @pytest.mark.asyncio
    async def test_preview_unknown_component(self, client: AsyncClient, scenario_payload):
        scenario_payload["grabs"] = "japan"
        response = await client.post("/api/v1/maneuvers/preview", json=scenario_payload)
        assert response.status_code == 400
        assert response.json()["code"] == "unknown_component"

    @pytest.mark.asyncio
    async def test_preview_bad_modifiers(self, client: AsyncClient, scenario_payload):
        scenario_payload["modifiers"] = {"blind": True}
        response = await client.post("/api/v1/maneuvers/preview", json=scenario_payload)
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_modifiers"

    @pytest.mark.asyncio
    async def test_components(self, client: AsyncClient):
        response = await client.get("/api/v1/components")
        assert response.status_code == 200
        data = response.json()
        assert set(data["divisions"]) == {"approach", "entry", "spins", "grabs", "base_moves", "modifiers"}
        modifier_ids = {c["component_id"] for c in data["divisions"]["modifiers"]}
        assert "legacy_tweak" not in modifier_ids
        assert "none" in modifier_ids

    @pytest.mark.asyncio
    async def test_invalidate(self, client: AsyncClient):
        response = await client.post("/api/v1/admin/components/invalidate")
        assert response.status_code == 200
        assert response.json() == {"status": "invalidated"}


class TestLevelEndpoints:
    @pytest.mark.asyncio
    async def test_levels(self, client: AsyncClient):
        response = await client.get("/api/v1/levels")
        assert response.status_code == 200
        levels = response.json()["levels"]
        assert len(levels) == LEVEL_CAP
        assert levels[0]["xp_required"] == REQUIREMENTS[1]

    @pytest.mark.asyncio
    async def test_snapshot(self, client: AsyncClient):
        response = await client.get("/api/v1/xp/snapshot", params={"total": 105})
        assert response.status_code == 200
        data = response.json()
        assert data["level"] == 1
        assert data["current"] == 105
        assert data["remaining"] == REQUIREMENTS[1] - 105

    @pytest.mark.asyncio
    async def test_snapshot_clamps(self, client: AsyncClient):
        response = await client.get("/api/v1/xp/snapshot", params={"total": XP_TOTAL_CAP * 2})
        assert response.json()["total"] == XP_TOTAL_CAP


class TestVideoEventEndpoints:
    @pytest.mark.asyncio
    async def test_publish_then_read(self, client: AsyncClient, make_user, tasks, scenario_payload):
        user_id = await make_user("api_rider")
        response = await client.post("/api/v1/events/video-published", json={
            "user_id": user_id,
            "video_id": "vid-1",
            "maneuver_payload": scenario_payload,
            "quest_node_id": "kicker_fs180",
        })
        assert response.status_code == 200
        data = response.json()
        assert data["user"]["awarded"] == 105
        assert data["specialization"]["specialization"] == "kicker"
        assert data["quest"]["status"] == "scheduled"

        await tasks.drain()

        xp = (await client.get(f"/api/v1/users/{user_id}/xp")).json()
        assert xp["user_id"] == user_id
        assert xp["total"] == 225

        history = (await client.get(f"/api/v1/users/{user_id}/xp/history")).json()
        assert history["total"] == 2
        assert {entry["source"] for entry in history["entries"]} == {"video_upload", "quest_completion"}

        quest_history = (await client.get(f"/api/v1/users/{user_id}/quests/kicker_fs180/history")).json()
        assert quest_history["total_attempts"] == 1

    @pytest.mark.asyncio
    async def test_publish_invalid_payload(self, client: AsyncClient, make_user, scenario_payload):
        user_id = await make_user("api_rider")
        del scenario_payload["entry"]
        response = await client.post("/api/v1/events/video-published", json={
            "user_id": user_id,
            "video_id": "vid-1",
            "maneuver_payload": scenario_payload,
        })
        assert response.status_code == 400
        assert response.json()["code"] == "missing_division"

    @pytest.mark.asyncio
    async def test_delete(self, client: AsyncClient, make_user, tasks, scenario_payload):
        user_id = await make_user("api_rider")
        await client.post("/api/v1/events/video-published", json={
            "user_id": user_id,
            "video_id": "vid-1",
            "maneuver_payload": scenario_payload,
        })

        response = await client.post("/api/v1/events/video-deleted", json={"user_id": user_id, "video_id": "vid-1"})
        await tasks.drain()

        assert response.status_code == 200
        assert response.json()["revoked"] == 105
        assert (await client.get(f"/api/v1/users/{user_id}/xp")).json()["total"] == 0

    @pytest.mark.asyncio
    async def test_event_schema_validation(self, client: AsyncClient):
        response = await client.post("/api/v1/events/video-deleted", json={"video_id": "vid-1"})
        assert response.status_code == 422
        assert response.json()["detail"] == "Validation error"


class TestSpecializationEndpoints:
    @pytest.mark.asyncio
    async def test_user_specializations_and_leaderboard(self, client: AsyncClient, make_user, scenario_payload):
        user_id = await make_user("spec_rider", profile_image_url="https://cdn.example/spec.png")
        await client.post("/api/v1/events/video-published", json={
            "user_id": user_id,
            "video_id": "vid-1",
            "maneuver_payload": scenario_payload,
            "specialization": "slider",
        })

        specs = (await client.get(f"/api/v1/users/{user_id}/specializations")).json()
        slider = next(s for s in specs["specializations"] if s["specialization"] == "slider")
        assert slider["xp_total"] == 105
        assert slider["level_title"] == "Apprentice"

        board = (await client.get("/api/v1/specializations/slider/leaderboard")).json()
        assert board["entries"][0]["user_id"] == user_id
        assert board["entries"][0]["profile_image_url"] == "https://cdn.example/spec.png"

    @pytest.mark.asyncio
    async def test_unknown_track(self, client: AsyncClient):
        response = await client.get("/api/v1/specializations/halfpipe/leaderboard")
        assert response.status_code == 400
        assert response.json()["code"] == "unknown_specialization"


class TestQuestEndpoints:
    @pytest.mark.asyncio
    async def test_unlock_locked_node_conflicts(self, client: AsyncClient, make_user):
        user_id = await make_user("quest_api")
        response = await client.post(f"/api/v1/users/{user_id}/quests/kicker_bs180/unlock")
        assert response.status_code == 409
        assert response.json()["code"] == "prerequisites_not_met"

    @pytest.mark.asyncio
    async def test_unlock_root(self, client: AsyncClient, make_user):
        user_id = await make_user("quest_api")
        response = await client.post(f"/api/v1/users/{user_id}/quests/kicker_fs180/unlock")
        assert response.status_code == 200
        assert response.json()["status"] == "available"
        assert response.json()["unlocked_at"] is not None

        unlocked = (await client.get(f"/api/v1/users/{user_id}/quests/kicker_fs180/unlocked")).json()
        assert unlocked == {"node_id": "kicker_fs180", "unlocked": True}

    @pytest.mark.asyncio
    async def test_unknown_node_is_404(self, client: AsyncClient, make_user):
        user_id = await make_user("quest_api")
        response = await client.get(f"/api/v1/users/{user_id}/quests/kicker_double_cork/evolution")
        assert response.status_code == 404
        assert response.json()["code"] == "quest_node_not_found"

    @pytest.mark.asyncio
    async def test_skill_tree(self, client: AsyncClient, make_user):
        user_id = await make_user("quest_api")
        response = await client.get(f"/api/v1/users/{user_id}/skill-tree/kicker")
        assert response.status_code == 200
        tree = response.json()
        assert tree["total_nodes"] == 9
        assert tree["rows"][0]["spin"]["status"] == "available"

    @pytest.mark.asyncio
    async def test_recommended_and_stats(self, client: AsyncClient, make_user):
        user_id = await make_user("quest_api")
        recommended = (await client.get(
            f"/api/v1/users/{user_id}/quests/recommended", params={"specialization": "kicker", "limit": 1},
        )).json()
        assert [q["id"] for q in recommended["quests"]] == ["kicker_fs180"]

        retries = (await client.get(f"/api/v1/users/{user_id}/quests/retries")).json()
        assert retries == {"quests": []}

        stats = (await client.get(f"/api/v1/users/{user_id}/quests/stats")).json()
        assert stats["quests_completed"] == 0
        assert stats["quests_available"] == 2
