"""End-to-end HTTP tests against the FastAPI app."""

from __future__ import annotations

from datetime import timedelta

from communiclaw.agents.trivia import TRIVIA_QUESTIONS
from communiclaw.db.models import CampaignKind, CampaignStatus
from communiclaw.timeutils import utcnow


def _answer_for(question_text: str) -> str:
    return next(q.answer for q in TRIVIA_QUESTIONS if q.question == question_text)


def _campaign_body(community_id: int, **overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "community_id": community_id,
        "title": "Genesis drop",
        "prize": "1 Genesis NFT",
        "capacity": 2,
        "ends_at": (utcnow() + timedelta(days=2)).isoformat(),
    }
    body.update(overrides)
    return body


class TestHealth:
    async def test_health(self, client) -> None:
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    async def test_ready_without_redis(self, client) -> None:
        resp = await client.get("/ready")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ready"
        assert data["checks"] == {"database": "ok", "redis": "disabled"}

    async def test_version(self, client) -> None:
        resp = await client.get("/version")
        assert resp.status_code == 200
        assert set(resp.json()) == {"version", "environment"}


class TestErrors:
    async def test_missing_auth(self, client) -> None:
        resp = await client.get("/api/v1/users/me/wallets")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Unauthorized"}

    async def test_garbage_token(self, client) -> None:
        resp = await client.get("/api/v1/users/me/wallets", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert "error" in resp.json()

    async def test_banned_user(self, client, factory, auth_headers) -> None:
        banned = await factory.user(is_banned=True)
        resp = await client.get("/api/v1/users/me/wallets", headers=auth_headers(banned))
        assert resp.status_code == 403
        assert resp.json()["error"] == "Account is banned"

    async def test_validation_error_shape(self, client, factory, auth_headers) -> None:
        user = await factory.user()
        resp = await client.post("/api/v1/communities", json={"name": ""}, headers=auth_headers(user))
        assert resp.status_code == 400
        data = resp.json()
        assert data["error"] == "Validation error"
        assert {tuple(e["loc"]) for e in data["errors"]} >= {("body", "slug")}

    async def test_unknown_campaign(self, client) -> None:
        resp = await client.get("/api/v1/campaigns/00000000-0000-0000-0000-000000000000")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Campaign not found"}

    async def test_admin_only(self, client, factory, auth_headers) -> None:
        user = await factory.user()
        resp = await client.post("/api/v1/admin/campaigns/draw-expired", headers=auth_headers(user))
        assert resp.status_code == 403
        assert resp.json() == {"error": "Admin access required"}


class TestCommunities:
    async def test_create_and_fetch(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        resp = await client.post(
            "/api/v1/communities",
            json={
                "name": "Claw Club",
                "slug": "Claw Club!",
                "discord_webhook_url": "https://discord.com/api/webhooks/1/abc",
            },
            headers=auth_headers(owner),
        )
        assert resp.status_code == 201
        created = resp.json()
        assert created["slug"] == "claw-club"
        assert created["has_discord_webhook"] is True
        assert "discord_webhook_url" not in created

        resp = await client.get("/api/v1/communities/claw-club")
        assert resp.status_code == 200
        assert resp.json()["active_campaigns"] == 0

    async def test_duplicate_slug(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        body = {"name": "Dup", "slug": "dup"}
        assert (await client.post("/api/v1/communities", json=body, headers=auth_headers(owner))).status_code == 201
        resp = await client.post("/api/v1/communities", json=body, headers=auth_headers(owner))
        assert resp.status_code == 409
        assert resp.json()["error"] == "This URL slug is already taken"

    async def test_webhook_must_be_https(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        resp = await client.post(
            "/api/v1/communities",
            json={"name": "Plain", "slug": "plain", "discord_webhook_url": "http://example.com/hook"},
            headers=auth_headers(owner),
        )
        assert resp.status_code == 400


class TestWallets:
    async def test_link_and_list(self, client, factory, auth_headers) -> None:
        user = await factory.user()
        headers = auth_headers(user)

        first = await client.post("/api/v1/users/me/wallets", json={"address": "sol-1", "chain": "SOL"}, headers=headers)
        second = await client.post("/api/v1/users/me/wallets", json={"address": "bc1q-1", "chain": "BTC"}, headers=headers)
        assert first.status_code == 201
        assert first.json()["is_primary"] is True
        assert second.json()["is_primary"] is False

        listed = (await client.get("/api/v1/users/me/wallets", headers=headers)).json()
        assert [w["address"] for w in listed] == ["sol-1", "bc1q-1"]

    async def test_duplicate_wallet(self, client, factory, auth_headers) -> None:
        alice = await factory.user()
        bob = await factory.user()
        body = {"address": "shared", "chain": "SOL"}
        assert (await client.post("/api/v1/users/me/wallets", json=body, headers=auth_headers(alice))).status_code == 201

        again = await client.post("/api/v1/users/me/wallets", json=body, headers=auth_headers(alice))
        assert again.status_code == 409
        assert again.json()["error"] == "Wallet already connected"

        taken = await client.post("/api/v1/users/me/wallets", json=body, headers=auth_headers(bob))
        assert taken.status_code == 409
        assert "another account" in taken.json()["error"]


class TestCampaignLifecycle:
    async def test_create_list_enter_draw_export(self, client, factory, auth_headers, notifier, announcer) -> None:
        owner = await factory.user()
        community = await factory.community(owner)
        headers = auth_headers(owner)

        resp = await client.post("/api/v1/campaigns/giveaways", json=_campaign_body(community.id), headers=headers)
        assert resp.status_code == 201
        campaign = resp.json()
        assert campaign["kind"] == "GIVEAWAY"
        assert campaign["status"] == "ACTIVE"
        assert campaign["remaining"] == 2

        listed = (await client.get("/api/v1/campaigns/giveaways")).json()
        assert [c["id"] for c in listed] == [campaign["id"]]
        assert (await client.get("/api/v1/campaigns/allowlists")).json() == []

        members = [await factory.user(x_handle=f"m{i}") for i in range(3)]
        for member in members:
            resp = await client.post(f"/api/v1/campaigns/{campaign['id']}/enter", headers=auth_headers(member))
            assert resp.status_code == 201
            assert resp.json()["entry_method"] == "RAFFLE"

        dup = await client.post(f"/api/v1/campaigns/{campaign['id']}/enter", headers=auth_headers(members[0]))
        assert dup.status_code == 409
        assert dup.json()["error"] == "Already entered"
        assert dup.json()["entry_id"]

        stranger = await factory.user()
        forbidden = await client.post(f"/api/v1/campaigns/{campaign['id']}/draw", headers=auth_headers(stranger))
        assert forbidden.status_code == 403

        drawn = await client.post(f"/api/v1/campaigns/{campaign['id']}/draw", headers=headers)
        assert drawn.status_code == 200
        result = drawn.json()
        assert result["status"] == CampaignStatus.COMPLETED.value
        assert len(result["winners"]) == 2
        assert len(notifier.sent) == 2
        assert len(announcer.announcements) == 1

        again = await client.post(f"/api/v1/campaigns/{campaign['id']}/draw", headers=headers)
        assert again.status_code == 400
        assert again.json()["error"] == "Already drawn"

        exported = await client.get(f"/api/v1/campaigns/{campaign['id']}/winners", headers=headers)
        assert exported.status_code == 200
        assert exported.json()["community"] == community.name
        assert len(exported.json()["winners"]) == 2

        csv_resp = await client.get(f"/api/v1/campaigns/{campaign['id']}/winners?format=csv", headers=headers)
        assert csv_resp.status_code == 200
        assert csv_resp.headers["content-type"].startswith("text/csv")
        assert f"{community.slug}-giveaway-winners.csv" in csv_resp.headers["content-disposition"]
        assert csv_resp.text.startswith('"Position","User ID"')

    async def test_create_validation(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        community = await factory.community(owner)
        headers = auth_headers(owner)

        no_prize = await client.post(
            "/api/v1/campaigns/giveaway", json=_campaign_body(community.id, prize=None), headers=headers
        )
        assert no_prize.status_code == 400
        assert no_prize.json()["error"] == "Prize required"

        past = await client.post(
            "/api/v1/campaigns/giveaway",
            json=_campaign_body(community.id, ends_at=(utcnow() - timedelta(hours=1)).isoformat()),
            headers=headers,
        )
        assert past.status_code == 400

        unknown = await client.post("/api/v1/campaigns/raffles", json=_campaign_body(community.id), headers=headers)
        assert unknown.status_code == 404

        other = await factory.user()
        not_owner = await client.post(
            "/api/v1/campaigns/giveaway", json=_campaign_body(community.id), headers=auth_headers(other)
        )
        assert not_owner.status_code == 403

    async def test_upcoming_and_presale_rules(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        community = await factory.community(owner)
        headers = auth_headers(owner)

        upcoming = await client.post(
            "/api/v1/campaigns/allowlist",
            json=_campaign_body(community.id, starts_at=(utcnow() + timedelta(hours=1)).isoformat()),
            headers=headers,
        )
        assert upcoming.status_code == 201
        assert upcoming.json()["status"] == "UPCOMING"

        presale = await client.post(
            "/api/v1/campaigns/presales",
            json=_campaign_body(
                community.id, capacity=100, max_per_wallet=5, unit_price="0.5", is_agent_eligible=True
            ),
            headers=headers,
        )
        assert presale.status_code == 201
        assert presale.json()["is_agent_eligible"] is False
        assert presale.json()["max_per_wallet"] == 5

    async def test_allowlist_fills_up(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        campaign = await factory.campaign(await factory.community(owner), CampaignKind.ALLOWLIST, capacity=1)

        first = await client.post(
            f"/api/v1/campaigns/{campaign.id}/enter",
            json={"wallet_address": "w-1"},
            headers=auth_headers(await factory.user()),
        )
        assert first.status_code == 201
        assert first.json()["entry_method"] == "FCFS"

        full = await client.post(
            f"/api/v1/campaigns/{campaign.id}/enter",
            json={"wallet_address": "w-2"},
            headers=auth_headers(await factory.user()),
        )
        assert full.status_code == 400
        assert full.json() == {"error": "No spots remaining", "remaining": 0}

        detail = (await client.get(f"/api/v1/campaigns/{campaign.id}")).json()
        assert detail["status"] == "CLOSED"
        assert detail["remaining"] == 0


class TestAgentFlow:
    async def test_register_challenge_solve_enter(self, client, factory, auth_headers) -> None:
        owner = await factory.user()
        member = await factory.user(x_handle="member")
        await factory.wallet(member, "member-sol", chain="SOL")
        community = await factory.community(owner)
        allowlist = await factory.campaign(community, CampaignKind.ALLOWLIST, capacity=10, is_agent_eligible=True)
        giveaway = await factory.campaign(community, CampaignKind.GIVEAWAY, is_agent_eligible=True)

        registered = await client.post(
            "/api/v1/agent", json={"agent_name": "clawbot"}, headers=auth_headers(member)
        )
        assert registered.status_code == 201
        api_key = registered.json()["api_key"]
        assert api_key.startswith("ccl_")
        agent_headers = {"X-Api-Key": api_key}

        duplicate = await client.post("/api/v1/agent", json={"agent_name": "again"}, headers=auth_headers(member))
        assert duplicate.status_code == 409

        eligible = (await client.get("/api/v1/agent/campaigns", headers=agent_headers)).json()
        assert {c["id"] for c in eligible} == {allowlist.id, giveaway.id}

        no_token = await client.post(f"/api/v1/campaigns/{allowlist.id}/enter", headers=agent_headers)
        assert no_token.status_code == 403
        assert no_token.json()["challenge_required"] is True

        challenge = (await client.post("/api/v1/agent/challenge", headers=agent_headers)).json()
        assert set(challenge["options"]) == {"A", "B", "C", "D"}

        solved = await client.post(
            "/api/v1/agent/challenge/solve",
            json={"challenge_id": challenge["challenge_id"], "answer": _answer_for(challenge["question"])},
            headers=agent_headers,
        )
        assert solved.status_code == 200
        token = solved.json()["challenge_token"]
        assert solved.json()["correct"] is True

        status = (await client.get("/api/v1/agent/challenge/status", headers=agent_headers)).json()
        assert status["can_request_challenge"] is False
        assert status["active_token"]["token"] == token

        entered = await client.post(
            f"/api/v1/campaigns/{allowlist.id}/enter",
            headers={**agent_headers, "X-Challenge-Token": token},
        )
        assert entered.status_code == 201
        entry = entered.json()
        assert entry["entered_by_agent"] is True
        assert entry["entry_method"] == "AGENT"
        assert entry["wallet_address"] == "member-sol"

        reused = await client.post(
            f"/api/v1/campaigns/{giveaway.id}/enter",
            headers={**agent_headers, "X-Challenge-Token": token},
        )
        assert reused.status_code == 403
        assert reused.json()["error"] == "Challenge token already used"

        cooldown = await client.post("/api/v1/agent/challenge", headers=agent_headers)
        assert cooldown.status_code == 429
        assert int(cooldown.headers["Retry-After"]) > 0
        assert cooldown.json()["retry_after_seconds"] > 0

        mine = (await client.get("/api/v1/agent", headers=auth_headers(member))).json()
        assert mine["name"] == "clawbot"
        assert mine["request_count"] >= 1
        assert mine["activity"][0]["action"] == "ENTER_ALLOWLIST"

    async def test_wrong_answer_and_key_rotation(self, client, factory, auth_headers) -> None:
        member = await factory.user()
        registered = await client.post(
            "/api/v1/agent", json={"agent_name": "bot"}, headers=auth_headers(member)
        )
        old_key = registered.json()["api_key"]

        challenge = (await client.post("/api/v1/agent/challenge", headers={"X-Api-Key": old_key})).json()
        right = _answer_for(challenge["question"])
        wrong = next(letter for letter in "ABCD" if letter != right)
        failed = await client.post(
            "/api/v1/agent/challenge/solve",
            json={"challenge_id": challenge["challenge_id"], "answer": wrong},
            headers={"X-Api-Key": old_key},
        )
        assert failed.status_code == 400
        assert failed.json()["correct"] is False

        rotated = await client.delete("/api/v1/agent", headers=auth_headers(member))
        assert rotated.status_code == 200
        new_key = rotated.json()["api_key"]
        assert new_key != old_key

        assert (await client.get("/api/v1/agent/challenge/status", headers={"X-Api-Key": old_key})).status_code == 401
        assert (await client.get("/api/v1/agent/challenge/status", headers={"X-Api-Key": new_key})).status_code == 200

        disabled = await client.patch("/api/v1/agent", json={"is_active": False}, headers=auth_headers(member))
        assert disabled.json()["is_active"] is False
        assert (await client.get("/api/v1/agent/challenge/status", headers={"X-Api-Key": new_key})).status_code == 401


class TestBilling:
    async def test_sol_quote(self, client, factory, auth_headers) -> None:
        user = await factory.user()
        resp = await client.post(
            "/api/v1/billing/crypto-pay", json={"plan": "pro", "chain": "sol"}, headers=auth_headers(user)
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["amount"] == "0.1299"
        assert data["lamports"] == 129_900_000
        assert data["amount_sats"] is None
        assert data["memo"].startswith("comm-")
        assert data["payment"]["status"] == "PENDING"
        assert data["payment"]["plan"] == "PRO"
        assert data["payment"]["expected_amount_raw"] == "129900000"

    async def test_btc_quote_is_salted(self, client, factory, auth_headers) -> None:
        user = await factory.user()
        resp = await client.post(
            "/api/v1/billing/crypto-pay", json={"plan": "ELITE", "chain": "BTC"}, headers=auth_headers(user)
        )
        assert resp.status_code == 200
        sats = resp.json()["amount_sats"]
        # 27.99 USD at 50,000 USD/BTC is 55,980 sats before the 1..999 sat salt.
        assert 55_981 <= sats <= 56_979
        assert resp.json()["price_used"] == "BTC @ $50,000.00"

    async def test_invalid_plan(self, client, factory, auth_headers) -> None:
        user = await factory.user()
        resp = await client.post(
            "/api/v1/billing/crypto-pay", json={"plan": "GOLD", "chain": "SOL"}, headers=auth_headers(user)
        )
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid plan"


class TestAdminSweep:
    async def test_draw_expired(self, client, factory, auth_headers, notifier) -> None:
        owner = await factory.user()
        admin = await factory.user(is_admin=True)
        campaign = await factory.campaign(
            await factory.community(owner),
            CampaignKind.GIVEAWAY,
            capacity=2,
            ends_at=utcnow() - timedelta(minutes=1),
        )
        for _ in range(3):
            await factory.entry(campaign, await factory.user())

        resp = await client.post("/api/v1/admin/campaigns/draw-expired", headers=auth_headers(admin))

        assert resp.status_code == 200
        assert resp.json() == {"campaigns_drawn": 1, "winners_drawn": 2, "results": {campaign.id: 2}}
        assert len(notifier.sent) == 2
