"""HTTP surface: health, directory reads and the payment integration hook."""

from __future__ import annotations

from app.models.enums import Privacy


def test_health_and_root(client) -> None:
    health = client.get("/health").json()
    assert health["status"] == "ok"
    assert "environment" in health
    assert client.get("/api/").json() == {"message": "Welcome to the Beacon Relay API"}


def test_public_rooms_lists_live_public_rooms_only(client, context) -> None:
    directory = context.directory
    directory.create_room("open")
    directory.create_room("closed", privacy=Privacy.PRIVATE)
    directory.create_room("idle")
    directory.update_live("open", live=True, viewers=4, title="Show")
    directory.update_live("closed", live=True)

    response = client.get("/api/rooms/public")

    assert response.status_code == 200
    assert response.json() == [{"name": "open", "viewers": 4, "title": "Show", "live": True}]


def test_room_info(client, context) -> None:
    assert client.get("/api/rooms/ghost").status_code == 404

    context.directory.claim("club", "pw", Privacy.PRIVATE)
    context.directory.update_vip_required("club", True)

    body = client.get("/api/rooms/club").json()
    assert body["name"] == "club"
    assert body["privacy"] == "private"
    assert body["vipRequired"] is True
    assert body["hasOwnerPassword"] is True
    assert "ownerPasswordHash" not in body
    assert "vipCodes" not in body


def test_permanent_hook_requires_secret(client, context) -> None:
    context.directory.create_room("paid")

    assert client.post("/api/rooms/paid/permanent").status_code == 403
    assert (
        client.post("/api/rooms/paid/permanent", headers={"X-Integration-Secret": "wrong"}).status_code
        == 403
    )

    response = client.post("/api/rooms/paid/permanent", headers={"X-Integration-Secret": "s3cret"})
    assert response.status_code == 200
    assert response.json() == {"name": "paid", "permanent": True}
    assert context.directory.get("paid").permanent is True

    assert (
        client.post("/api/rooms/ghost/permanent", headers={"X-Integration-Secret": "s3cret"}).status_code
        == 404
    )


def test_permanent_room_cannot_be_claimed_by_strangers(client, context) -> None:
    context.directory.create_room("paid")
    client.post("/api/rooms/paid/permanent", headers={"X-Integration-Secret": "s3cret"})

    outcome = context.directory.claim("paid", "mine")

    assert outcome.ok is False
    assert outcome.error.value == "ALREADY_EXISTS"


def test_permanent_hook_disabled_without_secret(client, context) -> None:
    context.settings.integration_secret = None
    context.directory.create_room("paid")

    response = client.post("/api/rooms/paid/permanent", headers={"X-Integration-Secret": "s3cret"})

    assert response.status_code == 503
