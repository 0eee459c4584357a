import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.exc import OperationalError

from main import app
from services.conversations import ConversationStore
from services.session_token import create_session_token


OWNER = "chat-owner"
OTHER = "chat-intruder"
OWNER_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(OWNER)['token']}"}
OTHER_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(OTHER)['token']}"}


@pytest.mark.asyncio
async def test_create_and_list_chats(chat_api):
    await chat_api.add_user(OWNER, credits=5, name="Ada")

    created = await chat_api.client.post("/chats", headers=OWNER_AUTH_HEADER)
    assert created.status_code == 201
    chat = created.json()["chat"]
    assert len(chat["id"]) == 24
    assert chat["ownerId"] == OWNER
    assert chat["displayName"] == "New chat"
    assert chat["turns"] == []

    listed = await chat_api.client.get("/chats", headers=OWNER_AUTH_HEADER)
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()["chats"]] == [chat["id"]]


@pytest.mark.asyncio
async def test_chats_are_invisible_to_other_users(chat_api):
    await chat_api.add_user(OWNER, credits=5)
    await chat_api.add_user(OTHER, credits=5)
    chat_id = await chat_api.add_chat(OWNER, turns=[("user", "secret"), ("assistant", "noted")])

    listed = await chat_api.client.get("/chats", headers=OTHER_AUTH_HEADER)
    assert listed.json()["chats"] == []

    fetched = await chat_api.client.get(f"/chats/{chat_id}", headers=OTHER_AUTH_HEADER)
    assert fetched.status_code == 404

    deleted = await chat_api.client.delete(f"/chats/{chat_id}", headers=OTHER_AUTH_HEADER)
    assert deleted.status_code == 404
    assert await chat_api.turns(chat_id) == [("user", "secret"), ("assistant", "noted")]


@pytest.mark.asyncio
async def test_fetch_returns_turns_in_order(chat_api):
    await chat_api.add_user(OWNER, credits=5)
    chat_id = await chat_api.add_chat(OWNER, turns=[("user", "one"), ("assistant", "two")])

    response = await chat_api.client.get(f"/chats/{chat_id}", headers=OWNER_AUTH_HEADER)

    assert response.status_code == 200
    turns = response.json()["chat"]["turns"]
    assert [(turn["role"], turn["content"]) for turn in turns] == [("user", "one"), ("assistant", "two")]
    assert turns[0]["timestamp"] < turns[1]["timestamp"]


@pytest.mark.asyncio
async def test_delete_removes_chat_and_turns(chat_api):
    await chat_api.add_user(OWNER, credits=5)
    chat_id = await chat_api.add_chat(OWNER, turns=[("user", "bye")])

    response = await chat_api.client.delete(f"/chats/{chat_id}", headers=OWNER_AUTH_HEADER)

    assert response.status_code == 200
    assert await chat_api.turns(chat_id) == []
    fetched = await chat_api.client.get(f"/chats/{chat_id}", headers=OWNER_AUTH_HEADER)
    assert fetched.status_code == 404


@pytest.mark.asyncio
async def test_create_chat_requires_known_user(chat_api):
    response = await chat_api.client.post("/chats", headers=OWNER_AUTH_HEADER)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_user_data_reports_credit_balance(chat_api):
    await chat_api.add_user(OWNER, credits=7, name="Ada")

    response = await chat_api.client.get("/users/data", headers=OWNER_AUTH_HEADER)

    assert response.status_code == 200
    assert response.json()["user"] == {
        "id": OWNER,
        "name": "Ada",
        "email": f"{OWNER}@example.com",
        "credits": 7,
    }


@pytest.mark.asyncio
async def test_published_images_lists_only_published_image_turns(chat_api):
    await chat_api.add_user(OWNER, credits=5)
    await chat_api.add_chat(
        OWNER,
        turns=[("assistant", "https://cdn.example/published.png")],
        is_image=True,
        is_published=True,
    )
    await chat_api.add_chat(
        OWNER,
        turns=[("assistant", "https://cdn.example/private.png")],
        is_image=True,
        is_published=False,
    )
    await chat_api.add_chat(OWNER, turns=[("assistant", "plain text")])

    response = await chat_api.client.get("/users/published-images")

    assert response.status_code == 200
    assert response.json()["images"] == [
        {"imageUrl": "https://cdn.example/published.png", "userName": OWNER},
    ]


@pytest.mark.asyncio
async def test_unexpected_database_error_is_rendered_as_json_envelope(chat_api, monkeypatch):
    await chat_api.add_user(OWNER, credits=5)

    async def broken_list(self, *args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    monkeypatch.setattr(ConversationStore, "list_for_owner", broken_list)

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as client:
        response = await client.get("/chats", headers=OWNER_AUTH_HEADER)

    assert response.status_code == 500
    assert response.headers["content-type"].startswith("application/json")
    body = response.json()
    assert body["success"] is False
    assert body["message"] == "Internal server error"
    assert body["code"] == "Unknown"


@pytest.mark.asyncio
async def test_unknown_route_and_wrong_method_use_json_envelope(chat_api):
    missing = await chat_api.client.get("/nope")
    assert missing.status_code == 404
    assert missing.json() == {"success": False, "message": "Cannot GET /nope", "code": "NotFound"}

    wrong_method = await chat_api.client.put("/messages/text", json={})
    assert wrong_method.status_code == 405
    assert wrong_method.json()["success"] is False
    assert wrong_method.json()["message"] == "Cannot PUT /messages/text"
    assert "POST" in wrong_method.headers["allow"]
