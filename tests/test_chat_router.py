import base64
import time
import unittest

import jwt
from fastapi import FastAPI, Header
from fastapi.testclient import TestClient

from gymchat.config import get_settings
from gymchat.main import register_error_handlers
from gymchat.routers.chat import router as chat_router
from gymchat.schemas.profile import Profile
from gymchat.utils.dependencies import get_chat_service, get_current_user
from tests.fakes import make_service


def _token(user_id: str) -> str:
    settings = get_settings()
    claims = {"sub": user_id, "exp": int(time.time()) + 300}
    if settings.jwt_audience:
        claims["aud"] = settings.jwt_audience
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


class ChatRouterTests(unittest.TestCase):
    def setUp(self):
        self.service = make_service()
        profiles = self.service._profile_repo.profiles

        async def _current_user(x_user: str = Header("athlete-a")) -> Profile:
            return Profile.from_row(profiles[x_user])

        app = FastAPI()
        register_error_handlers(app)
        app.include_router(chat_router)
        app.dependency_overrides[get_chat_service] = lambda: self.service
        app.dependency_overrides[get_current_user] = _current_user
        self.client = TestClient(app)
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)

    def _send(self, user, receiver, text="", **extra):
        return self.client.post(
            "/messages", json={"receiver_id": receiver, "text": text, **extra}, headers={"X-User": user}
        )

    def test_send_and_fetch_conversation(self):
        created = self._send("athlete-a", "coach-c", "hi coach")
        self.assertEqual(created.status_code, 201)
        self._send("athlete-b", "coach-c", "other athlete")
        self._send("coach-c", "athlete-a", "hi adam")

        response = self.client.get("/messages/coach-c", headers={"X-User": "athlete-a"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual([m["text"] for m in response.json()], ["hi coach", "hi adam"])

    def test_empty_send_is_rejected(self):
        response = self._send("athlete-a", "coach-c", "   ")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.service.fake_messages.rows, {})

    def test_audio_upload_through_api(self):
        clip = base64.b64encode(b"voice-note").decode("ascii")
        response = self._send("athlete-a", "coach-c", audio_base64=clip)
        self.assertEqual(response.status_code, 201)
        self.assertIn("/storage/audio-messages/athlete-a/", response.json()["audio_url"])

    def test_unread_badge_and_mark_read(self):
        for text in ("1", "2", "3"):
            self._send("athlete-a", "coach-c", text)

        coach = {"X-User": "coach-c"}
        self.assertEqual(self.client.get("/messages/badge", headers=coach).json(), {"count": 3})
        self.assertEqual(self.client.get("/messages/unread?from_user_id=athlete-b", headers=coach).json(), {"count": 0})
        athletes = self.client.get("/messages/athletes", headers=coach).json()
        self.assertEqual([(a["id"], a["unread_count"]) for a in athletes], [("athlete-a", 3), ("athlete-b", 0)])

        marked = self.client.post("/messages/mark_read", json={"from_user_id": "athlete-a"}, headers=coach)
        self.assertEqual(marked.json(), {"updated": 3})
        self.assertEqual(self.client.get("/messages/badge", headers=coach).json(), {"count": 0})

    def test_athletes_list_is_coach_only(self):
        response = self.client.get("/messages/athletes", headers={"X-User": "athlete-a"})
        self.assertEqual(response.status_code, 403)

    def test_edit_and_delete_permissions(self):
        message_id = self._send("athlete-a", "coach-c", "original").json()["id"]

        forbidden = self.client.patch(f"/messages/{message_id}", json={"new_text": "nope"}, headers={"X-User": "coach-c"})
        self.assertEqual(forbidden.status_code, 403)

        edited = self.client.patch(f"/messages/{message_id}", json={"new_text": "changed"}, headers={"X-User": "athlete-a"})
        self.assertEqual(edited.json()["text"], "changed")
        self.assertEqual(edited.json()["edited_text"], "original")

        deleted = self.client.delete(f"/messages/{message_id}?for_everyone=true", headers={"X-User": "athlete-a"})
        self.assertTrue(deleted.json()["is_deleted"])

        again = self.client.patch(f"/messages/{message_id}", json={"new_text": "back"}, headers={"X-User": "athlete-a"})
        self.assertEqual(again.status_code, 409)

    def test_unknown_message_is_404(self):
        response = self.client.delete("/messages/000000000000000000000999", headers={"X-User": "athlete-a"})
        self.assertEqual(response.status_code, 404)

    def test_backend_outage_is_503(self):
        self.service.fake_messages.failing.add("fetch_for_user")
        response = self.client.get("/messages/coach-c", headers={"X-User": "athlete-a"})
        self.assertEqual(response.status_code, 503)

    def test_clear_conversation(self):
        self._send("athlete-a", "coach-c", "one")
        self._send("coach-c", "athlete-a", "two")
        response = self.client.delete("/messages/conversation/coach-c", headers={"X-User": "athlete-a"})
        self.assertEqual(response.json(), {"deleted": 2})

    def test_websocket_forwards_inserts_for_receiver(self):
        with self.client.websocket_connect(f"/messages/ws/coach-c?token={_token('coach-c')}") as ws:
            self._send("athlete-a", "coach-c", "realtime hi")
            event = ws.receive_json()
        self.assertEqual(event["event"], "INSERT")
        self.assertEqual(event["new"]["text"], "realtime hi")
        self.assertEqual(event["new"]["sender_id"], "athlete-a")
