import unittest

from gymchat.errors import MessageNotEditable, MessageNotFound, PermissionDenied
from gymchat.repositories.message_repository import MessageRepository
from gymchat.repositories.profile_repository import ProfileRepository
from tests.mongo import mock_database


class MessageRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.db = mock_database()
        self.repo = MessageRepository(self.db)
        await self.repo.ensure_indexes()

    async def test_insert_sets_default_flags(self):
        row = await self.repo.insert("athlete-a", "coach-c", "hi", client_message_id="abc")

        stored = await self.repo.get(row["id"])
        self.assertEqual(stored["text"], "hi")
        self.assertEqual(stored["client_message_id"], "abc")
        self.assertFalse(stored["is_read"])
        self.assertFalse(stored["is_deleted"])
        self.assertIsNone(stored["edited_text"])
        self.assertNotIn("_id", stored)

    async def test_fetch_is_newest_first_and_limited(self):
        for text in ("1", "2", "3"):
            await self.repo.insert("athlete-a", "coach-c", text)
        await self.repo.insert("athlete-b", "coach-c", "not mine")

        rows = await self.repo.fetch_for_user("athlete-a", limit=2)

        self.assertEqual([r["text"] for r in rows], ["3", "2"])

    async def test_edit_twice_keeps_first_original(self):
        row = await self.repo.insert("athlete-a", "coach-c", "original")

        await self.repo.edit_message("athlete-a", row["id"], "first edit")
        edited = await self.repo.edit_message("athlete-a", row["id"], "second edit")

        self.assertEqual(edited["text"], "second edit")
        self.assertEqual(edited["edited_text"], "original")
        self.assertIsNotNone(edited["edited_at"])

    async def test_edit_stores_dollar_text_verbatim(self):
        row = await self.repo.insert("athlete-a", "coach-c", "price?")
        edited = await self.repo.edit_message("athlete-a", row["id"], "$text")
        self.assertEqual(edited["text"], "$text")
        self.assertEqual(edited["edited_text"], "price?")

    async def test_edit_of_image_only_message_keeps_empty_original(self):
        row = await self.repo.insert("athlete-a", "coach-c", "", image_url="http://x/p.png")
        await self.repo.edit_message("athlete-a", row["id"], "caption")
        edited = await self.repo.edit_message("athlete-a", row["id"], "better caption")
        self.assertEqual(edited["edited_text"], "")

    async def test_edit_rejections(self):
        row = await self.repo.insert("athlete-a", "coach-c", "original")

        with self.assertRaises(PermissionDenied):
            await self.repo.edit_message("coach-c", row["id"], "hijack")
        with self.assertRaises(MessageNotFound):
            await self.repo.edit_message("athlete-a", f"{999:024x}", "ghost")
        with self.assertRaises(MessageNotFound):
            await self.repo.edit_message("athlete-a", "not-an-object-id", "ghost")

        await self.repo.delete_message_for_everyone("athlete-a", row["id"])
        with self.assertRaises(MessageNotEditable):
            await self.repo.edit_message("athlete-a", row["id"], "back")
        self.assertEqual((await self.repo.get(row["id"]))["text"], "")

    async def test_delete_for_everyone_clears_content(self):
        row = await self.repo.insert("athlete-a", "coach-c", "secret", audio_url="http://x/a.webm")
        await self.repo.edit_message("athlete-a", row["id"], "still secret")

        with self.assertRaises(PermissionDenied):
            await self.repo.delete_message_for_everyone("coach-c", row["id"])
        deleted = await self.repo.delete_message_for_everyone("athlete-a", row["id"])

        self.assertTrue(deleted["is_deleted"])
        self.assertIsNotNone(deleted["deleted_at"])
        self.assertEqual(deleted["text"], "")
        self.assertIsNone(deleted["audio_url"])
        self.assertIsNone(deleted["edited_text"])

    async def test_delete_for_me_sets_the_callers_flag(self):
        row = await self.repo.insert("athlete-a", "coach-c", "hi")

        by_receiver = await self.repo.delete_message_for_me("coach-c", row["id"])
        self.assertTrue(by_receiver["deleted_for_receiver"])
        self.assertFalse(by_receiver["deleted_for_sender"])

        by_sender = await self.repo.delete_message_for_me("athlete-a", row["id"])
        self.assertTrue(by_sender["deleted_for_sender"])
        self.assertFalse(by_sender["is_deleted"])

        with self.assertRaises(PermissionDenied):
            await self.repo.delete_message_for_me("athlete-b", row["id"])

    async def test_delete_conversation_only_touches_the_pair(self):
        await self.repo.insert("athlete-a", "coach-c", "one")
        await self.repo.insert("coach-c", "athlete-a", "two")
        kept = await self.repo.insert("athlete-b", "coach-c", "other")

        self.assertEqual(await self.repo.delete_conversation("athlete-a", "coach-c"), 2)
        self.assertEqual(await self.repo.fetch_for_user("athlete-a"), [])
        self.assertIsNotNone(await self.repo.get(kept["id"]))

    async def test_read_state_and_counts(self):
        for text in ("1", "2"):
            await self.repo.insert("athlete-a", "coach-c", text)
        await self.repo.insert("athlete-b", "coach-c", "3")

        self.assertEqual(await self.repo.count_unread("coach-c"), 3)
        self.assertEqual(await self.repo.count_unread("coach-c", "athlete-a"), 2)
        self.assertEqual(
            await self.repo.count_unread_by_sender("coach-c", ["athlete-a", "athlete-b", "athlete-z"]),
            {"athlete-a": 2, "athlete-b": 1, "athlete-z": 0},
        )

        self.assertEqual(await self.repo.mark_read("coach-c", "athlete-a"), 2)
        self.assertEqual(await self.repo.mark_read("coach-c", "athlete-a"), 0)
        self.assertEqual(await self.repo.count_unread("coach-c"), 1)


class ProfileRepositoryTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.db = mock_database()
        profiles = self.db.raw("profiles")
        profiles.insert_many(
            [
                {"_id": "coach-c", "name": "Coach", "email": "c@example.com", "role": "COACH"},
                {"_id": "athlete-b", "name": "Zed", "email": "z@example.com", "role": "ATHLETE", "selected_coach_id": "coach-c"},
                {"_id": "athlete-a", "name": "Adam", "email": "a@example.com", "role": "ATHLETE", "selected_coach_id": "coach-c"},
                {"_id": "athlete-x", "name": "Xena", "email": "x@example.com", "role": "ATHLETE", "selected_coach_id": "coach-q"},
            ]
        )
        self.repo = ProfileRepository(self.db)

    async def test_get_by_auth_user_id(self):
        profile = await self.repo.get("coach-c")
        self.assertEqual(profile["id"], "coach-c")
        self.assertIsNone(await self.repo.get("nobody"))

    async def test_athletes_of_a_coach_sorted_by_name(self):
        athletes = await self.repo.list_athletes_for_coach("coach-c")
        self.assertEqual([a["id"] for a in athletes], ["athlete-a", "athlete-b"])
