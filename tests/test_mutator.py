import unittest

from gymchat.client.fetcher import ConversationFetcher
from gymchat.client.mutator import MessageMutator
from gymchat.client.state import ConversationState
from gymchat.errors import MessageNotEditable, MutationFailed
from gymchat.schemas.message import DELETED_PLACEHOLDER, Message
from tests.fakes import make_service


class MessageMutatorTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.service = make_service()
        self.fetcher = ConversationFetcher(self.service)
        row = await self.service.insert_message("athlete-a", "coach-c", "original")
        self.message_id = row["id"]
        reply = await self.service.insert_message("coach-c", "athlete-a", "reply")
        self.reply_id = reply["id"]
        self.state = ConversationState([Message.from_row(row), Message.from_row(reply)])
        self.mutator = MessageMutator(self.service, self.state, "athlete-a")

    async def _fetch(self, my_id, peer_id):
        return (await self.fetcher.fetch(my_id, peer_id)).messages

    async def test_edit_round_trip_keeps_first_original(self):
        await self.mutator.edit(self.message_id, "new text")
        await self.mutator.edit(self.message_id, "newer text")

        fetched = {m.id: m for m in await self._fetch("athlete-a", "coach-c")}
        self.assertEqual(fetched[self.message_id].text, "newer text")
        self.assertEqual(fetched[self.message_id].edited_text, "original")
        self.assertTrue(fetched[self.message_id].is_edited)

        local = self.state.get(self.message_id)
        self.assertEqual(local.text, "newer text")
        self.assertEqual(local.edited_text, "original")

    async def test_image_only_message_keeps_empty_original_across_edits(self):
        row = await self.service.insert_message("athlete-a", "coach-c", "", image_url="http://test/storage/gym_uploads/p.png")
        self.state.append(Message.from_row(row))

        await self.mutator.edit(row["id"], "caption")
        await self.mutator.edit(row["id"], "better caption")

        self.assertEqual(self.service.fake_messages.rows[row["id"]]["edited_text"], "")
        local = self.state.get(row["id"])
        self.assertEqual(local.text, "better caption")
        self.assertEqual(local.edited_text, "")

    async def test_empty_edit_is_a_no_op(self):
        self.assertIsNone(await self.mutator.edit(self.message_id, "   "))
        self.assertEqual(self.service.fake_messages.rows[self.message_id]["text"], "original")

    async def test_cannot_edit_someone_elses_message(self):
        with self.assertRaises(MessageNotEditable):
            await self.mutator.edit(self.reply_id, "hijack")
        self.assertEqual(self.service.fake_messages.rows[self.reply_id]["text"], "reply")

    async def test_delete_for_me_hides_only_for_caller(self):
        await self.mutator.delete(self.message_id, for_everyone=False)

        self.assertIsNone(self.state.get(self.message_id))
        mine = [m.id for m in await self._fetch("athlete-a", "coach-c")]
        theirs = [m.id for m in await self._fetch("coach-c", "athlete-a")]
        self.assertNotIn(self.message_id, mine)
        self.assertIn(self.message_id, theirs)

    async def test_receiver_can_delete_for_me(self):
        await self.mutator.delete(self.reply_id, for_everyone=False)
        self.assertTrue(self.service.fake_messages.rows[self.reply_id]["deleted_for_receiver"])
        self.assertFalse(self.service.fake_messages.rows[self.reply_id]["is_deleted"])

    async def test_delete_for_everyone_shows_placeholder_and_blocks_edits(self):
        await self.mutator.delete(self.message_id, for_everyone=True)

        for viewer, peer in (("athlete-a", "coach-c"), ("coach-c", "athlete-a")):
            fetched = {m.id: m for m in await self._fetch(viewer, peer)}
            self.assertEqual(fetched[self.message_id].display_text, DELETED_PLACEHOLDER)
            self.assertEqual(fetched[self.message_id].text, "")
        self.assertTrue(self.state.get(self.message_id).is_deleted)

        with self.assertRaises(MessageNotEditable):
            await self.mutator.edit(self.message_id, "resurrect")

    async def test_backend_edit_rejection_after_remote_delete(self):
        await self.service.delete_message_for_everyone("athlete-a", self.message_id)
        # local copy is stale, the backend still refuses
        with self.assertRaises(MessageNotEditable):
            await self.mutator.edit(self.message_id, "too late")

    async def test_delete_failure_is_surfaced(self):
        self.service.fake_messages.failing.add("delete_message_for_everyone")
        with self.assertRaises(MutationFailed):
            await self.mutator.delete(self.message_id, for_everyone=True)
        self.assertFalse(self.state.get(self.message_id).is_deleted)
