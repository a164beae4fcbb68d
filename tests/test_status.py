import unittest

from psicochat.exceptions import InvalidTransitionError
from psicochat.schemas.chat import ChatStatus
from psicochat.services import status


class TestChatStatus(unittest.TestCase):

    def test_new_chats_start_active(self):
        self.assertEqual(status.INITIAL_STATUS, ChatStatus.ACTIVE)

    def test_active_can_be_archived_or_blocked(self):
        self.assertTrue(status.can_transition(ChatStatus.ACTIVE, ChatStatus.ARCHIVED))
        self.assertTrue(status.can_transition(ChatStatus.ACTIVE, ChatStatus.BLOCKED))
        self.assertEqual(status.allowed_transitions(ChatStatus.ACTIVE), [ChatStatus.ARCHIVED, ChatStatus.BLOCKED])

    def test_archived_and_blocked_are_terminal_here(self):
        for current in (ChatStatus.ARCHIVED, ChatStatus.BLOCKED):
            self.assertTrue(status.is_terminal(current))
            self.assertEqual(status.allowed_transitions(current), [])
            for requested in ChatStatus:
                self.assertFalse(status.can_transition(current, requested))

    def test_no_self_transition(self):
        with self.assertRaises(InvalidTransitionError):
            status.ensure_transition(ChatStatus.ACTIVE, ChatStatus.ACTIVE)

    def test_only_active_chats_accept_messages(self):
        self.assertTrue(status.accepts_messages(ChatStatus.ACTIVE))
        self.assertFalse(status.accepts_messages(ChatStatus.ARCHIVED))
        self.assertFalse(status.accepts_messages(ChatStatus.BLOCKED))

    def test_labels(self):
        self.assertEqual(ChatStatus("archivado").label, "Archivado")


if __name__ == "__main__":
    unittest.main()
