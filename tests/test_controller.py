import unittest

from psicochat.controller import PEER_CHAT_NOTICE, ChatController
from psicochat.exceptions import RemoteError
from psicochat.schemas.chat import ChatStatus
from psicochat.schemas.contact import Contact
from psicochat.schemas.user import Role
from psicochat.services.messages import OutgoingFile

from fakeapi import PATIENT, PSYCHOLOGIST, FakeConsultationApi, at, settings


class ControllerTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.backend = FakeConsultationApi()

    def controller_for(self, user):
        return ChatController.for_token(f"token-{user['id']}", user, transport=self.backend.transport,
                                        settings=settings())


class TestThreadList(ControllerTestCase):

    async def test_each_role_sees_the_other_party(self):
        chat = self.backend.add_chat("p1", "u1")
        self.backend.add_message(chat["id"], "u1", "Buenos días")

        [as_psychologist] = await self.controller_for(PSYCHOLOGIST).load_threads()
        [as_patient] = await self.controller_for(PATIENT).load_threads()

        self.assertEqual(as_psychologist.display_name, "Juan Soto")
        self.assertEqual(as_patient.display_name, "Ana García")
        self.assertEqual(as_patient.preview, "Buenos días")
        self.assertTrue(as_patient.own_last_message)
        self.assertFalse(as_psychologist.own_last_message)

    async def test_empty_list_flags_no_chats(self):
        controller = self.controller_for(PSYCHOLOGIST)

        items = await controller.load_threads()

        self.assertEqual(items, [])
        self.assertTrue(controller.has_no_chats)

    async def test_chat_without_messages_has_placeholder_preview(self):
        self.backend.add_chat("p1", "u1")

        [item] = await self.controller_for(PATIENT).load_threads()

        self.assertEqual(item.preview, "Sin mensajes")

    async def test_failure_becomes_notice_and_can_be_retried(self):
        self.backend.add_chat("p1", "u1")
        self.backend.fail("GET", "/chat", 500)
        controller = self.controller_for(PATIENT)

        self.assertIsNone(await controller.load_threads())
        self.assertIsInstance(controller.last_error, RemoteError)
        [notice] = controller.take_notices()
        self.assertEqual(notice.level, "error")
        self.assertTrue(notice.text.startswith("Error al cargar los chats"))

        self.backend.failures.clear()
        items = await controller.retry()
        self.assertEqual(len(items), 1)
        self.assertIsNone(controller.last_error)


class TestOpenChat(ControllerTestCase):

    async def test_psychologist_header_offers_status_actions(self):
        chat = self.backend.add_chat("p1", "u1")
        controller = self.controller_for(PSYCHOLOGIST)

        detail = await controller.open_chat(chat["id"])

        self.assertEqual(controller.active_chat_id, chat["id"])
        self.assertEqual(detail.header.display_name, "Juan Soto")
        self.assertEqual(detail.header.status_label, "Activo")
        self.assertTrue(detail.header.can_change_status)
        self.assertEqual(detail.header.status_actions, [ChatStatus.ARCHIVED, ChatStatus.BLOCKED])
        self.assertTrue(controller.compose_enabled)

    async def test_patient_header_has_no_status_actions(self):
        chat = self.backend.add_chat("p1", "u1")

        detail = await self.controller_for(PATIENT).open_chat(chat["id"])

        self.assertFalse(detail.header.can_change_status)
        self.assertEqual(detail.header.status_actions, [])

    async def test_compose_disabled_for_both_roles_when_not_active(self):
        chat = self.backend.add_chat("p1", "u1", status="bloqueado")
        for user in (PSYCHOLOGIST, PATIENT):
            controller = self.controller_for(user)
            detail = await controller.open_chat(chat["id"])
            self.assertFalse(controller.compose_enabled)
            self.assertFalse(detail.header.compose_enabled)

    async def test_message_views_name_the_sender(self):
        chat = self.backend.add_chat("p1", "u1")
        mine = self.backend.add_message(chat["id"], "u1", "Hola", created_at=at(1))
        theirs = self.backend.add_message(chat["id"], "p1", "Hola Juan", created_at=at(2))

        detail = await self.controller_for(PATIENT).open_chat(chat["id"])

        views = {v.id: v for v in detail.messages}
        self.assertEqual(views[mine["id"]].sender_name, "Juan Soto")
        self.assertTrue(views[mine["id"]].can_delete)
        self.assertEqual(views[theirs["id"]].sender_name, "Ana García")
        self.assertFalse(views[theirs["id"]].is_own)

    async def test_missing_chat_is_reported(self):
        controller = self.controller_for(PATIENT)

        self.assertIsNone(await controller.open_chat("c404"))
        self.assertEqual(controller.last_error.status_code, 404)


class TestContactsAndCreation(ControllerTestCase):

    async def test_partial_contacts_add_warning(self):
        self.backend.fail("GET", "/psicologos", 500)
        controller = self.controller_for(PSYCHOLOGIST)

        contacts = await controller.load_contacts()

        self.assertEqual([c.id for c in contacts], ["u1", "u2"])
        self.assertEqual([n.level for n in controller.take_notices()], ["warning"])

    async def test_psychologist_to_psychologist_is_not_available_yet(self):
        controller = self.controller_for(PSYCHOLOGIST)

        thread = await controller.select_contact(Contact(id="p2", display_name="Luis Pérez", role=Role.PSYCHOLOGIST))

        self.assertIsNone(thread)
        [notice] = controller.take_notices()
        self.assertEqual((notice.level, notice.text), ("info", PEER_CHAT_NOTICE))
        self.assertEqual(self.backend.requests, [])

    async def test_peer_notice_clears_earlier_error(self):
        controller = self.controller_for(PSYCHOLOGIST)
        self.backend.fail("GET", "/chat", 500)
        await controller.load_threads()
        self.assertIsNotNone(controller.last_error)

        thread = await controller.select_contact(Contact(id="p2", display_name="Luis Pérez", role=Role.PSYCHOLOGIST))

        self.assertIsNone(thread)
        self.assertIsNone(controller.last_error)

    async def test_patient_starts_chat_with_psychologist(self):
        controller = self.controller_for(PATIENT)

        thread = await controller.select_contact(Contact(id="p1", display_name="Ana García", role=Role.PSYCHOLOGIST))

        self.assertEqual(thread.pair, ("p1", "u1"))
        self.assertEqual(controller.active_chat_id, thread.id)
        self.assertEqual(controller.take_notices()[-1].text, "Conversación iniciada")

    async def test_forbidden_pairing_is_reported_not_raised(self):
        controller = self.controller_for(PATIENT)

        self.assertIsNone(await controller.create_or_get("p2", "u1"))
        self.assertEqual(controller.last_error.status_code, 403)
        self.assertEqual(self.backend.calls("POST"), [])


class TestSending(ControllerTestCase):

    async def test_send_text_reloads_messages(self):
        chat = self.backend.add_chat("p1", "u1")
        controller = self.controller_for(PATIENT)
        await controller.open_chat(chat["id"])

        message = await controller.send_text(chat["id"], "Hola")

        self.assertEqual(message.content, "Hola")
        self.assertEqual(self.backend.calls()[-1], ("GET", f"/chat/{chat['id']}/messages"))
        self.assertFalse(controller.sending)
        [item] = controller.thread_items()
        self.assertEqual(item.preview, "Hola")

    async def test_invalid_file_never_reaches_backend(self):
        chat = self.backend.add_chat("p1", "u1")
        controller = self.controller_for(PATIENT)

        result = await controller.send_file(chat["id"], OutgoingFile("virus.exe", b"MZ", "application/x-msdownload"))

        self.assertIsNone(result)
        self.assertEqual(controller.last_error.status_code, 422)
        self.assertFalse(controller.uploading)
        self.assertEqual(self.backend.requests, [])

    async def test_delete_message_of_open_chat(self):
        chat = self.backend.add_chat("p1", "u1")
        message = self.backend.add_message(chat["id"], "u1", "ups")
        controller = self.controller_for(PATIENT)
        await controller.open_chat(chat["id"])

        self.assertEqual(controller.chat_of_message(message["id"]), chat["id"])
        self.assertTrue(await controller.delete_message(chat["id"], message["id"]))
        self.assertEqual(controller.detail(chat["id"]).messages, [])

    async def test_change_status_disables_compose(self):
        chat = self.backend.add_chat("p1", "u1")
        controller = self.controller_for(PSYCHOLOGIST)
        await controller.open_chat(chat["id"])

        thread = await controller.change_status(chat["id"], ChatStatus.ARCHIVED)

        self.assertEqual(thread.status, ChatStatus.ARCHIVED)
        self.assertFalse(controller.compose_enabled)
        self.assertIsNone(await controller.send_text(chat["id"], "¿Hola?"))
        self.assertEqual(self.backend.calls("POST"), [])

    async def test_unknown_status_is_rejected_without_request(self):
        chat = self.backend.add_chat("p1", "u1")
        controller = self.controller_for(PSYCHOLOGIST)

        self.assertIsNone(await controller.change_status(chat["id"], "borrado"))
        self.assertEqual(controller.last_error.status_code, 422)
        self.assertEqual(self.backend.calls("PUT"), [])


class TestLogout(ControllerTestCase):

    async def test_logout_clears_everything(self):
        chat = self.backend.add_chat("p1", "u1")
        controller = self.controller_for(PATIENT)
        await controller.open_chat(chat["id"])

        await controller.logout()

        self.assertFalse(controller.session.is_authenticated)
        self.assertEqual(controller.stores, {})
        self.assertIsNone(controller.active_thread)
        self.assertIsNone(await controller.load_threads())
        self.assertEqual(controller.last_error.status_code, 401)


if __name__ == "__main__":
    unittest.main()
