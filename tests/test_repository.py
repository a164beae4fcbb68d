import unittest

from psicochat.exceptions import ForbiddenPairingError, InvalidTransitionError, ValidationError
from psicochat.schemas.chat import ChatStatus, ChatThread
from psicochat.schemas.message import Message
from psicochat.schemas.user import Role
from psicochat.services.contacts import ContactResolver
from psicochat.services.repository import ChatRepository, other_party, sort_by_activity

from fakeapi import PATIENT, PSYCHOLOGIST, FakeConsultationApi, at, make_api, make_session


class RepositoryTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.backend = FakeConsultationApi()

    def repository_for(self, user):
        session = make_session(user)
        api = make_api(self.backend, session)
        return ChatRepository(api, session, ContactResolver(api))


class TestListThreads(RepositoryTestCase):

    async def test_sorted_by_last_activity_with_never_active_last(self):
        quiet = self.backend.add_chat("p1", "u2")
        older = self.backend.add_chat("p1", "u1", last_activity=at(5))
        newer = self.backend.add_chat("p1", "u3", last_activity=at(30))

        threads = await self.repository_for(PSYCHOLOGIST).list_threads()

        self.assertEqual([t.id for t in threads], [newer["id"], older["id"], quiet["id"]])

    async def test_drops_chats_without_the_user(self):
        mine = self.backend.add_chat("p1", "u1")
        self.backend.add_chat("p2", "u3")

        threads = await self.repository_for(PATIENT).list_threads("u1")

        self.assertEqual([t.id for t in threads], [mine["id"]])

    async def test_thread_fetches_once_then_uses_cache(self):
        chat = self.backend.add_chat("p1", "u1")
        repository = self.repository_for(PATIENT)

        first = await repository.thread(chat["id"])
        second = await repository.thread(chat["id"])

        self.assertEqual(first.id, second.id)
        self.assertEqual(self.backend.calls(), [("GET", f"/chat/{chat['id']}")])


class TestCreateOrGet(RepositoryTestCase):

    async def test_same_pair_yields_same_chat(self):
        repository = self.repository_for(PSYCHOLOGIST)

        first = await repository.create_or_get("p1", "u1")
        second = await repository.create_or_get("p1", "u1")

        self.assertEqual(first.id, second.id)
        self.assertEqual(first.status, ChatStatus.ACTIVE)
        self.assertEqual(len(self.backend.calls("POST")), 1)

    async def test_known_pair_needs_no_request(self):
        chat = self.backend.add_chat("p1", "u1")
        repository = self.repository_for(PATIENT)
        await repository.list_threads()
        self.backend.requests.clear()

        thread = await repository.create_or_get("p1", "u1")

        self.assertEqual(thread.id, chat["id"])
        self.assertEqual(self.backend.requests, [])

    async def test_patient_cannot_open_chat_with_another_psychologist(self):
        repository = self.repository_for(PATIENT)

        with self.assertRaises(ForbiddenPairingError):
            await repository.create_or_get("p2", "u1")
        self.assertEqual(self.backend.calls("POST"), [])

    async def test_patient_cannot_open_chat_as_someone_else(self):
        with self.assertRaises(ForbiddenPairingError):
            await self.repository_for(PATIENT).create_or_get("p1", "u2")
        self.assertEqual(self.backend.requests, [])

    async def test_psychologist_cannot_open_chat_with_unassigned_patient(self):
        with self.assertRaises(ForbiddenPairingError):
            await self.repository_for(PSYCHOLOGIST).create_or_get("p1", "u3")
        self.assertEqual(self.backend.calls("POST"), [])

    async def test_unresolvable_contacts_deny_the_pairing(self):
        self.backend.fail("GET", "/pacientes/u1", "network")

        with self.assertRaises(ForbiddenPairingError):
            await self.repository_for(PATIENT).create_or_get("p1", "u1")
        self.assertEqual(self.backend.calls("POST"), [])

    async def test_both_ids_are_required(self):
        repository = self.repository_for(PSYCHOLOGIST)
        for pair in (("", "u1"), ("p1", None)):
            with self.assertRaises(ValidationError):
                await repository.create_or_get(*pair)
        self.assertEqual(self.backend.requests, [])


class TestUpdateStatus(RepositoryTestCase):

    async def test_psychologist_archives_chat(self):
        chat = self.backend.add_chat("p1", "u1")
        repository = self.repository_for(PSYCHOLOGIST)

        thread = await repository.update_status(chat["id"], ChatStatus.ARCHIVED)

        self.assertEqual(thread.status, ChatStatus.ARCHIVED)
        self.assertEqual(repository.cached(chat["id"]).status, ChatStatus.ARCHIVED)
        self.assertEqual(self.backend.chats[chat["id"]]["estado"], "archivado")

    async def test_archived_chat_cannot_change_again(self):
        chat = self.backend.add_chat("p1", "u1", status="archivado")
        repository = self.repository_for(PSYCHOLOGIST)

        with self.assertRaises(InvalidTransitionError):
            await repository.update_status(chat["id"], ChatStatus.BLOCKED)
        self.assertEqual(self.backend.calls("PUT"), [])

    async def test_patient_cannot_change_status(self):
        chat = self.backend.add_chat("p1", "u1")

        with self.assertRaises(ForbiddenPairingError):
            await self.repository_for(PATIENT).update_status(chat["id"], "bloqueado")
        self.assertEqual(self.backend.calls("PUT"), [])


class TestThreadHelpers(unittest.TestCase):

    def setUp(self):
        self.thread = ChatThread.model_validate({
            "id": 9,
            "estado": "activo",
            "psicologo": {"id": "p1", "user": {"first_name": "Ana", "last_name": "García"}},
            "paciente": {"id": "u1", "first_name": "Juan", "last_name": "Soto"},
        })

    def test_other_party_depends_only_on_viewer_role(self):
        self.assertEqual(other_party(self.thread, Role.PSYCHOLOGIST).display_name(), "Juan Soto")
        self.assertEqual(other_party(self.thread, Role.PATIENT).display_name(), "Ana García")

    def test_ids_are_strings(self):
        self.assertEqual(self.thread.id, "9")
        self.assertEqual(self.thread.pair, ("p1", "u1"))

    def test_sort_is_stable_for_missing_activity(self):
        other = self.thread.model_copy(update={"id": "10"})
        self.assertEqual([t.id for t in sort_by_activity([self.thread, other])], ["9", "10"])

    def test_record_message_updates_summary(self):
        repository = ChatRepository(api=None, session=make_session(PATIENT), resolver=None)
        repository._upsert(self.thread)
        message = Message.model_validate({
            "id": "m1", "idChat": "9", "idEmisor": "u1", "tipoMensaje": "texto",
            "contenido": "Hola", "createdAt": at(1),
        })

        updated = repository.record_message("9", message)

        self.assertEqual(updated.last_message.preview, "Hola")
        self.assertEqual(updated.last_activity_at, message.created_at)


if __name__ == "__main__":
    unittest.main()
