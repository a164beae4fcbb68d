import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, List

from psicochat.exceptions import ChatError, PartialLoadError
from psicochat.schemas.contact import Contact
from psicochat.schemas.user import Participant, Role
from psicochat.services.chat_api import ChatApi

logger = logging.getLogger(__name__)


@dataclass
class ContactResolution:
    contacts: List[Contact] = field(default_factory=list)
    errors: List[PartialLoadError] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.errors)


def _contact(participant: Participant, role: Role, default_name: str) -> Contact:
    return Contact(
        id=participant.id,
        display_name=participant.display_name(default=default_name),
        email=participant.email,
        role=role,
    )


class ContactResolver:
    """Who the current user may start a conversation with.

    Psychologists see their assigned patients plus every other psychologist;
    patients see only their assigned psychologist. A failing sub-fetch is logged
    and reported on the result, never raised, so one broken endpoint does not
    blank the whole list.
    """

    def __init__(self, api: ChatApi):
        self.api = api

    async def resolve(self, user_id: str, role: Any) -> ContactResolution:
        role = Role.parse(role)
        user_id = str(user_id)
        if role == Role.PSYCHOLOGIST:
            return await self._for_psychologist(user_id)
        return await self._for_patient(user_id)

    async def available_contacts(self, user_id: str, role: Any) -> List[Contact]:
        resolution = await self.resolve(user_id, role)
        return resolution.contacts

    async def _for_psychologist(self, user_id: str) -> ContactResolution:
        resolution = ContactResolution()
        patients, psychologists = await asyncio.gather(
            self.api.list_patients_of(user_id),
            self.api.list_psychologists(),
            return_exceptions=True,
        )

        if isinstance(patients, BaseException):
            self._record(resolution, "assigned patients", patients)
        else:
            resolution.contacts.extend(_contact(p, Role.PATIENT, "Paciente") for p in patients)

        if isinstance(psychologists, BaseException):
            self._record(resolution, "psychologists", psychologists)
        else:
            resolution.contacts.extend(
                _contact(p, Role.PSYCHOLOGIST, "Psicólogo") for p in psychologists if p.id != user_id
            )

        logger.info(f"Resolved {len(resolution.contacts)} contacts for psychologist {user_id}")
        return resolution

    async def _for_patient(self, user_id: str) -> ContactResolution:
        resolution = ContactResolution()
        try:
            patient = await self.api.get_patient(user_id)
        except ChatError as e:
            self._record(resolution, "patient record", e)
            return resolution

        if not patient.assigned_psychologist_id:
            logger.info(f"Patient {user_id} has no assigned psychologist")
            return resolution

        try:
            psychologist = await self.api.get_psychologist(patient.assigned_psychologist_id)
        except ChatError as e:
            self._record(resolution, "assigned psychologist", e)
            return resolution

        resolution.contacts.append(_contact(psychologist, Role.PSYCHOLOGIST, "Mi Psicólogo"))
        return resolution

    def _record(self, resolution: ContactResolution, source: str, error: BaseException) -> None:
        if not isinstance(error, ChatError):
            raise error
        logger.warning(f"Continuing without {source}: {error}")
        resolution.errors.append(PartialLoadError(source, error))
