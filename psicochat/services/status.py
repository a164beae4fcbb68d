"""Chat status lifecycle: every chat starts active and can only be archived or blocked from here."""
from typing import Dict, FrozenSet, List

from psicochat.exceptions import InvalidTransitionError
from psicochat.schemas.chat import ChatStatus

INITIAL_STATUS = ChatStatus.ACTIVE

# Archived and blocked chats may be reactivated server-side, never from this client
TRANSITIONS: Dict[ChatStatus, FrozenSet[ChatStatus]] = {
    ChatStatus.ACTIVE: frozenset({ChatStatus.ARCHIVED, ChatStatus.BLOCKED}),
    ChatStatus.ARCHIVED: frozenset(),
    ChatStatus.BLOCKED: frozenset(),
}


def can_transition(current: ChatStatus, requested: ChatStatus) -> bool:
    return requested in TRANSITIONS[current]


def ensure_transition(current: ChatStatus, requested: ChatStatus) -> None:
    if not can_transition(current, requested):
        raise InvalidTransitionError(current.value, requested.value)


def allowed_transitions(current: ChatStatus) -> List[ChatStatus]:
    # Archive before block, the order the actions are offered in
    return [s for s in (ChatStatus.ARCHIVED, ChatStatus.BLOCKED) if s in TRANSITIONS[current]]


def accepts_messages(status: ChatStatus) -> bool:
    return status == ChatStatus.ACTIVE


def is_terminal(status: ChatStatus) -> bool:
    return not TRANSITIONS[status]
