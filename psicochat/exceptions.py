from typing import Optional


class ChatError(Exception):
    """Base class for every chat failure. `status_code` is what the HTTP surface answers with."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ChatError):
    """Rejected locally, before any request is sent."""

    status_code = 422


class EmptyMessageError(ValidationError):
    def __init__(self):
        super().__init__("Message text is empty")


class FileTypeNotAllowedError(ValidationError):
    def __init__(self, mime_type: Optional[str]):
        super().__init__(f"File type not allowed: {mime_type or 'unknown'}")
        self.mime_type = mime_type


class FileTooLargeError(ValidationError):
    def __init__(self, size_bytes: int, max_size_mb: int):
        super().__init__(f"File exceeds the maximum allowed size ({max_size_mb}MB)")
        self.size_bytes = size_bytes
        self.max_size_mb = max_size_mb


class InvalidRoleError(ValidationError):
    def __init__(self, role):
        super().__init__(f"Invalid role: {role!r}")
        self.role = role


class ChatNotActiveError(ValidationError):
    def __init__(self, chat_id: str, status: str):
        super().__init__(f"Chat {chat_id} is {status}; sending is disabled")
        self.chat_id = chat_id
        self.status = status


class InvalidTransitionError(ValidationError):
    def __init__(self, current: str, requested: str):
        super().__init__(f"Cannot change chat status from {current} to {requested}")
        self.current = current
        self.requested = requested


class ForbiddenPairingError(ChatError):
    """The caller is not allowed to act on this psychologist/patient pair."""

    status_code = 403


class NotMessageSenderError(ChatError):
    status_code = 403

    def __init__(self, message_id: str):
        super().__init__("Only the sender can delete a message")
        self.message_id = message_id


class NotAuthenticatedError(ChatError):
    status_code = 401

    def __init__(self):
        super().__init__("Not authenticated")


class RemoteError(ChatError):
    """Non-success answer (or unreadable body) from the consultation API."""

    status_code = 502

    def __init__(self, message: str, remote_status: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.remote_status = remote_status
        self.body = body
        if remote_status == 404:
            self.status_code = 404


class NetworkError(RemoteError):
    """The request never got an answer."""


class PartialLoadError(ChatError):
    """One part of a composite load failed; the rest is still usable."""

    def __init__(self, source: str, cause: Exception):
        super().__init__(f"Could not load {source}: {cause}")
        self.source = source
        self.cause = cause
