from __future__ import annotations


class CoordinatorError(Exception):
    """Base class for rejected actions. Never fatal to a room or connection.

    ``notify_actor`` decides whether the sender gets an ``action-error``
    back or the event is dropped silently.
    """

    code = "error"
    notify_actor = False

    def __init__(self, message: str = "", notify_actor: bool | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        if notify_actor is not None:
            self.notify_actor = notify_actor


class NotAuthorized(CoordinatorError):
    code = "not_authorized"
    notify_actor = True


class NotFound(CoordinatorError):
    code = "not_found"


class InvalidState(CoordinatorError):
    code = "invalid_state"


class DuplicateAction(CoordinatorError):
    code = "duplicate_action"
    notify_actor = True


class InvalidPayload(CoordinatorError):
    code = "invalid_payload"
