# concisely/errors.py
from __future__ import annotations


class ConciselyError(Exception):
    """Base class for domain errors; ``status_code`` is what the API answers with."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(ConciselyError):
    status_code = 404


class AlreadyExistsError(ConciselyError):
    status_code = 409


class InvalidStatusTransition(ConciselyError):
    status_code = 409

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move newsletter from '{current}' to '{target}'")
        self.current = current
        self.target = target


class ValidationFailed(ConciselyError):
    status_code = 400


class SendInProgress(ConciselyError):
    status_code = 409

    def __init__(self, newsletter_id: int) -> None:
        super().__init__(f"Newsletter {newsletter_id} is already being sent")
        self.newsletter_id = newsletter_id
