"""Typed outcomes for registration operations.

Lifecycle operations never raise for business-rule rejections; they return
``Ok(value)`` or ``Err(kind, message, **context)`` and the HTTP layer maps
the kind to a status code.
"""
from datetime import datetime
from enum import Enum


class ErrorKind(str, Enum):
    READONLY_GAME = 'ReadonlyGame'
    USER_BLOCKED = 'UserBlocked'
    REGISTRATION_NOT_YET_OPEN = 'RegistrationNotYetOpen'
    ALREADY_REGISTERED = 'AlreadyRegistered'
    NOT_REGISTERED = 'NotRegistered'
    UNREGISTER_DEADLINE_PASSED = 'UnregisterDeadlinePassed'
    DUPLICATE_GUEST_NAME = 'DuplicateGuestName'
    CAPACITY_EXCEEDED = 'CapacityExceeded'
    GAME_NOT_FOUND = 'GameNotFound'
    REGISTRATION_NOT_FOUND = 'RegistrationNotFound'
    ROSTER_LOCKED = 'RosterLocked'
    NOT_AUTHORIZED = 'NotAuthorized'
    INVALID_GUEST_NAME = 'InvalidGuestName'


HTTP_STATUS = {
    ErrorKind.READONLY_GAME: 403,
    ErrorKind.USER_BLOCKED: 403,
    ErrorKind.REGISTRATION_NOT_YET_OPEN: 403,
    ErrorKind.UNREGISTER_DEADLINE_PASSED: 403,
    ErrorKind.NOT_AUTHORIZED: 403,
    ErrorKind.GAME_NOT_FOUND: 404,
    ErrorKind.REGISTRATION_NOT_FOUND: 404,
    ErrorKind.NOT_REGISTERED: 404,
    ErrorKind.ALREADY_REGISTERED: 409,
    ErrorKind.DUPLICATE_GUEST_NAME: 409,
    ErrorKind.CAPACITY_EXCEEDED: 409,
    ErrorKind.ROSTER_LOCKED: 409,
    ErrorKind.INVALID_GUEST_NAME: 400,
}

DEFAULT_MESSAGES = {
    ErrorKind.READONLY_GAME: 'Registration for this game is closed',
    ErrorKind.USER_BLOCKED: 'You are blocked from registering for games',
    ErrorKind.REGISTRATION_NOT_YET_OPEN: 'Registration is not open yet',
    ErrorKind.ALREADY_REGISTERED: 'User already registered for this game',
    ErrorKind.NOT_REGISTERED: 'You are not registered for this game',
    ErrorKind.UNREGISTER_DEADLINE_PASSED: 'The deadline to unregister from this game has passed',
    ErrorKind.DUPLICATE_GUEST_NAME: 'This guest is already registered for this game',
    ErrorKind.CAPACITY_EXCEEDED: 'Game is full',
    ErrorKind.GAME_NOT_FOUND: 'Game not found',
    ErrorKind.REGISTRATION_NOT_FOUND: 'Registration not found',
    ErrorKind.ROSTER_LOCKED: 'Cannot modify participants after payment requests have been sent',
    ErrorKind.NOT_AUTHORIZED: 'You are not authorized to manage this game',
    ErrorKind.INVALID_GUEST_NAME: 'Guest name is required',
}


class Ok:
    ok = True

    def __init__(self, value=None):
        self.value = value

    def __repr__(self):
        return f"Ok({self.value!r})"


class Err:
    ok = False

    def __init__(self, kind: ErrorKind, message: str = None, **context):
        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self.context = context

    @property
    def status_code(self) -> int:
        return HTTP_STATUS[self.kind]

    def to_dict(self) -> dict:
        payload = {'error': self.message, 'kind': self.kind.value}
        for key, value in self.context.items():
            payload[key] = value.isoformat() if isinstance(value, datetime) else value
        return payload

    def __repr__(self):
        return f"Err({self.kind.value}, {self.context!r})"
