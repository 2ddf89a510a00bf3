"""Errors raised by the consultation signaling core.

Every error carries a stable ``code`` and a human-readable ``reason``; the
coordinator turns them into ``error`` frames for the originating connection.
"""


class SignalingError(Exception):
    code = 'SignalingError'
    retryable = False
    default_reason = 'The request could not be completed.'

    def __init__(self, reason: str | None = None):
        self.reason = reason or self.default_reason
        super().__init__(self.reason)

    def to_frame(self) -> dict:
        return {
            'type': 'error',
            'code': self.code,
            'reason': self.reason,
            'retryable': self.retryable,
        }


class RoomNotFound(SignalingError):
    code = 'RoomNotFound'
    default_reason = 'Appointment not found.'


class Unauthorized(SignalingError):
    code = 'Unauthorized'
    default_reason = 'Unauthorized access to this appointment.'


class TooEarly(SignalingError):
    code = 'TooEarly'
    retryable = True
    default_reason = 'The consultation has not started yet.'


class TooLate(SignalingError):
    code = 'TooLate'
    default_reason = 'The consultation window has closed.'


class SessionClosed(SignalingError):
    code = 'SessionClosed'
    default_reason = 'This appointment is no longer scheduled.'


class InvalidSchedule(SignalingError):
    code = 'InvalidSchedule'
    default_reason = 'The appointment time slot could not be read.'


class RoomFull(SignalingError):
    code = 'RoomFull'
    default_reason = 'This consultation room already has two participants.'


class InvalidMessage(SignalingError):
    code = 'InvalidMessage'
    default_reason = 'Malformed message.'


class NotJoined(SignalingError):
    code = 'NotJoined'
    default_reason = 'Join a room before sending this message.'


class AlreadyJoined(SignalingError):
    code = 'AlreadyJoined'
    default_reason = 'This connection has already joined a room.'


class StoreUnavailable(SignalingError):
    code = 'StoreUnavailable'
    retryable = True
    default_reason = 'Appointment storage is temporarily unavailable. Please retry.'
