import asyncio
from datetime import timedelta

import pytest

from telehealth.signaling.authorization import AuthorizationGate
from telehealth.signaling.errors import (
    InvalidSchedule,
    RoomNotFound,
    SessionClosed,
    TooEarly,
    TooLate,
    Unauthorized,
)


def _authorize(store, clock, room_id='A1', user_id='p1'):
    gate = AuthorizationGate(store, clock=clock, window_minutes=30)
    return asyncio.run(gate.authorize(room_id, user_id))


def test_authorize_classifies_patient_and_doctor(store, clock) -> None:
    assert _authorize(store, clock, user_id='p1').role == 'patient'
    assert _authorize(store, clock, user_id='d1').role == 'doctor'


def test_authorize_returns_appointment_snapshot(store, clock) -> None:
    authorization = _authorize(store, clock)

    assert authorization.appointment.room_id == 'A1'
    assert authorization.appointment.doctor_id == 'd1'


def test_authorize_rejects_unknown_room(store, clock) -> None:
    with pytest.raises(RoomNotFound):
        _authorize(store, clock, room_id='missing')


def test_authorize_rejects_identity_outside_appointment(store, clock) -> None:
    with pytest.raises(Unauthorized):
        _authorize(store, clock, user_id='intruder')


@pytest.mark.parametrize('offset_minutes', [0, 29, 30])
def test_authorize_accepts_times_inside_window(store, clock, scheduled_at, offset_minutes: int) -> None:
    clock.now = scheduled_at + timedelta(minutes=offset_minutes)

    assert _authorize(store, clock).role == 'patient'


def test_authorize_rejects_join_before_window(store, clock, scheduled_at) -> None:
    clock.now = scheduled_at - timedelta(minutes=1)

    with pytest.raises(TooEarly) as exception_info:
        _authorize(store, clock)

    assert exception_info.value.retryable is True


def test_authorize_rejects_join_after_window(store, clock, scheduled_at) -> None:
    clock.now = scheduled_at + timedelta(minutes=31)

    with pytest.raises(TooLate) as exception_info:
        _authorize(store, clock)

    assert exception_info.value.retryable is False


def test_authorize_checks_identity_before_window(store, clock, scheduled_at) -> None:
    clock.now = scheduled_at + timedelta(days=1)

    with pytest.raises(Unauthorized):
        _authorize(store, clock, user_id='intruder')


def test_authorize_accepts_24_hour_slot_labels(store, clock, scheduled_at) -> None:
    store.add('A2', time_slot='14:30')
    clock.now = scheduled_at.replace(hour=14, minute=45)

    assert _authorize(store, clock, room_id='A2').role == 'patient'


@pytest.mark.parametrize('status', ['completed', 'cancelled', 'missed'])
def test_authorize_rejects_closed_appointments(store, clock, status: str) -> None:
    store.add('A2', status=status)

    with pytest.raises(SessionClosed):
        _authorize(store, clock, room_id='A2')


def test_authorize_reports_unreadable_slot(store, clock) -> None:
    store.add('A2', time_slot='Monday morning')

    with pytest.raises(InvalidSchedule):
        _authorize(store, clock, room_id='A2')


def test_authorize_never_writes(store, clock) -> None:
    _authorize(store, clock, user_id='p1')
    with pytest.raises(Unauthorized):
        _authorize(store, clock, user_id='intruder')

    assert store.writes == []
