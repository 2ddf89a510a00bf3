from datetime import date, datetime

import pytest

from telehealth.signaling.connection import Connection
from telehealth.signaling.coordinator import build_coordinator
from telehealth.signaling.errors import StoreUnavailable
from telehealth.signaling.store import AppointmentRecord

# Monday
SCHEDULED_AT = datetime(2026, 10, 19, 10, 0)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class FakeWebSocket:
    def __init__(self):
        self.sent: list[dict] = []
        self.close_code: int | None = None

    async def send_json(self, frame: dict) -> None:
        if self.close_code is not None:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.sent.append(frame)

    async def close(self, code: int = 1000) -> None:
        if self.close_code is not None:
            raise RuntimeError('Cannot call "send" once a close message has been sent.')
        self.close_code = code

    def frames(self, frame_type: str) -> list[dict]:
        return [frame for frame in self.sent if frame['type'] == frame_type]


class FakeAppointmentStore:
    """In-memory store that records writes and can fail on demand."""

    def __init__(self):
        self.rows: dict[str, dict] = {}
        self.writes: list[tuple] = []
        self.failures: dict[str, int] = {}
        self.booked_slots: set[str] = set()

    def add(self, room_id: str = 'A1', **overrides) -> None:
        row = {
            'room_id': room_id,
            'patient_id': 'p1',
            'doctor_id': 'd1',
            'appointment_date': SCHEDULED_AT.date(),
            'time_slot': 'Monday 10:00 AM',
            'status': 'scheduled',
            'session_start': None,
            'session_end': None,
        }
        row.update(overrides)
        self.rows[room_id] = row
        self.booked_slots.add(room_id)

    def get(self, room_id: str = 'A1') -> AppointmentRecord:
        return AppointmentRecord(**self.rows[room_id])

    def _check(self, operation: str) -> None:
        remaining = self.failures.get(operation, 0)
        if remaining:
            self.failures[operation] = remaining - 1
            raise StoreUnavailable()

    async def find_by_room_id(self, room_id: str) -> AppointmentRecord | None:
        self._check('find_by_room_id')
        if room_id not in self.rows:
            return None
        return self.get(room_id)

    async def set_status(self, room_id: str, status: str) -> bool:
        self._check('set_status')
        self.writes.append(('set_status', room_id, status))
        row = self.rows[room_id]
        if row['status'] != 'scheduled':
            return False
        row['status'] = status
        return True

    async def set_session_start(self, room_id: str, started_at: datetime) -> bool:
        self._check('set_session_start')
        self.writes.append(('set_session_start', room_id, started_at))
        return self._set_once(room_id, 'session_start', started_at)

    async def set_session_end(self, room_id: str, ended_at: datetime) -> bool:
        self._check('set_session_end')
        self.writes.append(('set_session_end', room_id, ended_at))
        return self._set_once(room_id, 'session_end', ended_at)

    async def release_slot(self, room_id: str) -> bool:
        self._check('release_slot')
        self.writes.append(('release_slot', room_id))
        if room_id not in self.booked_slots:
            return False
        self.booked_slots.discard(room_id)
        return True

    async def list_scheduled(self, on_or_before: date) -> list[AppointmentRecord]:
        self._check('list_scheduled')
        return [
            self.get(room_id)
            for room_id, row in self.rows.items()
            if row['status'] == 'scheduled' and row['appointment_date'] <= on_or_before
        ]

    def _set_once(self, room_id: str, field: str, value: datetime) -> bool:
        row = self.rows[room_id]
        if row[field] is not None:
            return False
        row[field] = value
        return True


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(SCHEDULED_AT)


@pytest.fixture
def store() -> FakeAppointmentStore:
    fake_store = FakeAppointmentStore()
    fake_store.add('A1')
    return fake_store


@pytest.fixture
def coordinator(store, clock):
    return build_coordinator(store, clock=clock, retry_delay=0)


@pytest.fixture
def connect():
    def _connect(authenticated_user_id: str | None = None) -> Connection:
        return Connection(FakeWebSocket(), authenticated_user_id=authenticated_user_id)

    return _connect


@pytest.fixture
def scheduled_at() -> datetime:
    return SCHEDULED_AT
