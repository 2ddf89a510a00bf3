import asyncio

import pytest

from telehealth.signaling.connection import ConnectionState
from telehealth.signaling.errors import RoomFull
from telehealth.signaling.registry import SessionRegistry


def test_admit_seats_up_to_two_identities(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        patient, doctor = connect(), connect()

        first = await registry.admit('A1', patient, 'p1', 'patient')
        second = await registry.admit('A1', doctor, 'd1', 'doctor')

        assert (first.size, second.size) == (1, 2)
        assert first.evicted is None and second.evicted is None
        assert patient.state is ConnectionState.JOINED
        assert (doctor.room_id, doctor.user_id, doctor.role) == ('A1', 'd1', 'doctor')

    asyncio.run(scenario())


def test_admit_rejects_third_identity(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        await registry.admit('A1', connect(), 'p1', 'patient')
        await registry.admit('A1', connect(), 'd1', 'doctor')
        intruder = connect()

        with pytest.raises(RoomFull):
            await registry.admit('A1', intruder, 'd2', 'doctor')

        assert registry.size('A1') == 2
        assert intruder.state is ConnectionState.UNJOINED

    asyncio.run(scenario())


def test_reconnect_replaces_only_the_same_identity(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        stale, doctor, fresh = connect(), connect(), connect()
        await registry.admit('A1', stale, 'p1', 'patient')
        await registry.admit('A1', doctor, 'd1', 'doctor')

        admission = await registry.admit('A1', fresh, 'p1', 'patient')

        assert admission.evicted is stale
        assert admission.size == 2
        assert set(registry.members_of('A1')) == {fresh, doctor}

    asyncio.run(scenario())


def test_members_of_excludes_caller(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        patient, doctor = connect(), connect()
        await registry.admit('A1', patient, 'p1', 'patient')
        await registry.admit('A1', doctor, 'd1', 'doctor')

        assert registry.members_of('A1', exclude=patient) == [doctor]
        assert registry.members_of('unknown') == []

    asyncio.run(scenario())


def test_remove_is_idempotent(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        patient = connect()
        await registry.admit('A1', patient, 'p1', 'patient')

        assert await registry.remove(patient) is True
        assert await registry.remove(patient) is False
        assert registry.size('A1') == 0
        assert registry.rooms() == []

    asyncio.run(scenario())


def test_remove_of_evicted_connection_keeps_replacement(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        stale, fresh = connect(), connect()
        await registry.admit('A1', stale, 'p1', 'patient')
        await registry.admit('A1', fresh, 'p1', 'patient')

        assert await registry.remove(stale) is False
        assert registry.members_of('A1') == [fresh]

    asyncio.run(scenario())


def test_remove_of_unjoined_connection_is_noop(connect) -> None:
    async def scenario():
        registry = SessionRegistry()

        assert await registry.remove(connect()) is False

    asyncio.run(scenario())


def test_concurrent_joins_never_overfill_room(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        results = await asyncio.gather(
            *(registry.admit('A1', connect(), f'user-{index}', 'patient') for index in range(5)),
            return_exceptions=True,
        )

        admitted = [result for result in results if not isinstance(result, Exception)]
        rejected = [result for result in results if isinstance(result, RoomFull)]
        assert len(admitted) == 2
        assert len(rejected) == 3
        assert registry.size('A1') == 2

    asyncio.run(scenario())


def test_clear_empties_room_and_returns_members(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        patient, doctor = connect(), connect()
        await registry.admit('A1', patient, 'p1', 'patient')
        await registry.admit('A1', doctor, 'd1', 'doctor')

        cleared = await registry.clear('A1')

        assert set(cleared) == {patient, doctor}
        assert registry.size('A1') == 0

    asyncio.run(scenario())


def test_room_locks_are_dropped_once_rooms_empty(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        patient, doctor = connect(), connect()
        await registry.admit('A1', patient, 'p1', 'patient')
        await registry.admit('B2', doctor, 'd1', 'doctor')
        assert set(registry._locks) == {'A1', 'B2'}

        await registry.remove(patient)
        await registry.clear('B2')

        assert registry.rooms() == []
        assert registry._locks == {}
        assert registry._lock_users == {}

    asyncio.run(scenario())


def test_room_lock_is_kept_while_room_has_members(connect) -> None:
    async def scenario():
        registry = SessionRegistry()
        patient, doctor = connect(), connect()
        await registry.admit('A1', patient, 'p1', 'patient')
        await registry.admit('A1', doctor, 'd1', 'doctor')

        await registry.remove(patient)

        assert list(registry._locks) == ['A1']

    asyncio.run(scenario())
