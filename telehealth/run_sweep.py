"""Close out scheduled appointments whose consultation window has elapsed.

Usage:
    python -m telehealth.run_sweep

Intended for cron-style deployments where the in-process sweep is disabled.
Rooms live in memory of the serving process, so this only updates the store.
"""
import asyncio
import sys

from telehealth.signaling.errors import StoreUnavailable
from telehealth.signaling.lifecycle import SessionLifecycle
from telehealth.signaling.registry import SessionRegistry
from telehealth.signaling.store import SqlAppointmentStore
from telehealth.signaling.sweep import sweep_elapsed_appointments


def main() -> None:
    store = SqlAppointmentStore()
    lifecycle = SessionLifecycle(store, SessionRegistry())
    try:
        outcomes = asyncio.run(sweep_elapsed_appointments(store, lifecycle))
    except StoreUnavailable as exc:
        print('Sweep failed:', exc.reason, file=sys.stderr)
        sys.exit(1)
    for room_id, status in outcomes.items():
        print(f'{room_id}\t{status}')


if __name__ == '__main__':
    main()
