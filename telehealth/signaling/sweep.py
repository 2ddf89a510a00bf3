import asyncio
import logging
from datetime import datetime
from typing import Callable

from telehealth.core import config
from telehealth.signaling.authorization import session_window
from telehealth.signaling.errors import InvalidSchedule, StoreUnavailable
from telehealth.signaling.lifecycle import SessionLifecycle
from telehealth.signaling.store import AppointmentStore

logger = logging.getLogger(__name__)


async def sweep_elapsed_appointments(
    store: AppointmentStore,
    lifecycle: SessionLifecycle,
    clock: Callable[[], datetime] = datetime.now,
    window_minutes: int = config.SESSION_WINDOW_MINUTES,
) -> dict[str, str]:
    """Close out scheduled appointments whose consultation window has passed.

    Returns a mapping of room id to the status each appointment was moved to.
    """
    now = clock()
    outcomes: dict[str, str] = {}

    for appointment in await store.list_scheduled(on_or_before=now.date()):
        try:
            _, window_end = session_window(appointment, window_minutes)
        except InvalidSchedule:
            logger.warning('Skipping appointment %s with unreadable slot %r', appointment.room_id, appointment.time_slot)
            continue
        if now <= window_end:
            continue
        outcomes[appointment.room_id] = await lifecycle.expire(appointment)

    return outcomes


async def run_periodic_sweep(
    store: AppointmentStore,
    lifecycle: SessionLifecycle,
    interval_seconds: float = config.SWEEP_INTERVAL_SECONDS,
) -> None:
    while True:
        try:
            outcomes = await sweep_elapsed_appointments(store, lifecycle)
            if outcomes:
                logger.info('Sweep closed %d elapsed appointment(s)', len(outcomes))
        except StoreUnavailable:
            logger.exception('Sweep skipped: appointment store unavailable')
        await asyncio.sleep(interval_seconds)
