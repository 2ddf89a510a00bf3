import asyncio
import contextlib
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from telehealth.core import config
from telehealth.database import engine, ensure_availability_schema, ensure_appointment_schema
from telehealth.models import user, appointment, availability
from telehealth.routes import availability_routes, session_routes
from telehealth.signaling.coordinator import build_coordinator
from telehealth.signaling.store import SqlAppointmentStore
from telehealth.signaling.sweep import run_periodic_sweep

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
) 

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        user.Base.metadata.create_all(bind=engine)
        appointment.Base.metadata.create_all(bind=engine)
        availability.Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
async def start_coordinator() -> None:
    store = SqlAppointmentStore()
    coordinator = build_coordinator(store)
    app.state.coordinator = coordinator
    if config.SWEEP_ENABLED:
        app.state.sweep_task = asyncio.create_task(run_periodic_sweep(store, coordinator.lifecycle))


@app.on_event('shutdown')
async def stop_coordinator() -> None:
    sweep_task = getattr(app.state, 'sweep_task', None)
    if sweep_task is None:
        return
    sweep_task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await sweep_task


@app.get('/')
def root():
    return {'status': 'Telehealth API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(session_routes.router)
