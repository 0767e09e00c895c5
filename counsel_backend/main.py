import asyncio
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from counsel_backend.core import config
from counsel_backend.database import Base, engine, ensure_booking_schema, ensure_notification_schema
from counsel_backend.models import availability, booking, notification, user  # noqa: F401
from counsel_backend.routes import availability_routes, booking_routes, notification_routes
from counsel_backend.routes.dependencies import get_dispatcher

config.configure_logging()

app = FastAPI(title='Counselling Booking API', debug=config.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

_sweep_task: asyncio.Task | None = None


def sweep_expired_notifications() -> int:
    try:
        return get_dispatcher().sweep_expired()
    except Exception:
        logger.exception('Notification sweep failed; retrying on the next interval')
        return 0


async def sweep_notifications_periodically(interval_seconds: int) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await run_in_threadpool(sweep_expired_notifications)


@app.on_event('startup')
async def initialize() -> None:
    global _sweep_task

    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_booking_schema()
        ensure_notification_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')

    if config.NOTIFICATION_SWEEP_INTERVAL_SECONDS > 0:
        _sweep_task = asyncio.create_task(
            sweep_notifications_periodically(config.NOTIFICATION_SWEEP_INTERVAL_SECONDS)
        )


@app.on_event('shutdown')
async def stop_background_work() -> None:
    global _sweep_task

    if _sweep_task is not None:
        _sweep_task.cancel()
        _sweep_task = None


@app.get('/')
def root():
    return {'status': 'Counselling Booking API Running'}


app.include_router(availability_routes.router, prefix='/counsellors')
app.include_router(booking_routes.router, prefix='/bookings')
app.include_router(notification_routes.router, prefix='/notifications')
