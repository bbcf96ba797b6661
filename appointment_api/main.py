import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from appointment_api.core import config
from appointment_api.database import DatabaseConnection, create_database, get_database
from appointment_api.jobs.booking_expiry import expire_pending_bookings
from appointment_api.routes import auth_routes, booking_routes, doctor_routes, slot_routes

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.validate_runtime_config()
    try:
        app.state.database.initialize()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL.')
    yield
    app.state.database.dispose()


app = FastAPI(
    title='Doctor Appointment Booking API',
    version='1.0.0',
    description='API for managing doctor appointments',
    docs_url='/api-docs',
    servers=[{'url': config.public_server_url(), 'description': 'Server'}],
    lifespan=lifespan,
)
app.state.database = create_database()


def configure_cors(target: FastAPI) -> None:
    # Development accepts any origin; other environments only the allow-list.
    target.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins(),
        allow_origin_regex='.*' if config.is_development() else None,
        allow_credentials=True,
        allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization'],
    )


configure_cors(app)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content={'error': 'Internal server error'})


@app.get('/health')
def health():
    return {'status': 'ok', 'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')}


# Pinged by an external scheduler (e.g. Vercel Cron) or called by hand.
@app.get('/api/cron/expire-bookings')
def trigger_booking_expiry(database: DatabaseConnection = Depends(get_database)):
    try:
        database.initialize()
        result = expire_pending_bookings(database)
    except SQLAlchemyError:
        logger.exception('Error in manual expiry trigger')
        return JSONResponse(status_code=500, content={'error': 'Failed to expire bookings'})

    return {
        'status': 'success',
        'message': f'Expired pending bookings checked; {result.expired} expired.',
        'expired': result.expired,
    }


app.include_router(auth_routes.router, prefix='/api/auth')
app.include_router(doctor_routes.router, prefix='/api/doctors')
app.include_router(slot_routes.router, prefix='/api/slots')
app.include_router(booking_routes.router, prefix='/api/bookings')


def run() -> None:
    """Serve the app locally; production is served by the serverless runtime."""
    if config.is_production():
        logger.info('APP_ENV is production; not starting a local server.')
        return

    import uvicorn

    logging.basicConfig(level=logging.INFO)
    logger.info('Server running locally on http://localhost:%d', config.PORT)
    logger.info('API Documentation: http://localhost:%d/api-docs', config.PORT)
    uvicorn.run('appointment_api.main:app', host='0.0.0.0', port=config.PORT)


if __name__ == '__main__':
    run()
