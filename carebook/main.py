import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from carebook.core import config
from carebook.core.responses import error_body
from carebook.database import Base, engine, ensure_appointment_schema, ensure_schedule_schema
from carebook.models import appointment, category, doctor, schedule, user  # noqa: F401
from carebook.routes import (
    appointment_routes,
    auth_routes,
    category_routes,
    doctor_routes,
    patient_routes,
    schedule_routes,
    stats_routes,
    user_routes,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

logger = logging.getLogger(__name__)

app = FastAPI(title='CareBook API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
    allow_headers=['Content-Type', 'Authorization'],
    max_age=86400,
)


def format_validation_errors(exc: RequestValidationError) -> str:
    messages = []
    for error in exc.errors():
        location = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
        message = error.get('msg', 'Invalid value')
        messages.append(f'{location}: {message}' if location else message)
    return ', '.join(messages) or 'Invalid request.'


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.detail), headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content=error_body(format_validation_errors(exc)))


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception('Unhandled error on %s %s', request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body('Internal Server Error'))


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/health')
def health():
    return {'status': 'ok'}


app.include_router(auth_routes.router, prefix='/api/auth')
app.include_router(user_routes.router, prefix='/api/users')
app.include_router(patient_routes.router, prefix='/api/patients')
app.include_router(doctor_routes.router, prefix='/api/doctors')
app.include_router(category_routes.router, prefix='/api/categories')
app.include_router(schedule_routes.router, prefix='/api/schedules')
app.include_router(appointment_routes.router, prefix='/api/appointments')
app.include_router(stats_routes.admin_router, prefix='/api/admin')
app.include_router(stats_routes.doctor_router, prefix='/api/doctor')
app.include_router(stats_routes.patient_router, prefix='/api/patient')


if __name__ == '__main__':
    import uvicorn

    uvicorn.run('carebook.main:app', host='0.0.0.0', port=config.API_PORT)
