from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timetable_api.api.routes import health, schedule_generator
from timetable_api.core.config import get_settings
from timetable_api.core.exceptions import AppError
from timetable_api.core.logging import configure_logging
from timetable_api.core.middleware import RequestSizeLimitMiddleware
from timetable_api.db.bootstrap import ensure_runtime_schema
from timetable_api.db.session import engine

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    configure_logging(settings.log_level)
    ensure_runtime_schema(engine, auto_create=settings.auto_create_schema)
    yield


async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.message, "details": exc.details},
    )


app = FastAPI(title=settings.project_name, lifespan=lifespan)
app.add_exception_handler(AppError, app_error_handler)

app.add_middleware(RequestSizeLimitMiddleware, max_bytes=settings.max_request_size_bytes)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix=settings.api_prefix, tags=["health"])
app.include_router(schedule_generator.router, prefix=settings.api_prefix, tags=["schedule-generator"])
