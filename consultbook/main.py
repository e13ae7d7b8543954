# consultbook/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from consultbook import models  # noqa: F401
from consultbook.api import appointments, reviews
from consultbook.config import settings
from consultbook.database import Base, engine
from consultbook.exceptions import SchedulingError, ValidationFailed

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Schema changes go through alembic; create_all only fills in a fresh database
    Base.metadata.create_all(bind=engine)

    # Expiry and reminder passes run in the arq worker (consultbook.worker)
    logger.info("ConsultBook API started (env=%s)", settings.APP_ENV)

    yield


# Initialize FastAPI app
app = FastAPI(title="ConsultBook API", debug=settings.DEBUG, lifespan=lifespan)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:8000",
        "http://127.0.0.1:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    # Same envelope as the service errors; field paths drop the "body"/"query" prefix
    problems = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())[1:])
        problems.append(f"{field}: {error.get('msg')}" if field else str(error.get("msg")))
    failure = ValidationFailed("; ".join(problems) or "Invalid request")
    return JSONResponse(status_code=failure.status_code, content=failure.to_dict())


# API routers
app.include_router(appointments.router)  # /appointments/*
app.include_router(reviews.router)       # /reviews/*


@app.get("/health")
def health_check():
    return {
        "status": "healthy",
        "message": "ConsultBook API is running",
        "version": "1.0.0",
    }
