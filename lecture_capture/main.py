import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lecture_capture import __version__
from lecture_capture.config import settings
from lecture_capture.database import init_db
from lecture_capture.errors import LectureCaptureError
from lecture_capture.logging_utils import configure_logging
from lecture_capture.routes import functions, recording, sessions, study

logger = logging.getLogger(__name__)

CORS_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Configure logging and create SQLite tables on startup. Nothing to tear
    down on shutdown (capture ticker threads are daemon threads)."""
    configure_logging(settings.log_level)
    await init_db()
    logger.info("lecture-capture %s ready (database %s)", __version__, settings.database_path)
    yield


app = FastAPI(
    title="lecture-capture",
    description="Record lectures, transcribe them and turn them into notes, flashcards and quizzes",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=CORS_HEADERS,
)


@app.exception_handler(LectureCaptureError)
async def lecture_capture_error_handler(_request: Request, exc: LectureCaptureError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": f"Invalid {field}: {message}" if field else message},
    )


app.include_router(functions.router)
app.include_router(sessions.router)
app.include_router(recording.router)
app.include_router(study.router)
