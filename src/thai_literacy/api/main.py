from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pathlib import Path

from thai_literacy import __version__
from thai_literacy.core.exceptions import (
    AIServiceError,
    DetectionFailedError,
    NotFoundError,
    ThaiLiteracyException,
    ValidationError,
    VisionNetworkError,
    VisionQuotaError,
)
from thai_literacy.core.services.logging import get_logging_service
from thai_literacy.core.services.settings_config_service import get_settings_service

app = FastAPI(title="Thai Literacy API", version=__version__)


def status_code_for(exc: ThaiLiteracyException) -> int:
    """HTTP status for a domain exception"""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (ValidationError, DetectionFailedError)):
        return 400
    if isinstance(exc, VisionQuotaError):
        return 429
    if isinstance(exc, VisionNetworkError):
        return 504
    if isinstance(exc, AIServiceError):
        return 502
    return 500


@app.exception_handler(ThaiLiteracyException)
async def handle_domain_error(request: Request, exc: ThaiLiteracyException):
    status_code = status_code_for(exc)
    get_logging_service().log_error(
        type(exc).__name__,
        str(exc),
        level="ERROR" if status_code >= 500 else "WARNING",
        path=request.url.path,
        status_code=status_code,
    )
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": exc.user_message},
    )


from thai_literacy.api.routes import students, writing

app.include_router(students.router)
app.include_router(writing.router)


@app.get("/api/health")
async def get_health():
    return {"status": "online", "version": __version__}


# Serve stored handwriting images
_storage = get_settings_service().get_storage_defaults()
_upload_dir = Path(_storage["upload_path"])
if _upload_dir.exists():
    app.mount(
        _storage["url_prefix"],
        StaticFiles(directory=str(_upload_dir)),
        name="uploads",
    )
