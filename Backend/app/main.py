import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .api_v1 import router as api_v1_router
from .core.config import get_settings
from .core.db import AsyncSessionLocal, engine, init_models
from .core.errors import ZeroqError
from .seed import seed_demo_data


settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ZeroQ Reservations Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_v1_router)


# ────────────────────────────────────────────────────────────────
# Error envelopes
# ────────────────────────────────────────────────────────────────

def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(ZeroqError)
async def zeroq_error_handler(request: Request, exc: ZeroqError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code}: {exc.message}")
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        issue = errors[0]
        location = ".".join(str(part) for part in issue.get("loc", ()))
        message = f"{location}: {issue.get('msg', 'Invalid input')}"
    else:
        message = "Invalid input"
    return _error_response(422, message)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return _error_response(500, str(exc) or "Internal server error")


# ────────────────────────────────────────────────────────────────
# Lifecycle
# ────────────────────────────────────────────────────────────────

@app.on_event("startup")
async def on_startup():
    if not settings.api_key_required:
        logger.warning("ZEROQ_API_KEY is not set; the REST API accepts unauthenticated requests")

    await init_models(engine)
    if settings.seed_demo_data:
        async with AsyncSessionLocal() as session:
            await seed_demo_data(session)
            logger.info("Demo data seeded")


@app.get("/")
async def root():
    return {"service": "zeroq-backend", "api": "/api/v1/{org_slug}"}


@app.get("/health")
async def health():
    return {"status": "ok"}
