import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# .env must be loaded before settings are read
load_dotenv()

from eatwhat.api.v1.router import api_router
from eatwhat.api.v1.schemas.common import ApiResponse
from eatwhat.core.config import get_settings
from eatwhat.core.errors import EatWhatError, PersistenceError, TransientServiceFailure, ValidationError
from eatwhat.db.session import dispose_engine, get_engine, get_session_factory, init_models
from eatwhat.db.store import SqlHistoryStore
from eatwhat.services.cooking_service import build_cooking_service
from eatwhat.services.ingredient_normalizer import get_normalizer

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s\n%(message)s\n"


def configure_logging(app_env: str) -> None:
    """Readable multi-line logs for the service namespace (and SQL in local)."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))

    names = ["eatwhat"]
    if app_env == "local":
        names.append("sqlalchemy.engine")
    for name in names:
        target = logging.getLogger(name)
        target.setLevel(logging.INFO)
        target.handlers.clear()
        target.addHandler(handler)
        target.propagate = False


settings = get_settings()
configure_logging(settings.app_env)
logger = logging.getLogger("eatwhat.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models(get_engine())
    service = build_cooking_service(settings, get_normalizer(), SqlHistoryStore(get_session_factory()))
    await service.recommender.retriever.ensure_ready()
    app.state.cooking_service = service
    logger.info("cooking service ready (env=%s, transport=%s)", settings.app_env, settings.openai_api_style)
    yield
    app.state.cooking_service = None
    await dispose_engine()


app = FastAPI(
    title="EatWhat API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _envelope(status_code: int, exc: EatWhatError, data=None) -> JSONResponse:
    body = ApiResponse(success=False, data=data, message=str(exc), error=type(exc).__name__)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.exception_handler(ValidationError)
async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
    return _envelope(400, exc)


@app.exception_handler(TransientServiceFailure)
async def handle_transient_failure(request: Request, exc: TransientServiceFailure) -> JSONResponse:
    data = exc.result.model_dump(mode="json", by_alias=True) if exc.result is not None else {"retryable": True}
    return _envelope(503, exc, data)


@app.exception_handler(PersistenceError)
async def handle_persistence_error(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.warning("persistence failure on %s: %s", request.url.path, exc)
    return _envelope(503, exc)


@app.exception_handler(EatWhatError)
async def handle_service_error(request: Request, exc: EatWhatError) -> JSONResponse:
    logger.error("unhandled service error on %s: %s", request.url.path, exc)
    return _envelope(500, exc)


api_prefix = f"{settings.api_prefix}/{settings.api_version}".rstrip("/")
app.include_router(api_router, prefix=api_prefix)


@app.get("/healthz", tags=["health"])
async def root_health_check() -> dict[str, str]:
    """Basic readiness check for infrastructure monitors."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "eatwhat.main:app",
        host="127.0.0.1",
        port=settings.port,
        reload=True,
        reload_dirs=["eatwhat"],
    )
