import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import config
from .database import Base, engine
from .errors import AppError
from .routers import diagrams, nodes
from .services.ai.providers import build_registry

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

HTTP_CODES = {
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}


def prepare(app: FastAPI) -> None:
    """Create tables and the provider registry; safe to call more than once."""
    Base.metadata.create_all(bind=engine)
    if getattr(app.state, "providers", None) is None:
        app.state.providers = build_registry()


@asynccontextmanager
async def lifespan(app: FastAPI):
    prepare(app)
    yield


app = FastAPI(title="ERD Studio API", lifespan=lifespan)

base_origins = {"http://localhost:5173", "http://localhost:3000"}

configured_origins: set[str] = set(base_origins)
if config.CORS_ORIGINS:
    configured_origins.update(
        origin.strip() for origin in config.CORS_ORIGINS.split(",") if origin.strip()
    )

expanded_origins: set[str] = set()
for origin in configured_origins:
    expanded_origins.add(origin)
    if "://localhost" in origin:
        expanded_origins.add(origin.replace("://localhost", "://127.0.0.1"))
    if "://127.0.0.1" in origin:
        expanded_origins.add(origin.replace("://127.0.0.1", "://localhost"))

app.add_middleware(
    CORSMiddleware,
    allow_origins=sorted(expanded_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-SQL-Dialect"],
)


@app.exception_handler(AppError)
async def app_error_handler(_: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500 and exc.status_code not in (502, 504):
        logger.error("%s: %s", exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        where = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{where}: {first.get('msg')}" if where else str(first.get("msg"))
    return JSONResponse(
        status_code=400,
        content={"success": False, "code": "VALIDATION_ERROR", "message": message},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(_: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = HTTP_CODES.get(exc.status_code, "BAD_REQUEST" if exc.status_code < 500 else "SERVER_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "code": code, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"success": False, "code": "SERVER_ERROR", "message": "Unexpected error"},
    )


api_router = APIRouter(prefix="/api")
api_router.include_router(diagrams.router)
api_router.include_router(nodes.router)

app.include_router(api_router)
app.include_router(diagrams.router)
app.include_router(nodes.router)


@app.get("/")
async def healthcheck() -> dict[str, bool]:
    return {"ok": True}
