import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import StorageError, ValidationError
from .logging_config import configure_logging
from .repositories import TodoIndexStore, get_repository, reset_repository
from .routers import todos as todos_router
from .settings import get_settings

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "todos", "description": "CRUD operations for Todo items stored in the key-value cache."},
]

_settings = get_settings()
configure_logging(_settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Bootstrap the todo index on startup and close the store connection on shutdown."""
    provider = app.dependency_overrides.get(get_repository, get_repository)
    repo = provider()
    try:
        if repo.ensure_index():
            logger.info("Created empty todo index")
    except StorageError:
        # The service still starts; requests fail individually until the store is reachable
        logger.exception("Could not initialize todo index")
    yield
    reset_repository()


app = FastAPI(
    title="Todo API",
    description="A simple Todo API using a key-value cache as storage.",
    version="1.0.0",
    openapi_tags=openapi_tags,
    docs_url="/api-docs",
    lifespan=lifespan,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent 400 JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": [... pydantic/fastapi error details ...]
        }
    """
    return JSONResponse(
        status_code=400,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            "detail": jsonable_errors(exc),
        },
    )


@app.exception_handler(ValidationError)
async def domain_validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "ValidationError", "message": str(exc), "detail": []},
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    # pydantic puts the raised ValueError under ctx, which is not JSON serializable
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check(repo: TodoIndexStore = Depends(get_repository)):
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health and the backend serving the todos.
    """
    return {"message": "Healthy", "backend": repo.backend_name}


app.include_router(todos_router.router)
