from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from slowapi.errors import RateLimitExceeded
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, RedirectResponse, Response
from timing_asgi import TimingMiddleware, TimingClient  # type: ignore
from timing_asgi.integrations import StarletteScopeToName  # type: ignore

from admin_console.core import config
from admin_console.core.database.engine import init_db
from admin_console.core.exceptions import (
    DirectoryConflict,
    DirectoryUnavailable,
    FormValidationError,
    InvalidCredentials,
    NotFound,
    RouteDenied,
)
from admin_console.core.limiter import limiter
from admin_console.core.notices import Notice
from admin_console.features.navigation.routes import router as navigation_router
from admin_console.features.permissions.memory import InMemoryDirectory
from admin_console.features.permissions.routes import router as rbac_router
from admin_console.features.permissions.seed import seed_directory
from admin_console.features.session.routes import router as session_router
from admin_console.utils import get_logger


log = get_logger(__name__)
log.info("Initializing server")
app = FastAPI(
    title="Admin Console",
    description="Role-based access control for the admin console",
    version="0.1.0",
    docs_url="/docs" if config.ENABLE_DOCS else None,
    redoc_url="/redoc" if config.ENABLE_DOCS else None,
    openapi_url="/openapi.json" if config.ENABLE_DOCS else None
)
app.state.limiter = limiter
app.state.directory = seed_directory() if config.SEED_DIRECTORY else InMemoryDirectory()


class PrintTimings(TimingClient):
    def timing(self, metric_name, timing, tags):
        log.debug(dict(route=metric_name.removeprefix("main.admin_console.features."), timing=timing, tags=tags))


app.add_middleware(TimingMiddleware, client=PrintTimings(), metric_namer=StarletteScopeToName("main", app))

if config.ENABLE_DOCS:
    log.warning("Docs enabled")
if config.ALLOW_ORIGIN:
    log.warning("Setting allow origin to %s", config.ALLOW_ORIGIN)
    origins = [config.ALLOW_ORIGIN]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    errors = dict()
    for error in exc.errors():
        if "loc" not in error or "msg" not in error:
            continue
        key = error["loc"][-1]
        if key == "__root__":
            key = "root"
        errors[key] = error["msg"]
    log.info("Request validation error %s", errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(errors))


@app.exception_handler(FormValidationError)
async def form_validation_handler(_request: Request, exc: FormValidationError):
    log.info("Form validation error %s", exc.errors)
    return JSONResponse(status_code=400, content=jsonable_encoder(exc.errors))


@app.exception_handler(RateLimitExceeded)
def rate_limit_exceeded_handler(_request: Request, _exc: RateLimitExceeded) -> Response:
    return JSONResponse({"error": "You are going too fast"}, status_code=429)


@app.exception_handler(RouteDenied)
async def route_denied_handler(_request: Request, exc: RouteDenied) -> Response:
    return RedirectResponse(exc.redirect_to, status_code=303)


def _notice_response(status_code: int, notice: Notice) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=jsonable_encoder({"notice": notice}))


@app.exception_handler(DirectoryUnavailable)
async def directory_unavailable_handler(request: Request, exc: DirectoryUnavailable):
    log.warning("Directory unavailable on %s: %s", request.url.path, exc.message)
    return _notice_response(503, Notice.error(exc.message, retryable=True))


@app.exception_handler(DirectoryConflict)
async def directory_conflict_handler(request: Request, exc: DirectoryConflict):
    log.info("Directory rejected %s %s: %s", request.method, request.url.path, exc.message)
    return _notice_response(409, Notice.error(exc.message, retryable=True))


@app.exception_handler(InvalidCredentials)
async def invalid_credentials_handler(_request: Request, exc: InvalidCredentials):
    return _notice_response(401, Notice.error(exc.message))


@app.exception_handler(NotFound)
async def not_found_handler(_request: Request, exc: NotFound):
    return _notice_response(404, Notice.error(exc.message))


@app.on_event("startup")
async def startup():
    """Initialize database on application startup."""
    log.info("Initializing database...")
    await init_db()
    log.info("Database initialized successfully")


@app.get("/")
async def root():
    """Root endpoint - API health check."""
    return {
        "message": "Admin Console API",
        "version": "0.1.0",
        "status": "online",
        "docs": "/docs" if config.ENABLE_DOCS else None,
        "authentication": {
            "info": "Sign in with POST /session; the session cookie authorizes later requests",
            "sign_in": config.SIGN_IN_ROUTE,
            "protected_endpoints": ["/navigation", "/screens/*", "/rbac/*"],
            "public_endpoints": ["/session", "/session/logout", "/health"]
        },
        "features": {
            "session": "Cached permission keys, role and identity of the signed-in principal",
            "navigation": "Permission-filtered menu and guarded screens",
            "rbac": "Roles, modules, permission catalog and per-staff grants"
        }
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(session_router, prefix="/session", tags=["session"])

# Navigation and guarded screens
app.include_router(navigation_router, tags=["navigation"])

# Role, module and permission management
app.include_router(rbac_router, prefix="/rbac", tags=["rbac"])
