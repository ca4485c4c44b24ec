from fastapi import FastAPI, Depends, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from spamdetective.config import settings
from spamdetective.database import Base, SessionLocal, engine
from spamdetective.errors import ConfigError, InputError, LookupUnavailable
from spamdetective.models import domain, setting, user  # noqa: F401  (register tables)
from spamdetective.schemas.analyze_schemas import (
    AnalyzeRequest,
    BatchAnalysisResponse,
    DeleteUsersRequest,
    DeleteUsersResponse,
    ReanalyzeRequest,
    ReanalyzeResponse,
    RegistrationIPRequest,
    RegistrationIPResponse,
)
from spamdetective.api.security import verify_api_token
from spamdetective.api.admin import router as admin_router
from spamdetective.api.dependencies import get_analyzer, get_settings_accessor, get_user_manager
from spamdetective.services.advanced_analysis import get_client_ip
from spamdetective.services.settings_service import SettingsAccessor, SettingsStore
from spamdetective.services.user_analyzer import SpamAnalyzer
from spamdetective.services.user_manager import UserManager
from spamdetective.utils.logging_config import StructuredLogger, init_logging

# Initialize structured logging
init_logging()

logger = StructuredLogger(__name__)

Base.metadata.create_all(bind=engine)

# Seed missing detection settings, keeping anything already stored
with SessionLocal() as _db:
    if SettingsAccessor(SettingsStore(_db)).initialize_defaults():
        logger.info("Detection settings initialized with defaults")

app = FastAPI(
    title="Spam Detective API",
    version="0.1.0",
    description="Spam risk scoring for registered user accounts",
    docs_url="/docs" if settings.debug else None,  # Disable docs in production
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)


# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    if settings.is_production:
        response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"
    return response


@app.exception_handler(ConfigError)
async def config_error_handler(request: Request, exc: ConfigError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(LookupUnavailable)
async def lookup_unavailable_handler(request: Request, exc: LookupUnavailable):
    logger.error("Storage unavailable", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": str(exc)})


app.include_router(admin_router)


@app.get("/health")
def health(analyzer: SpamAnalyzer = Depends(get_analyzer)):
    """Health check endpoint - no auth required."""
    return analyzer.health_check()


@app.post(
    "/analyze",
    response_model=BatchAnalysisResponse,
    dependencies=[Depends(verify_api_token)],
)
def analyze(request: AnalyzeRequest, analyzer: SpamAnalyzer = Depends(get_analyzer)):
    """Scan recent accounts (quick_scan) or every account and return the suspicious ones."""
    return analyzer.analyze_batch(quick_scan=request.quick_scan)


@app.post(
    "/reanalyze",
    response_model=ReanalyzeResponse,
    dependencies=[Depends(verify_api_token)],
)
def reanalyze(request: ReanalyzeRequest, analyzer: SpamAnalyzer = Depends(get_analyzer)):
    return analyzer.reanalyze(request.user_ids)


@app.post(
    "/users/delete",
    response_model=DeleteUsersResponse,
    dependencies=[Depends(verify_api_token)],
)
def delete_users(request: DeleteUsersRequest, manager: UserManager = Depends(get_user_manager)):
    return manager.delete_users(request.user_ids, force=request.force)


@app.put(
    "/users/{user_id}/registration-ip",
    response_model=RegistrationIPResponse,
    dependencies=[Depends(verify_api_token)],
)
def store_registration_ip(
    user_id: int,
    payload: RegistrationIPRequest,
    request: Request,
    manager: UserManager = Depends(get_user_manager),
    accessor: SettingsAccessor = Depends(get_settings_accessor),
):
    """
    Record the IP an account signed up from. Call it from the signup flow;
    without an explicit ip the caller's own address (proxy headers first) is used.
    """
    account = manager.repository.get_account(user_id)
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User {user_id} not found")

    ip = payload.ip or get_client_ip(request.headers, request.client.host if request.client else None)
    stored = manager.store_registration_ip(account, ip, accessor.get())
    return RegistrationIPResponse(user_id=user_id, ip=ip, stored=stored)
