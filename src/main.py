"""
Stem Studio Upload Service
FastAPI server for plan-limited audio uploads and signed, expiring download URLs
"""

import logging
import mimetypes
from contextlib import asynccontextmanager
from typing import Optional

import aiofiles.os
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.requests import ClientDisconnect

from auth import AuthContext, authenticate, require_role
from config import Config, is_production
from errors import (
    NotFoundError,
    QuotaExceededError,
    SignatureInvalidError,
    UploadServiceError,
    UploadValidationError,
)
from identity_provider import IdentityProvider, SupabaseProvider
from models import (
    HealthResponse,
    PlanCatalogResponse,
    Profile,
    ProfileResponse,
    UploadResponse,
    error_body,
)
from plans import PlanCatalog, effective_limits, has_quota_remaining
from signer import UrlSigner
from storage import resolve_stored_path
from upload_handler import receive_audio_upload

logger = logging.getLogger(__name__)

# nginx convention for a request abandoned by the client
CLIENT_CLOSED_REQUEST = 499


def configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def validate_config(config: Config) -> None:
    """Log configuration problems at startup; none of them are fatal."""
    if not config.has_provider_credentials:
        logger.warning(
            "Supabase credentials are not fully configured. "
            "Authentication and plan enforcement will not work as expected."
        )
    if config.uses_dev_signing_secret:
        log = logger.error if is_production() else logger.warning
        log("FILE_SIGNING_SECRET not set - signing download URLs with the development secret")
    logger.info(f"Upload directory: {config.upload_dir} (platform: {config.platform})")


def _profile_response(profile: Profile, catalog: PlanCatalog) -> ProfileResponse:
    plan = catalog.resolve_plan(profile.plan)
    limits = effective_limits(plan, profile)
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        plan=plan.key,
        role=profile.role,
        planLimits=limits.snapshot(profile.monthly_render_count),
    )


def create_app(
    config: Optional[Config] = None,
    provider: Optional[IdentityProvider] = None,
) -> FastAPI:
    config = config or Config.from_env()
    configure_logging(config)
    validate_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.provider.aclose()

    app = FastAPI(
        title="Stem Studio Upload Service",
        description="Plan-limited audio uploads with signed, expiring download URLs",
        version=config.version,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.catalog = PlanCatalog(default_ttl_seconds=config.default_signed_url_ttl_seconds)
    app.state.signer = UrlSigner(config.signing_secret)
    app.state.provider = provider or SupabaseProvider(
        config.supabase_url,
        config.supabase_service_role_key,
        timeout=config.provider_timeout_seconds,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(config.cors_origins),
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
    )

    @app.exception_handler(UploadServiceError)
    async def handle_service_error(request: Request, exc: UploadServiceError):
        return JSONResponse(status_code=exc.http_status, content=error_body(exc.message))

    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok")

    @app.get("/api/plan-limits", response_model=PlanCatalogResponse)
    async def plan_limits():
        return PlanCatalogResponse(
            plans=[plan.to_summary() for plan in app.state.catalog.plans],
            hasIdentityProviderConfigured=config.has_identity_provider,
        )

    @app.get("/api/me", response_model=ProfileResponse)
    async def current_profile(auth: AuthContext = Depends(authenticate)):
        return _profile_response(auth.profile, app.state.catalog)

    @app.get("/api/admin/profiles/{user_id}", response_model=ProfileResponse)
    async def admin_profile(
        user_id: str,
        auth: AuthContext = Depends(require_role(*config.admin_roles)),
    ):
        row = await app.state.provider.get_profile(user_id)
        if row is None:
            raise NotFoundError("Profile not found")
        return _profile_response(Profile.from_row(row), app.state.catalog)

    @app.post("/api/upload", status_code=201, response_model=UploadResponse)
    async def upload_audio(request: Request, auth: AuthContext = Depends(authenticate)):
        limits = auth.limits
        current_count = auth.profile.monthly_render_count

        if not has_quota_remaining(limits, current_count):
            logger.info(
                f"Render quota exhausted for user {auth.user_id[:8]}... "
                f"({current_count}/{limits.max_monthly_renders})"
            )
            raise QuotaExceededError(
                "Monthly render limit reached for your current plan. "
                "Upgrade to continue rendering."
            )

        try:
            stored = await receive_audio_upload(
                request,
                upload_dir=config.upload_dir,
                max_upload_bytes=limits.max_upload_bytes,
            )
        except UploadServiceError:
            raise
        except ClientDisconnect:
            logger.warning(f"Upload aborted by client for user {auth.user_id[:8]}...")
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        except Exception as e:
            logger.error(f"Upload middleware error: {e}", exc_info=True)
            raise UploadValidationError("Upload failed") from e

        base_url = config.public_base_url or str(request.base_url)
        signed = app.state.signer.issue(
            stored.stored_name, limits.signed_url_ttl_seconds, base_url
        )

        try:
            updated = await app.state.provider.increment_render_count(
                auth.user_id, current_count
            )
        except Exception as e:
            # the file is already stored; report the miss instead of failing
            logger.error(f"Failed to record render usage: {e}", exc_info=True)
            updated = None
        usage_recorded = updated is not None
        next_count = current_count
        if usage_recorded:
            recorded = updated.get("monthly_render_count")
            if isinstance(recorded, int) and not isinstance(recorded, bool):
                next_count = recorded
        else:
            logger.warning(
                f"Upload {stored.stored_name} stored but render count for user "
                f"{auth.user_id[:8]}... was not updated"
            )

        logger.info(
            f"Stored {stored.stored_name} ({stored.size} bytes, {stored.mime_type}) "
            f"for plan {auth.plan.key}"
        )
        return UploadResponse(
            audioUrl=signed.url,
            expiresAt=signed.expires_at,
            originalName=stored.original_name,
            size=stored.size,
            mimeType=stored.mime_type,
            plan=auth.plan.key,
            planLimits=limits.snapshot(next_count),
            usageRecorded=usage_recorded,
        )

    @app.get("/api/download/{file_name}")
    async def download_audio(
        file_name: str,
        expires: Optional[str] = Query(None),
        token: Optional[str] = Query(None),
    ):
        if not app.state.signer.verify(file_name, expires, token):
            raise SignatureInvalidError()

        path = resolve_stored_path(config.upload_dir, file_name)
        if path is None or not await aiofiles.os.path.isfile(path):
            raise NotFoundError()

        media_type, _ = mimetypes.guess_type(file_name)
        return FileResponse(path, media_type=media_type or "application/octet-stream")

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _config = app.state.config
    uvicorn.run(app, host=_config.host, port=_config.port, log_level=_config.log_level.lower())
