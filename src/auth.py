"""
Bearer-token authentication against the identity provider.

``authenticate`` is a FastAPI dependency: it resolves the token to a user,
fetches or provisions the profile, and attaches plan and effective limits for
downstream handlers.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Request

from errors import AccessDeniedError, AuthError, UploadServiceError, UpstreamProviderError
from identity_provider import IdentityProvider
from models import Profile, ProviderUserDict
from plans import EffectiveLimits, Plan, PlanCatalog, effective_limits

logger = logging.getLogger(__name__)

BEARER_PREFIX = "Bearer "


@dataclass(frozen=True)
class AuthContext:
    user: ProviderUserDict
    profile: Profile
    plan: Plan
    limits: EffectiveLimits
    access_token: str

    @property
    def user_id(self) -> str:
        return str(self.user["id"])

    @property
    def role(self) -> Optional[str]:
        return self.profile.role


def parse_bearer_token(authorization: Optional[str]) -> str:
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise AuthError("Missing authorization header")
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise AuthError("Invalid authorization header")
    return token


async def load_profile(provider: IdentityProvider, user: ProviderUserDict) -> Profile:
    """
    Fetch the user's profile, provisioning it on first sight.

    A failed lookup is treated as absent. A failed creation is followed by one
    more lookup and raises ``UpstreamProviderError`` only if that finds nothing.
    """
    row = await provider.get_profile(user["id"])
    if row is None:
        logger.info(f"Provisioning profile for user {str(user['id'])[:8]}...")
        try:
            row = await provider.create_profile(user)
        except UpstreamProviderError:
            # a concurrent request may have inserted the row first
            row = await provider.get_profile(user["id"])
            if row is None:
                raise
            logger.info(f"Profile for user {str(user['id'])[:8]}... already provisioned")
    return Profile.from_row(row)


async def resolve_auth_context(
    provider: IdentityProvider,
    catalog: PlanCatalog,
    authorization: Optional[str],
) -> AuthContext:
    access_token = parse_bearer_token(authorization)

    user = await provider.resolve_user(access_token)
    if not user or not user.get("id"):
        raise AuthError("Invalid access token")

    profile = await load_profile(provider, user)
    plan = catalog.resolve_plan(profile.plan)

    return AuthContext(
        user=user,
        profile=profile,
        plan=plan,
        limits=effective_limits(plan, profile),
        access_token=access_token,
    )


async def authenticate(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> AuthContext:
    """Dependency for routes that require a signed-in user."""
    state = request.app.state
    try:
        return await resolve_auth_context(state.provider, state.catalog, authorization)
    except UploadServiceError:
        raise
    except Exception as e:
        logger.error(f"Authentication failure: {e}", exc_info=True)
        raise UpstreamProviderError("Failed to authenticate request") from e


def require_role(*allowed_roles: str):
    """Dependency factory restricting a route to ``allowed_roles`` (any role if empty)."""

    async def check_role(auth: AuthContext = Depends(authenticate)) -> AuthContext:
        if not auth.role:
            raise AccessDeniedError("Access denied")
        if allowed_roles and auth.role not in allowed_roles:
            logger.warning(f"Role {auth.role!r} denied; requires one of {allowed_roles}")
            raise AccessDeniedError("Insufficient permissions")
        return auth

    return check_role
