"""
Identity and profile provider client.

The hosted backend (Supabase conventions) owns authentication and the
``profiles`` table. Routes depend on the ``IdentityProvider`` protocol so tests
can swap in an in-memory implementation.

Failure policy: reads degrade to ``None`` (logged) so a flaky provider falls
back to "unknown user" / "no profile"; only ``create_profile`` raises, because
the request cannot continue without the row it asked for.
"""

import logging
from typing import Any, Optional, Protocol

import httpx

from errors import UpstreamProviderError
from models import DEFAULT_PLAN_KEY, DEFAULT_ROLE, ProfileRowDict, ProviderUserDict

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = (
    "id,plan,role,monthly_render_count,monthly_render_limit,upload_override_bytes"
)


class IdentityProvider(Protocol):
    async def resolve_user(self, access_token: str) -> Optional[ProviderUserDict]:
        ...

    async def get_profile(self, user_id: str) -> Optional[ProfileRowDict]:
        ...

    async def create_profile(self, user: ProviderUserDict) -> ProfileRowDict:
        ...

    async def increment_render_count(
        self, user_id: str, current_count: Optional[int]
    ) -> Optional[ProfileRowDict]:
        ...

    async def aclose(self) -> None:
        ...


def _first_row(body: Any) -> Optional[dict]:
    if isinstance(body, list):
        return body[0] if body else None
    if isinstance(body, dict):
        return body
    return None


class SupabaseProvider:
    """REST client for the hosted auth + profiles backend."""

    def __init__(
        self,
        base_url: Optional[str],
        service_role_key: Optional[str],
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = (base_url or "").rstrip("/")
        self.service_role_key = service_role_key
        self.timeout = timeout
        self.client = client

    @property
    def configured(self) -> bool:
        return bool(self.base_url and self.service_role_key)

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self.client is None:
            self.client = httpx.AsyncClient(timeout=self.timeout)
        return self.client

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()
            self.client = None

    def _service_headers(self) -> dict:
        return {
            "apikey": self.service_role_key or "",
            "Authorization": f"Bearer {self.service_role_key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation",
        }

    async def resolve_user(self, access_token: str) -> Optional[ProviderUserDict]:
        """Look up the user owning ``access_token``; None when unknown."""
        if not access_token or not self.configured:
            return None

        try:
            response = await self._get_client().get(
                f"{self.base_url}/auth/v1/user",
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "apikey": self.service_role_key,
                },
            )
        except httpx.HTTPError as e:
            logger.error(f"Identity provider unreachable while resolving user: {e}")
            return None

        if response.status_code != 200:
            logger.info(f"Access token rejected by identity provider ({response.status_code})")
            return None

        try:
            body = response.json()
        except ValueError:
            logger.error("Identity provider returned a non-JSON user payload")
            return None
        return body if isinstance(body, dict) else None

    async def get_profile(self, user_id: str) -> Optional[ProfileRowDict]:
        if not user_id or not self.configured:
            return None

        try:
            response = await self._get_client().get(
                f"{self.base_url}/rest/v1/profiles",
                params={"id": f"eq.{user_id}", "select": PROFILE_COLUMNS},
                headers=self._service_headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Unable to fetch profile: {e}")
            return None

        if not response.is_success:
            logger.error(f"Unable to fetch profile: {response.text}")
            return None

        try:
            return _first_row(response.json())
        except ValueError:
            logger.error("Profile lookup returned a non-JSON payload")
            return None

    async def create_profile(self, user: ProviderUserDict) -> ProfileRowDict:
        """
        Provision a profile on the lowest plan with zero usage.

        Raises:
            UpstreamProviderError: provider not configured, unreachable, or the
                insert was rejected
        """
        if not self.configured:
            raise UpstreamProviderError("Identity provider is not configured")

        row: ProfileRowDict = {
            "id": user["id"],
            "email": user.get("email"),
            "plan": DEFAULT_PLAN_KEY,
            "role": DEFAULT_ROLE,
            "monthly_render_count": 0,
            "monthly_render_limit": None,
            "upload_override_bytes": None,
        }

        try:
            response = await self._get_client().post(
                f"{self.base_url}/rest/v1/profiles",
                json=row,
                headers=self._service_headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Unable to provision profile: {e}")
            raise UpstreamProviderError("Failed to provision profile") from e

        if not response.is_success:
            logger.error(f"Unable to provision profile: {response.text}")
            raise UpstreamProviderError("Failed to provision profile")

        try:
            created = _first_row(response.json())
        except ValueError:
            created = None
        # an empty representation still means the insert succeeded
        return created or row

    async def increment_render_count(
        self, user_id: str, current_count: Optional[int]
    ) -> Optional[ProfileRowDict]:
        """
        Write ``current_count + 1`` back to the profile.

        Plain read-modify-write: concurrent uploads by one user may undercount.
        Returns the updated row, or None when the update failed.
        """
        if not user_id or not self.configured:
            return None

        next_count = current_count + 1 if isinstance(current_count, int) else 1

        try:
            response = await self._get_client().patch(
                f"{self.base_url}/rest/v1/profiles",
                params={"id": f"eq.{user_id}"},
                json={"monthly_render_count": next_count},
                headers=self._service_headers(),
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to increment render count: {e}")
            return None

        if not response.is_success:
            logger.error(f"Failed to increment render count: {response.text}")
            return None

        try:
            return _first_row(response.json())
        except ValueError:
            logger.error("Render count update returned a non-JSON payload")
            return None
