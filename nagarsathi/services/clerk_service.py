"""
Clerk identity provider client.

Session tokens are verified locally against the instance's PEM public key
(no network round trip). The backend API is only called to fetch the
profile of a subject we have never seen before.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp
from jose import JWTError, jwt

from nagarsathi.core import config

logger = logging.getLogger(__name__)


class ClerkError(Exception):
    """Token verification or Clerk API failure."""


class ClerkClient:
    def __init__(
        self,
        secret_key: str,
        jwt_key: str,
        api_url: str = config.CLERK_API_URL,
        authorized_parties: Optional[List[str]] = None,
        timeout_seconds: float = config.HTTP_TIMEOUT_SECONDS,
    ):
        self.secret_key = secret_key
        self.jwt_key = jwt_key
        self.api_url = api_url.rstrip("/")
        self.authorized_parties = authorized_parties or []
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls) -> "ClerkClient":
        if not config.CLERK_JWT_KEY:
            logger.warning("⚠️ CLERK_JWT_KEY is not set - every bearer token will be rejected")
        if not config.CLERK_SECRET_KEY:
            logger.warning("⚠️ CLERK_SECRET_KEY is not set - new users cannot be provisioned")
        return cls(
            secret_key=config.CLERK_SECRET_KEY,
            jwt_key=config.CLERK_JWT_KEY,
            api_url=config.CLERK_API_URL,
            authorized_parties=config.CLERK_AUTHORIZED_PARTIES,
        )

    async def start(self):
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                headers={"Authorization": f"Bearer {self.secret_key}"},
            )

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    def verify_token(self, token: str) -> Dict[str, Any]:
        """Return the verified claims of a session token or raise ClerkError."""
        if not self.jwt_key:
            raise ClerkError("Token verification key is not configured")
        try:
            claims = jwt.decode(
                token,
                self.jwt_key,
                algorithms=config.CLERK_ALGORITHMS,
                options={"verify_aud": False},
            )
        except JWTError as e:
            raise ClerkError(f"Invalid session token: {e}") from e

        if not claims.get("sub"):
            raise ClerkError("Session token has no subject")
        azp = claims.get("azp")
        if self.authorized_parties and azp and azp not in self.authorized_parties:
            raise ClerkError(f"Unauthorized party: {azp}")
        return claims

    async def get_user(self, user_id: str) -> Dict[str, Any]:
        """Fetch a user from the Clerk backend API."""
        await self.start()
        url = f"{self.api_url}/users/{user_id}"
        try:
            async with self._session.get(url) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise ClerkError(f"Clerk API returned {resp.status}: {body[:200]}")
                return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ClerkError(f"Clerk API request failed: {e!r}") from e

    @staticmethod
    def profile_from_user(clerk_user: Dict[str, Any]) -> Dict[str, str]:
        """Map a Clerk user payload onto the local user fields."""
        addresses = clerk_user.get("email_addresses") or []
        primary_id = clerk_user.get("primary_email_address_id")
        email = ""
        for address in addresses:
            if address.get("id") == primary_id:
                email = address.get("email_address", "")
                break
        if not email and addresses:
            email = addresses[0].get("email_address", "")

        name = f"{clerk_user.get('first_name') or ''} {clerk_user.get('last_name') or ''}".strip()
        return {
            "clerkUserId": clerk_user["id"],
            "email": email,
            "name": name or "Anonymous User",
            "avatar": clerk_user.get("image_url") or "",
        }
