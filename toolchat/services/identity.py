"""Resolution of bearer credentials to authenticated users."""

from typing import ClassVar, Protocol

import httpx

from toolchat.errors import AuthenticationError
from toolchat.models.otp import Identity
from toolchat.utils.logging import get_logger

logger = get_logger(__name__)


def bearer_token(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer ...`` header value.

    Raises:
        AuthenticationError: If the header is missing or empty
    """
    if not authorization:
        raise AuthenticationError("No authorization header")
    token = authorization.removeprefix("Bearer ").strip()
    if not token:
        raise AuthenticationError("No authorization header")
    return token


class IdentityResolver(Protocol):
    """Interface for resolving a bearer credential to a user.

    Implementations return None when the credential is not recognised.
    """

    async def resolve(self, token: str) -> Identity | None: ...


class StaticIdentityResolver:
    """Fixed token-to-user table for local development and tests."""

    DEV_USERS: ClassVar[dict[str, Identity]] = {
        "dev-token": Identity(user_id="user-dev", email="dev@example.com"),
    }

    def __init__(self, users: dict[str, Identity] | None = None):
        self.users = dict(self.DEV_USERS if users is None else users)

    async def resolve(self, token: str) -> Identity | None:
        return self.users.get(token)


class SupabaseIdentityResolver:
    """Resolves access tokens against the Supabase auth API."""

    def __init__(self, client: httpx.AsyncClient, base_url: str, service_key: str):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.service_key = service_key

    async def resolve(self, token: str) -> Identity | None:
        try:
            response = await self.client.get(
                f"{self.base_url}/auth/v1/user",
                headers={"Authorization": f"Bearer {token}", "apikey": self.service_key},
            )
        except httpx.HTTPError as e:
            logger.error(f"Supabase auth lookup failed: {e}")
            return None

        if not response.is_success:
            logger.info(f"Supabase rejected access token with status {response.status_code}")
            return None

        try:
            user = response.json()
        except ValueError:
            logger.error("Supabase auth lookup returned a non-JSON body")
            return None
        if not isinstance(user, dict) or not user.get("id"):
            logger.error("Supabase auth lookup returned no user id")
            return None
        return Identity(user_id=str(user["id"]), email=user.get("email"))


async def authenticate(resolver: IdentityResolver, authorization: str | None) -> Identity:
    """Resolve an Authorization header value to a user.

    Raises:
        AuthenticationError: If the header is missing or the token is not valid
    """
    identity = await resolver.resolve(bearer_token(authorization))
    if identity is None:
        raise AuthenticationError("Invalid token")
    return identity
