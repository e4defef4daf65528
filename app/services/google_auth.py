"""
Google bearer token verification for end-user requests.

The browser signs in with Google and sends its access token; the API
resolves it to a user profile through the userinfo endpoint.
"""

import httpx
from structlog import get_logger

from app.exceptions import AuthenticationError
from app.models.domain import OAuthUser

logger = get_logger(__name__)


class GoogleUserInfoClient:
    """Resolves Google access tokens to user profiles."""

    def __init__(
        self,
        userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.userinfo_url = userinfo_url
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Get HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=10.0)
        return self._http_client

    async def get_user_info(self, access_token: str) -> OAuthUser:
        """
        Get user information from Google.

        Raises:
            AuthenticationError: Token rejected, or profile has no email
        """
        if not access_token:
            raise AuthenticationError("missing access token")

        try:
            response = await self.http_client.get(
                self.userinfo_url, headers={"Authorization": f"Bearer {access_token}"}
            )
            response.raise_for_status()
            user_data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning("user_info_fetch_failed", status=e.response.status_code)
            raise AuthenticationError(f"token rejected ({e.response.status_code})") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("user_info_error", error=str(e))
            raise AuthenticationError("could not verify token") from e

        try:
            return OAuthUser(
                id=str(user_data.get("id", "")),
                email=user_data.get("email", ""),
                name=user_data.get("name"),
                picture=user_data.get("picture"),
            )
        except ValueError as e:
            raise AuthenticationError(str(e)) from e

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
