"""GitHub OAuth2 provider client.

Builds the authorization URL, exchanges authorization codes for access
tokens and reads the authenticated user's profile and emails from the
REST API. GitHub tokens issued to OAuth Apps do not expire, so there is
no refresh-token grant here.
"""

# pylint: disable=logging-too-many-args

from __future__ import annotations

import logging

from typing import Any
from urllib.parse import urlencode

import httpx

from pydantic import ValidationError

from ..exceptions import ProfileFetchError, TokenExchangeError
from ..log import redact_sensitive_data
from ..models import GitHubEmail, GitHubUser, TokenResponse


logger = logging.getLogger("octosession.auth")

_API_ACCEPT = "application/vnd.github.v3+json"


class GitHubProvider:
    """GitHub OAuth App client.

    Parameters
    ----------
    client_id : str
        GitHub OAuth App client ID.
    client_secret : str
        GitHub OAuth App client secret.
    scopes : list[str], optional
        Requested scopes (defaults to ``["user:email", "read:user"]``).
    authorize_url : str
        The authorization endpoint.
    token_url : str
        The token exchange endpoint.
    api_url : str
        Base URL of the REST API.
    user_agent : str
        ``User-Agent`` sent with every request (GitHub rejects requests
        without one).
    """

    name = "github"

    def __init__(
        self,
        client_id: str,
        client_secret: str = "",
        scopes: list[str] | None = None,
        authorize_url: str = "https://github.com/login/oauth/authorize",
        token_url: str = "https://github.com/login/oauth/access_token",  # noqa: S107
        api_url: str = "https://api.github.com",
        user_agent: str = "octosession",
    ) -> None:
        """Initialize GitHub provider."""
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes or ["user:email", "read:user"]
        self.authorize_url = authorize_url
        self.token_url = token_url
        self.api_url = api_url.rstrip("/")
        self.user_agent = user_agent
        self._http_client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(cls, settings: Any) -> GitHubProvider:
        """Create a provider from ``GitHubOAuthSettings``."""
        return cls(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            scopes=list(settings.scopes),
            authorize_url=settings.authorize_url,
            token_url=settings.token_url,
            api_url=settings.api_url,
            user_agent=settings.user_agent,
        )

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client. Call from app shutdown lifecycle."""
        if self._http_client is not None and not self._http_client.is_closed:
            await self._http_client.aclose()
            self._http_client = None

    def build_authorize_url(self, redirect_uri: str, state: str) -> str:
        """Build the full authorization URL.

        Parameters
        ----------
        redirect_uri : str
            The callback URL to redirect to after authorization.
        state : str
            CSRF protection nonce.

        Returns
        -------
        str
            The full authorization URL.
        """
        params: dict[str, str] = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
            "response_type": "code",
        }
        return f"{self.authorize_url}?{urlencode(params)}"

    def _api_headers(self, access_token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {access_token}",
            "Accept": _API_ACCEPT,
            "User-Agent": self.user_agent,
        }

    async def exchange_code_for_token(self, code: str) -> TokenResponse:
        """Exchange an authorization code for an access token.

        Parameters
        ----------
        code : str
            The authorization code from the callback.

        Returns
        -------
        TokenResponse
            The token endpoint's response.

        Raises
        ------
        TokenExchangeError
            If the request fails, GitHub reports an error, or the response
            carries no access token.
        """
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
        }

        try:
            client = await self._get_client()
            resp = await client.post(
                self.token_url,
                data=data,
                headers={"Accept": "application/json", "User-Agent": self.user_agent},
                timeout=30.0,
            )
            resp.raise_for_status()
            raw = resp.json()
        except httpx.HTTPStatusError as exc:
            msg = f"GitHub token exchange failed: HTTP {exc.response.status_code}"
            raise TokenExchangeError(msg, provider=self.name) from exc
        except httpx.HTTPError as exc:
            msg = f"GitHub token exchange request failed: {exc}"
            raise TokenExchangeError(msg, provider=self.name) from exc
        except ValueError as exc:
            msg = f"GitHub token endpoint returned invalid JSON: {exc}"
            raise TokenExchangeError(msg, provider=self.name) from exc

        logger.debug("Token response: %s", redact_sensitive_data(raw))

        if not isinstance(raw, dict):
            msg = "GitHub token endpoint returned an unexpected payload"
            raise TokenExchangeError(msg, provider=self.name)

        tokens = TokenResponse.model_validate(raw)
        if tokens.error:
            msg = f"GitHub token error: {tokens.error}"
            if tokens.error_description:
                msg = f"{msg} - {tokens.error_description}"
            raise TokenExchangeError(msg, provider=self.name, error=tokens.error)

        if not tokens.access_token:
            msg = "No access token in GitHub token response"
            raise TokenExchangeError(msg, provider=self.name)

        logger.info("Obtained GitHub access token (scope=%s)", tokens.scope)
        return tokens

    async def _get_json(self, path: str, access_token: str) -> Any:
        url = f"{self.api_url}{path}"
        try:
            client = await self._get_client()
            resp = await client.get(url, headers=self._api_headers(access_token), timeout=10.0)
        except httpx.HTTPError as exc:
            msg = f"GitHub API request to {path} failed: {exc}"
            raise ProfileFetchError(msg, provider=self.name) from exc

        if not resp.is_success:
            msg = f"GitHub API {path} returned HTTP {resp.status_code}: {resp.text}"
            raise ProfileFetchError(msg, status_code=resp.status_code, provider=self.name)

        try:
            return resp.json()
        except ValueError as exc:
            msg = f"GitHub API {path} returned invalid JSON"
            raise ProfileFetchError(msg, status_code=resp.status_code, provider=self.name) from exc

    async def get_user_info(self, access_token: str) -> GitHubUser:
        """Fetch the authenticated user's profile.

        Parameters
        ----------
        access_token : str
            A GitHub access token.

        Returns
        -------
        GitHubUser
            The user profile.

        Raises
        ------
        ProfileFetchError
            On transport failure or a non-2xx response.
        """
        raw = await self._get_json("/user", access_token)
        try:
            user = GitHubUser.model_validate(raw)
        except ValidationError as exc:
            msg = f"Unexpected GitHub profile payload: {exc.error_count()} invalid field(s)"
            raise ProfileFetchError(msg, provider=self.name) from exc
        logger.debug("Fetched GitHub profile for %s (id=%s)", user.login, user.id)
        return user

    async def get_user_emails(self, access_token: str) -> list[GitHubEmail]:
        """Fetch the authenticated user's email addresses.

        Parameters
        ----------
        access_token : str
            A GitHub access token with the ``user:email`` scope.

        Returns
        -------
        list[GitHubEmail]
            All addresses on the account.
        """
        raw = await self._get_json("/user/emails", access_token)
        if not isinstance(raw, list):
            msg = "Unexpected GitHub email payload"
            raise ProfileFetchError(msg, provider=self.name)
        try:
            return [GitHubEmail.model_validate(item) for item in raw]
        except ValidationError as exc:
            msg = "Unexpected GitHub email entry"
            raise ProfileFetchError(msg, provider=self.name) from exc

    async def get_primary_email(self, access_token: str) -> str | None:
        """Return the primary verified email, or None.

        Email is an optional enrichment; failures degrade to None.
        """
        try:
            emails = await self.get_user_emails(access_token)
        except ProfileFetchError as exc:
            logger.warning("Could not fetch GitHub emails, using profile email: %s", exc)
            return None
        for entry in emails:
            if entry.primary and entry.verified:
                return entry.email
        return None

    async def get_complete_user_profile(self, access_token: str) -> GitHubUser:
        """Fetch the profile, filling in the primary email when it is hidden.

        Parameters
        ----------
        access_token : str
            A GitHub access token.

        Returns
        -------
        GitHubUser
            The profile, with ``primary_email`` set when the public
            ``email`` is empty and a primary verified address exists.
        """
        user = await self.get_user_info(access_token)
        if user.email:
            return user
        primary_email = await self.get_primary_email(access_token)
        if primary_email is None:
            return user
        return user.model_copy(update={"primary_email": primary_email})
