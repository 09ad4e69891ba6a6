"""Pydantic models for GitHub API payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class GitHubUser(BaseModel):
    """Profile of the authenticated GitHub user (``GET /user``).

    Unknown fields returned by the API are kept so a refreshed snapshot
    round-trips through the store without loss.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: int
    login: str
    name: str | None = None
    email: str | None = None
    avatar_url: str = ""
    bio: str | None = None
    public_repos: int = 0
    followers: int = 0
    following: int = 0
    created_at: str | None = None

    # Filled in from /user/emails when the profile hides the address
    primary_email: str | None = None

    @property
    def display_name(self) -> str:
        """Name to show in the UI, falling back to the login handle."""
        return self.name or self.login

    @property
    def best_email(self) -> str | None:
        """Public profile email, or the primary verified email."""
        return self.email or self.primary_email


class GitHubEmail(BaseModel):
    """Entry of ``GET /user/emails``."""

    email: str
    primary: bool = False
    verified: bool = False
    visibility: str | None = None


class TokenResponse(BaseModel):
    """Body returned by the token endpoint.

    GitHub answers ``200 OK`` even for failures and reports them through
    ``error`` / ``error_description``.
    """

    model_config = ConfigDict(extra="allow")

    access_token: str = ""
    token_type: str = "bearer"  # noqa: S105
    scope: str = ""
    error: str | None = None
    error_description: str | None = None

    @property
    def scopes(self) -> list[str]:
        """Granted scopes as a list (GitHub comma-separates them)."""
        return [s for s in self.scope.replace(",", " ").split() if s]

