from __future__ import annotations


class BoxcheckrError(Exception):
    """Base error for BoxCheckr."""

    status_code = 500

    def __init__(self, message: str = "Request failed"):
        super().__init__(message)
        self.message = message


class AuthenticationError(BoxcheckrError):
    """Missing, malformed or unknown credential or session."""

    status_code = 401


class AuthorizationError(BoxcheckrError):
    """Authenticated, but not the owner and not an admin."""

    status_code = 403


class NotFoundError(BoxcheckrError):
    """Entity absent, or a share link that has expired."""

    status_code = 404


class ValidationError(BoxcheckrError):
    """Malformed input."""

    status_code = 400


class IdentityProviderError(BoxcheckrError):
    """Login could not be completed against the identity provider."""

    status_code = 502


class IdentityProviderConfigError(IdentityProviderError):
    """Issuer or client credentials are not configured."""
