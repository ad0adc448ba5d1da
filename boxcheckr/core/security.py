"""Bearer-secret helpers.

Enrollment tokens and share-link ids are stored in plaintext: the token is
embedded in every agent script download and the link id is shown to admins
on the share page, so neither can be a one-way hash.
"""

import secrets


def generate_token(nbytes: int = 32) -> str:
    return secrets.token_urlsafe(nbytes)


def generate_state() -> str:
    return secrets.token_urlsafe(16)


def extract_bearer_token(header: str | None) -> str | None:
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
