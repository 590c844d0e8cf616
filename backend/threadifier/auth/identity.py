"""Identity-token verification for tokens issued by the external identity provider."""

from jose import JWTError, jwt

from threadifier.config import settings


class InvalidIdentityToken(Exception):
    """The bearer token failed verification or names no user."""


def decode_identity_token(token: str) -> dict:
    """Decode and verify an identity-provider ID token.

    Args:
        token: Encoded JWT string from the ``Authorization: Bearer`` header.

    Returns:
        Decoded claims dictionary.

    Raises:
        jose.JWTError: If the signature, expiry, audience or issuer is invalid.
    """
    options = {"verify_aud": settings.identity_token_audience is not None}
    return jwt.decode(
        token,
        settings.identity_token_key,
        algorithms=[settings.identity_token_algorithm],
        audience=settings.identity_token_audience,
        issuer=settings.identity_token_issuer,
        options=options,
    )


def get_uid(token: str) -> str:
    """Return the user id carried by a verified token.

    Raises:
        InvalidIdentityToken: If the token is invalid or has no subject.
    """
    try:
        claims = decode_identity_token(token)
    except JWTError as e:
        raise InvalidIdentityToken(str(e)) from e

    uid = claims.get("sub") or claims.get("user_id")
    if not uid:
        raise InvalidIdentityToken("Token has no subject")
    return uid
