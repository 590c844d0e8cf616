"""FastAPI authentication dependencies for route protection."""

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from threadifier.auth.identity import InvalidIdentityToken, get_uid
from threadifier.config import settings
from threadifier.database import get_db
from threadifier.models.user import User
from threadifier.services.user_service import get_user

# auto_error=False so a missing header is a 401, like a bad token
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Verify the bearer identity token and return the matching user.

    Raises:
        HTTPException 401: If the token is missing or invalid.
        HTTPException 404: If the token is valid but no user row exists.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        uid = get_uid(credentials.credentials)
    except InvalidIdentityToken:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    user = await get_user(db, uid)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


async def get_admin_user(user: User = Depends(get_current_user)) -> User:
    """Return the current user only if their email is on the admin list.

    Raises:
        HTTPException 403: If the user is not an operator.
    """
    admin_emails = {email.lower() for email in settings.admin_emails}
    if user.email.lower() not in admin_emails:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized - Admin access only",
        )
    return user
