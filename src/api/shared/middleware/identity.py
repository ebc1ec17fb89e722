"""
Caller Identity

Authentication is delegated to the edge; it forwards the authenticated
user name in the X-User-Name header. Routes that act on behalf of a user
depend on require_user.
"""

from typing import Optional

from fastapi import Header

from ..exceptions import UnauthorizedError

USER_HEADER = "X-User-Name"


def get_current_user(
    x_user_name: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> Optional[str]:
    """The forwarded user name, if any."""
    if x_user_name and x_user_name.strip():
        return x_user_name.strip()
    return None


def require_user(
    x_user_name: Optional[str] = Header(default=None, alias=USER_HEADER),
) -> str:
    """
    Require an authenticated caller.

    Raises:
        UnauthorizedError: header missing or blank
    """
    user = get_current_user(x_user_name)
    if user is None:
        raise UnauthorizedError()
    return user
