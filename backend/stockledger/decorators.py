# Overview: Request and role decorators for API routes.

from functools import wraps

from flask import g, request

from .errors import PermissionDeniedError, UnauthenticatedError
from .services import session_service


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'actor_id')


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.actor_id: The user id recorded as created_by/updated_by
    - g.session_context: The full SessionContext object

    Raises UnauthenticatedError (401) if the header is missing or the token
    is invalid, expired or revoked.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            raise UnauthenticatedError("Authentication required")

        context = session_service.resolve_actor(token)

        g.current_user = context.user
        g.actor_id = context.actor_id
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles. Must be stacked under @require_auth.

    Raises PermissionDeniedError (403) otherwise.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise UnauthenticatedError("Authentication required")

            if g.current_user.role not in roles:
                raise PermissionDeniedError(
                    "Permission denied",
                    required_role=roles[0] if len(roles) == 1 else list(roles),
                )

            return f(*args, **kwargs)

        return decorated_function
    return decorator
