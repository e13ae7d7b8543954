from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from consultbook.config import settings
from consultbook.domain import Actor, ActorRole
from consultbook.exceptions import Forbidden


# ==========================
# AUTH CONFIG
# ==========================

# Tokens are issued by the identity service; this core only verifies them.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")

REQUEST_ROLES = {ActorRole.USER, ActorRole.CONSULTANT, ActorRole.ADMIN}


# ==========================
# AUTH HELPERS
# ==========================

def decode_actor(token: str) -> Actor:
    """
    Turn a bearer token into an Actor. The ``sub`` claim is the numeric id
    of the user or consultant, ``role`` one of user/consultant/admin.

    Raises:
        JWTError: bad signature, expired, or malformed claims
    """
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM]
    )

    subject = payload.get("sub")
    role = payload.get("role")
    if subject is None or role is None:
        raise JWTError("missing sub or role claim")

    try:
        actor_role = ActorRole(str(role).lower())
        actor_id = int(subject)
    except ValueError as exc:
        raise JWTError("malformed sub or role claim") from exc

    if actor_role not in REQUEST_ROLES:
        raise JWTError("role not accepted from requests")

    return Actor(id=actor_id, role=actor_role)


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        return decode_actor(token)
    except JWTError:
        raise credentials_exception


def require_role(*roles: ActorRole):
    """Dependency factory restricting a route to the given roles."""
    allowed = set(roles)

    def dependency(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed:
            names = " or ".join(sorted(r.value for r in allowed))
            raise Forbidden(f"Only {names} accounts can perform this action")
        return actor

    return dependency
