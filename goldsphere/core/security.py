"""
Security module for the GoldSphere order service.

Provides:
- JWT encoding and decoding
- Resolution of the request principal, re-verified against the database
- Role-based access checks for order resources

Token issuance for end users (login, refresh) lives in the account service;
``create_access_token`` exists for tooling and tests.
"""

import datetime
import logging
import uuid
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import BaseModel

from goldsphere.core.config import Settings, get_settings
from goldsphere.core.database import PostgresDB, get_db
from goldsphere.core.error_handling import AuthenticationError, AuthorizationError
from goldsphere.models.user import User

logger = logging.getLogger(__name__)


#################################################
# Data Models
#################################################

class Principal(BaseModel):
    """Verified identity attached to a request."""
    id: uuid.UUID
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == Roles.ADMIN


class TokenData(BaseModel):
    """Data extracted from a JWT."""
    sub: str
    email: Optional[str] = None
    role: Optional[str] = None
    exp: Optional[datetime.datetime] = None


class Roles:
    """Role definitions for role-based access control."""
    ADMIN = "admin"
    USER = "user"


#################################################
# Security Configuration
#################################################

bearer_scheme = HTTPBearer(auto_error=False)


#################################################
# JWT Token Functions
#################################################

def create_access_token(
    data: Dict[str, Any],
    expires_delta: Optional[datetime.timedelta] = None,
    settings: Optional[Settings] = None
) -> str:
    """
    Create a new JWT access token.
    
    Args:
        data: Claims to encode; ``sub`` should hold the user id
        expires_delta: Optional custom expiration time
        settings: Settings providing the key and algorithm
        
    Returns:
        Encoded JWT token string
    """
    settings = settings or get_settings()
    to_encode = data.copy()

    now = datetime.datetime.now(datetime.timezone.utc)
    expire = now + (expires_delta or datetime.timedelta(
        minutes=settings.security.ACCESS_TOKEN_EXPIRE_MINUTES
    ))
    to_encode.update({"exp": expire})

    return jwt.encode(
        to_encode,
        settings.security.SECRET_KEY,
        algorithm=settings.security.ALGORITHM
    )


def decode_access_token(token: str, settings: Optional[Settings] = None) -> TokenData:
    """
    Decode and validate a JWT.

    Raises:
        AuthenticationError: If the token is malformed, expired or lacks a subject
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.security.SECRET_KEY,
            algorithms=[settings.security.ALGORITHM]
        )
    except JWTError as e:
        raise AuthenticationError("Could not validate credentials", component="security") from e

    if not payload.get("sub"):
        raise AuthenticationError("Token has no subject", component="security")

    return TokenData(
        sub=str(payload["sub"]),
        email=payload.get("email"),
        role=payload.get("role"),
        exp=payload.get("exp"),
    )


#################################################
# Principal Resolution
#################################################

def load_principal(db: PostgresDB, token_data: TokenData) -> Principal:
    """
    Re-read the token's user so role and active flag reflect the database.

    Raises:
        AuthenticationError: If the user is unknown or deactivated
    """
    try:
        user_id = uuid.UUID(token_data.sub)
    except ValueError as e:
        raise AuthenticationError("Invalid token subject", component="security") from e

    with db.session() as session:
        user = session.get(User, user_id)
        if user is None or not user.is_active:
            logger.warning(f"Rejected token for missing or inactive user {user_id}")
            raise AuthenticationError("User not found or inactive", component="security")
        return Principal(id=user.id, email=user.email, role=user.role)


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: PostgresDB = Depends(get_db)
) -> Principal:
    """
    Resolve the authenticated principal for a request.

    Returns:
        Principal with the user's current role

    Raises:
        AuthenticationError: If the bearer token is missing or invalid
    """
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Authentication required", component="security")

    principal = load_principal(db, decode_access_token(credentials.credentials))
    request.state.user = principal
    return principal


#################################################
# Role-Based Access Control
#################################################

def ensure_order_access(principal: Principal, owner_id: uuid.UUID, resource: str = "order") -> None:
    """
    Allow the owner of an order (or of a position) or an administrator.

    Raises:
        AuthorizationError: For any other principal
    """
    if principal.is_admin or principal.id == owner_id:
        return
    logger.info(f"User {principal.id} denied access to {resource} owned by {owner_id}")
    raise AuthorizationError(
        f"Not allowed to access this {resource}",
        context={"user_id": str(principal.id)},
        component="security"
    )


def require_admin(principal: Principal) -> None:
    """
    Raises:
        AuthorizationError: If the principal is not an administrator
    """
    if principal.is_admin:
        return
    logger.info(f"User {principal.id} denied access to an admin resource")
    raise AuthorizationError(
        "Admin role required",
        context={"user_id": str(principal.id), "role": principal.role},
        component="security"
    )
