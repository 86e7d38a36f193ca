"""Authentication and authorization dependencies.

- Authenticated: any valid bearer token with an email claim
- Entitled: authenticated and granted access by the entitlement resolver
- Admin: authenticated and listed in the admin allowlist
"""
from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..config.loader import Config, get_config
from ..dependencies import get_entitlement_resolver
from ..services.entitlements import AccessDecision, EntitlementResolver, normalize_email
from .jwt import JWTHandler

# HTTP Bearer token scheme; missing credentials are reported as 401 below
security = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """Authenticated caller."""
    email: str
    claims: dict = field(default_factory=dict)

    @property
    def first_name(self):
        return self.claims.get("given_name")

    @property
    def last_name(self):
        return self.claims.get("family_name")


def get_jwt_handler(config: Config = Depends(get_config)) -> JWTHandler:
    return JWTHandler(
        secret_key=config.api.jwt_secret,
        algorithm=config.api.jwt_algorithm,
        audience=config.api.jwt_audience,
    )


async def get_current_user(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
    jwt_handler: JWTHandler = Depends(get_jwt_handler),
) -> CurrentUser:
    """Extract and validate the caller from the bearer token.

    Raises:
        HTTPException: 401 if the token is missing, invalid or has no email
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    claims = jwt_handler.decode_access_token(credentials.credentials)
    email = normalize_email(claims.get("email"))
    if not email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token does not carry an email"
        )

    # Attach user to request state for logging
    request.state.user = claims

    return CurrentUser(email=email, claims=claims)


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
) -> CurrentUser:
    """Allow only emails on the admin allowlist."""
    if not resolver.is_admin(current_user.email):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_user


async def require_access(
    current_user: CurrentUser = Depends(get_current_user),
    resolver: EntitlementResolver = Depends(get_entitlement_resolver),
) -> AccessDecision:
    """Allow only callers with an active entitlement."""
    decision = resolver.resolve(current_user.email)
    if not decision.has_access:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="An active subscription is required"
        )
    return decision
