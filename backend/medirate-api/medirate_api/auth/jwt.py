"""JWT verification for identity-provider bearer tokens."""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import HTTPException, status


class JWTHandler:
    """JWT token handler for authentication."""

    def __init__(
        self,
        secret_key: str,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
        expiration_minutes: int = 1440,
    ):
        """Initialize JWT handler.

        Args:
            secret_key: Key used to verify (and, in tooling, sign) tokens
            algorithm: JWT algorithm (default: HS256)
            audience: Expected `aud` claim, if the issuer sets one
            expiration_minutes: Lifetime of tokens created by this handler
        """
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.audience = audience
        self.expiration_minutes = expiration_minutes

    def create_access_token(self, email: str, **claims) -> str:
        """Create a signed token carrying an email claim.

        Used by operator tooling and tests; production tokens come from the
        identity provider.
        """
        now = datetime.now(timezone.utc)
        payload = {
            "email": email,
            "exp": now + timedelta(minutes=self.expiration_minutes),
            "iat": now,
            **claims,
        }
        if self.audience:
            payload["aud"] = self.audience

        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_access_token(self, token: str) -> dict:
        """Decode and validate a JWT access token.

        Args:
            token: JWT token string

        Returns:
            dict: Decoded token payload

        Raises:
            HTTPException: If token is invalid or expired
        """
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=self.audience,
                options={"verify_aud": self.audience is not None},
            )
        except jwt.ExpiredSignatureError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Token has expired"
            )
        except jwt.InvalidTokenError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token"
            )
