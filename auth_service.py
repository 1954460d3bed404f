import logging
from typing import Optional

import jwt

from config import settings
from errors import AuthenticationError

logger = logging.getLogger(__name__)


class AuthService:
    """
    Resolves bearer credentials to a user identity.

    Tokens are issued by the hosted auth provider as signed JWTs; the user id is
    their ``sub`` claim. Issuing tokens is someone else's job.
    """

    def __init__(self,
                 secret: Optional[str] = None,
                 algorithm: Optional[str] = None,
                 audience: Optional[str] = None):
        self.secret = settings.AUTH_JWT_SECRET if secret is None else secret
        self.algorithm = algorithm or settings.AUTH_JWT_ALGORITHM
        self.audience = settings.AUTH_JWT_AUDIENCE if audience is None else audience
        if not self.secret:
            logger.warning("AUTH_JWT_SECRET not configured; every bearer token will be rejected")

    def resolve(self, authorization: Optional[str]) -> Optional[str]:
        if not authorization or not self.secret:
            return None
        scheme, _, token = authorization.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        try:
            claims = jwt.decode(
                token.strip(),
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience or None,
                options={"require": ["sub"], "verify_aud": bool(self.audience)},
            )
        except jwt.InvalidTokenError as e:
            logger.info(f"Rejected bearer token: {str(e)}")
            return None
        return claims["sub"] or None

    def require_user(self, authorization: Optional[str]) -> str:
        user_id = self.resolve(authorization)
        if not user_id:
            raise AuthenticationError("Unauthorized")
        return user_id
