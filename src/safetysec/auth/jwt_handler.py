"""
JWT session token generation and validation.

Session tokens issued by the local identity provider are HS256 JWTs.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional, Tuple

import jwt
from loguru import logger


ALGORITHM = "HS256"
SESSION_TOKEN_EXPIRE_MINUTES = 60 * 24 * 30  # 30 days
TOKEN_TYPE = "session"


@dataclass
class SessionClaims:
    """
    Decoded session token.

    Attributes:
        uid: Account identifier (sub claim)
        email: Account email
        email_verified: Whether the email was verified at issue time
        jti: Token ID, matches the session row
        iat: Issued at timestamp
        exp: Expiration timestamp
    """
    uid: str
    email: str
    email_verified: bool
    jti: str
    iat: datetime
    exp: datetime


def load_or_create_secret(path: Path) -> str:
    """
    Load the signing secret, generating and saving one on first use.

    Args:
        path: Secret file location

    Returns:
        Secret string
    """
    if path.exists():
        return path.read_text().strip()

    secret = secrets.token_urlsafe(64)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(secret)
    path.chmod(0o600)
    logger.info(f"Generated session signing secret: {path}")
    return secret


class JWTHandler:
    """
    JWT token handler.

    Creates and validates session tokens.
    """

    def __init__(
        self,
        secret_key: str,
        ttl_minutes: int = SESSION_TOKEN_EXPIRE_MINUTES,
        algorithm: str = ALGORITHM
    ):
        """
        Initialize handler.

        Args:
            secret_key: Secret key for signing tokens
            ttl_minutes: Session lifetime in minutes
            algorithm: JWT algorithm (default: HS256)
        """
        self.secret_key = secret_key
        self.ttl = timedelta(minutes=ttl_minutes)
        self.algorithm = algorithm

    def create_session_token(
        self,
        uid: str,
        email: str,
        email_verified: bool = False
    ) -> Tuple[str, SessionClaims]:
        """
        Create a session token.

        Args:
            uid: Account identifier
            email: Account email
            email_verified: Whether the email is verified

        Returns:
            (token, claims) tuple
        """
        now = datetime.now(timezone.utc)
        claims = SessionClaims(
            uid=uid,
            email=email,
            email_verified=email_verified,
            jti=secrets.token_urlsafe(16),
            iat=now,
            exp=now + self.ttl,
        )

        payload = {
            "iat": claims.iat.timestamp(),
            "exp": claims.exp.timestamp(),
            "sub": claims.uid,
            "email": claims.email,
            "email_verified": claims.email_verified,
            "jti": claims.jti,
            "type": TOKEN_TYPE
        }

        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        logger.debug(f"Session token created for {email}")
        return token, claims

    def verify_token(self, token: str) -> Optional[SessionClaims]:
        """
        Verify and decode a session token.

        Args:
            token: JWT token string

        Returns:
            SessionClaims if valid, None if invalid or expired
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm]
            )

            if payload.get("type") != TOKEN_TYPE:
                logger.warning("Token is not a session token")
                return None

            return SessionClaims(
                uid=payload["sub"],
                email=payload["email"],
                email_verified=bool(payload.get("email_verified", False)),
                jti=payload["jti"],
                iat=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )

        except jwt.ExpiredSignatureError:
            logger.warning("Session token has expired")
            return None
        except (jwt.InvalidTokenError, KeyError) as e:
            logger.warning(f"Invalid session token: {e}")
            return None

    def extract_jti(self, token: str) -> Optional[str]:
        """
        Token ID of a session token signed with this key.

        Expiry is not checked, so expired sessions can still be revoked.

        Args:
            token: JWT token string

        Returns:
            Token ID (jti claim) or None
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except jwt.InvalidTokenError as e:
            logger.warning(f"Cannot read token ID: {e}")
            return None
        return payload.get("jti")
