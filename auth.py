import asyncio
import logging
import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional, Tuple

from fastapi import HTTPException, status
from jose import JWTError, jwt
from passlib.context import CryptContext

from config import Settings
from model import User
from schemas import ErrorResponse, OTPChallenge, Token, TokenData

logger = logging.getLogger(__name__)

OTP_PURPOSE_LOGIN = "login"
OTP_PURPOSE_APPROVAL = "approval"

# Password hashing
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=ErrorResponse(code=401, detail=detail).model_dump(mode="json"),
    )


class AuthService:
    """Login, OTP and session tokens for one application instance.

    Tokens and OTPs live in memory on the instance, so two apps (or two
    tests) never share sessions.
    """

    def __init__(self, settings: Settings, directory, notifier):
        self.settings = settings
        self.directory = directory
        self.notifier = notifier
        self.access_token_expiry = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        self.otp_expiry = timedelta(minutes=settings.OTP_TTL_MINUTES)
        self.active_tokens: Dict[str, dict] = {}
        self.otp_store: Dict[Tuple[str, str], dict] = {}

    # -- tokens -------------------------------------------------------------

    def create_access_token(self, token_data: TokenData, client_ip: str) -> str:
        """Create IP-bound JWT access token"""
        exp = datetime.now(timezone.utc) + self.access_token_expiry
        payload = token_data.model_dump(mode="json")
        payload.update({
            "sub": token_data.username,
            "exp": int(exp.timestamp()),
            "ip": client_ip,
            "type": "access",
        })
        token = jwt.encode(payload, self.settings.SECRET_KEY, algorithm=self.settings.ALGORITHM)

        self.active_tokens[token] = {
            "user_id": token_data.user_id,
            "ip": client_ip,
            "exp": exp,
        }
        return token

    def verify_access_token(self, token: str, client_ip: str) -> TokenData:
        """Verify access token with strict IP binding"""
        if token not in self.active_tokens:
            raise _unauthorized("Token not found or revoked")

        try:
            payload = jwt.decode(token, self.settings.SECRET_KEY, algorithms=[self.settings.ALGORITHM])
            self._validate_token_payload(payload, client_ip)
        except JWTError as e:
            raise _unauthorized(f"Invalid token: {e}")
        return TokenData(**{k: v for k, v in payload.items() if k in TokenData.model_fields})

    def _validate_token_payload(self, payload: dict, client_ip: str):
        if payload.get("type") != "access":
            raise JWTError("Invalid token type")

        if payload.get("ip") != client_ip:
            raise JWTError("IP address changed")

        required_claims = ["sub", "role", "user_id"]
        if not all(claim in payload for claim in required_claims):
            raise JWTError("Missing required claims")

    def revoke_token(self, token: str) -> bool:
        """Revoke a token before expiration"""
        return self.active_tokens.pop(token, None) is not None

    def _issue_token(self, user: User, client_ip: str) -> Token:
        token_data = TokenData(username=user.username, role=user.role, user_id=user.id)
        return Token(
            access_token=self.create_access_token(token_data, client_ip),
            token_type="bearer",
        )

    # -- password login -----------------------------------------------------

    def authenticate_user(self, username: str, password: str) -> User:
        user = self.directory.get_user_by_username(username)
        if not user or not verify_password(password, user.password_hash):
            logger.info("Failed login for username=%s", username)
            raise _unauthorized("Invalid credentials")
        return user

    def login(self, username: str, password: str, client_ip: str) -> Tuple[User, Token]:
        user = self.authenticate_user(username, password)
        logger.info("User %s logged in with password", user.username)
        return user, self._issue_token(user, client_ip)

    # -- OTP ----------------------------------------------------------------

    def _generate_otp(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self.settings.OTP_LENGTH))

    def issue_otp(self, username: str, purpose: str = OTP_PURPOSE_LOGIN) -> Optional[OTPChallenge]:
        """Create a one-time code for the user and hand it to the notifier.

        Returns ``None`` for unknown usernames. Issuing a new code replaces
        any outstanding code for the same purpose.
        """
        user = self.directory.get_user_by_username(username)
        if not user:
            return None

        otp = self._generate_otp()
        expires_at = datetime.now(timezone.utc) + self.otp_expiry
        self.otp_store[(username, purpose)] = {"otp": otp, "expires_at": expires_at}

        try:
            self.notifier.send_otp(user.email, otp, self.settings.OTP_TTL_MINUTES)
        except Exception:
            logger.exception("OTP delivery failed for %s", user.email)
            self.otp_store.pop((username, purpose), None)
            return None

        return OTPChallenge(
            username=username,
            purpose=purpose,
            expires_at=expires_at,
            otp=otp if self.settings.OTP_DEMO_ECHO else None,
        )

    def verify_otp(self, username: str, otp: str, purpose: str = OTP_PURPOSE_LOGIN) -> bool:
        """Check and consume a one-time code. Expired codes are discarded."""
        stored = self.otp_store.get((username, purpose))
        if not stored:
            return False

        if datetime.now(timezone.utc) > stored["expires_at"]:
            del self.otp_store[(username, purpose)]
            return False

        if not secrets.compare_digest(stored["otp"], otp):
            return False

        del self.otp_store[(username, purpose)]
        return True

    def login_with_otp(self, username: str, otp: str, client_ip: str) -> Tuple[User, Token]:
        if not self.verify_otp(username, otp, OTP_PURPOSE_LOGIN):
            raise _unauthorized("Invalid credentials")
        user = self.directory.get_user_by_username(username)
        if not user:
            raise _unauthorized("Invalid credentials")
        logger.info("User %s logged in with OTP", user.username)
        return user, self._issue_token(user, client_ip)

    # -- cookies ------------------------------------------------------------

    def set_auth_cookies(self, response, token: Token):
        """Set secure HTTP-only cookies"""
        response.set_cookie(
            key="access_token",
            value=token.access_token,
            httponly=True,
            secure=self.settings.COOKIE_SECURE,
            samesite="Strict",
            max_age=self.settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        )

    def clear_auth_cookies(self, response):
        response.delete_cookie(
            key="access_token",
            httponly=True,
            secure=self.settings.COOKIE_SECURE,
            samesite="Strict",
        )

    # -- housekeeping -------------------------------------------------------

    def purge_expired(self) -> None:
        now = datetime.now(timezone.utc)

        expired_otps = [k for k, v in self.otp_store.items() if v["expires_at"] < now]
        for key in expired_otps:
            del self.otp_store[key]

        expired_tokens = [k for k, v in self.active_tokens.items() if v["exp"] < now]
        for token in expired_tokens:
            del self.active_tokens[token]

    async def cleanup_expired_tokens(self):
        """Periodically clean expired tokens and OTPs"""
        while True:
            self.purge_expired()
            await asyncio.sleep(60 * 5)
