import logging
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from fastapi.responses import JSONResponse
import jwt
from passlib.context import CryptContext

from blog_api.config import Settings
from blog_api.schemas import AuthCheckOut, LoginRequest, MessageOut
from blog_api.utils import get_client_ip

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"
COOKIE_NAME = "adminToken"
MAX_LOGIN_ATTEMPTS = 5
# proxy headers are client supplied, so the per-address window alone can be dodged
MAX_GLOBAL_LOGIN_FAILURES = 20
MAX_TRACKED_ADDRESSES = 1000
LOGIN_WINDOW = timedelta(minutes=1)

router = APIRouter()
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
login_attempts: dict[str, deque[datetime]] = {}
recent_login_failures: deque[datetime] = deque()


def _prune(attempts: deque, now: datetime) -> None:
    while attempts and now - attempts[0] > LOGIN_WINDOW:
        attempts.popleft()


def _forget_stale_addresses(now: datetime) -> None:
    for address in list(login_attempts):
        _prune(login_attempts[address], now)
        if not login_attempts[address]:
            del login_attempts[address]
    # still too many live entries: drop the oldest tracked addresses
    while len(login_attempts) > MAX_TRACKED_ADDRESSES:
        del login_attempts[next(iter(login_attempts))]


def reset_login_throttle() -> None:
    login_attempts.clear()
    recent_login_failures.clear()


def is_login_throttled(client_ip: str, now: datetime) -> bool:
    _prune(recent_login_failures, now)
    if len(recent_login_failures) >= MAX_GLOBAL_LOGIN_FAILURES:
        return True
    attempts = login_attempts.get(client_ip)
    if attempts is None:
        return False
    _prune(attempts, now)
    if not attempts:
        del login_attempts[client_ip]
        return False
    return len(attempts) >= MAX_LOGIN_ATTEMPTS


def record_login_failure(client_ip: str, now: datetime) -> None:
    recent_login_failures.append(now)
    login_attempts.setdefault(client_ip, deque()).append(now)
    if len(login_attempts) > MAX_TRACKED_ADDRESSES:
        _forget_stale_addresses(now)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(candidate: str, settings: Settings) -> bool:
    """Check ``candidate`` against the configured admin hash.

    Failures inside passlib (empty input, malformed hash) are reported the
    same way as a wrong password.
    """
    try:
        return pwd_context.verify(candidate, settings.admin_password_hash)
    except (ValueError, TypeError) as e:
        logger.error("Error verifying password: %s", e)
        return False


def create_admin_token(settings: Settings) -> str:
    now = datetime.now(timezone.utc)
    to_encode = {
        "role": ADMIN_ROLE,
        "timestamp": int(now.timestamp() * 1000),
        "exp": now + timedelta(days=settings.token_expire_days),
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=ALGORITHM)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as e:
        logger.warning("Invalid token: %s", e)
        return None


def is_admin_token(token: Optional[str], settings: Settings) -> bool:
    if not token:
        return False
    payload = decode_token(token, settings)
    return bool(payload) and payload.get("role") == ADMIN_ROLE


def require_admin(request: Request, settings: Settings = Depends(get_settings)) -> bool:
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access denied. Admin token required.",
        )
    if not is_admin_token(token, settings):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )
    request.state.is_admin = True
    return True


def _set_auth_cookie(response: Response, token: str, settings: Settings) -> None:
    response.set_cookie(
        COOKIE_NAME,
        token,
        max_age=settings.token_expire_days * 24 * 60 * 60,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
    )


@router.post("/login", response_model=MessageOut)
def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    settings: Settings = Depends(get_settings),
):
    if not data.password:
        raise HTTPException(status_code=400, detail="Password is required")

    client_ip = get_client_ip(request)
    now = datetime.now(timezone.utc)
    if is_login_throttled(client_ip, now):
        raise HTTPException(status_code=429, detail="Too many login attempts")

    if not verify_password(data.password, settings):
        record_login_failure(client_ip, now)
        logger.warning("Failed admin login from %s", client_ip)
        raise HTTPException(status_code=401, detail="Invalid password")
    login_attempts.pop(client_ip, None)

    _set_auth_cookie(response, create_admin_token(settings), settings)
    return MessageOut(message="Login successful")


@router.post("/logout", response_model=MessageOut)
def logout(response: Response):
    response.delete_cookie(COOKIE_NAME)
    return MessageOut(message="Logged out successfully")


@router.get("/check", response_model=AuthCheckOut)
def check(request: Request, settings: Settings = Depends(get_settings)):
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        return JSONResponse(status_code=401, content={"isAdmin": False})
    if not is_admin_token(token, settings):
        response = JSONResponse(status_code=401, content={"isAdmin": False})
        response.delete_cookie(COOKIE_NAME)
        return response
    return AuthCheckOut(is_admin=True)
