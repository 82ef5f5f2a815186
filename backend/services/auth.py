import bcrypt
from fastapi import APIRouter, FastAPI, HTTPException, Request
from starlette.middleware.sessions import SessionMiddleware

from shared.models import LoginRequest
from shared.utils import config, setup_logging

logger = setup_logging("auth")

ADMIN_SESSION_KEY = "is_admin"

ADMIN_PASSWORD_HASH = bcrypt.hashpw(
    config.get("admin_password", "admin123").encode("utf-8"), bcrypt.gensalt()
).decode("utf-8")

if config.get("session_secret", "").startswith("your-secret-key"):
    logger.warning("SESSION_SECRET not set or using default value")
if config.get("admin_password") == "admin123":
    logger.warning("ADMIN_PASSWORD not set or using default value")


def add_session_middleware(app: FastAPI) -> None:
    """Install the signed-cookie session used for the admin login."""
    app.add_middleware(
        SessionMiddleware,
        secret_key=config.get("session_secret"),
        max_age=config.get("session_max_age", 24 * 60 * 60),
        same_site="strict",
        https_only=config.get("https_only", False),
    )


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))


def authenticate_admin(username: str, password: str) -> bool:
    return username == config.get("admin_username") and verify_password(password, ADMIN_PASSWORD_HASH)


def is_admin(request: Request) -> bool:
    return bool(request.session.get(ADMIN_SESSION_KEY))


async def require_admin(request: Request) -> bool:
    """Dependency guarding admin-only endpoints."""
    if not is_admin(request):
        raise HTTPException(status_code=401, detail="Unauthorized")
    return True


router = APIRouter()


@router.post(
    "/login",
    tags=["Authentication"],
    summary="Admin Login",
    description="Check the shared admin credential and mark the session as admin",
    responses={
        200: {"content": {"application/json": {"example": {"success": True}}}},
        401: {"content": {"application/json": {"example": {"detail": "Invalid credentials"}}}},
    },
)
async def login(login_request: LoginRequest, request: Request):
    if not authenticate_admin(login_request.username, login_request.password):
        logger.warning(f"Failed admin login for {login_request.username!r}")
        raise HTTPException(status_code=401, detail="Invalid credentials")
    request.session[ADMIN_SESSION_KEY] = True
    return {"success": True}


@router.post("/logout", tags=["Authentication"], summary="Logout")
async def logout(request: Request):
    request.session.clear()
    return {"success": True}


@router.get("/auth-status", tags=["Authentication"], summary="Session Status")
async def auth_status(request: Request):
    return {"is_admin": is_admin(request)}
