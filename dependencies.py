from fastapi import Depends, HTTPException, Request, status

from auth import AuthService
from config import Settings
from crud import UserDirectory
from model import User, UserRole
from schemas import ErrorResponse, TokenData
from workflow import LeaveWorkflowEngine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth


def get_directory(request: Request) -> UserDirectory:
    return request.app.state.directory


def get_engine(request: Request) -> LeaveWorkflowEngine:
    return request.app.state.engine


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def get_current_user(request: Request) -> TokenData:
    """Dependency to get current user from verified token"""
    token = request.cookies.get("access_token")
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorResponse(code=401, detail="Missing access token").model_dump(mode="json"),
        )
    return get_auth_service(request).verify_access_token(token, client_ip(request))


def get_current_db_user(
    current_user: TokenData = Depends(get_current_user),
    directory: UserDirectory = Depends(get_directory),
) -> User:
    """The directory record behind the session; deleted users lose access."""
    user = directory.get_user_by_id(current_user.user_id)
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=ErrorResponse(code=401, detail="User no longer exists").model_dump(mode="json"),
        )
    return user


def require_role(*roles: UserRole):
    """Dependency to require one of the given roles"""
    async def role_checker(user: TokenData = Depends(get_current_user)):
        if user.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=ErrorResponse(code=403, detail="Insufficient permissions").model_dump(mode="json"),
            )
        return user
    return role_checker
