from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from slowapi import Limiter

from auth import OTP_PURPOSE_APPROVAL, OTP_PURPOSE_LOGIN, AuthService
from config import Settings
from dependencies import client_ip, get_auth_service, get_current_db_user, get_current_user
from model import User
from schemas import (
    ErrorResponse,
    LoginRequest,
    OTPChallenge,
    OTPLoginRequest,
    OTPSendRequest,
    SuccessResponse,
    TokenData,
    UserOut,
)


def _login_response(auth_service: AuthService, user: User, token) -> JSONResponse:
    response = JSONResponse(
        content={
            "user": UserOut.model_validate(user).model_dump(mode="json"),
            "access_token": token.access_token,
            "token_type": token.token_type,
        }
    )
    auth_service.set_auth_cookies(response, token)
    return response


def _otp_failed() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=ErrorResponse(code=400, detail="Unable to send OTP").model_dump(mode="json"),
    )


def build_router(limiter: Limiter, settings: Settings) -> APIRouter:
    """Auth routes, rate limited by the app's own limiter and settings."""
    router = APIRouter(prefix="/auth", tags=["auth"])

    @router.post("/login")
    @limiter.limit(settings.LOGIN_RATE_LIMIT)
    async def login_endpoint(
        login_data: LoginRequest,
        request: Request,
        auth_service: AuthService = Depends(get_auth_service)
    ):
        """Username/password login"""
        user, token = auth_service.login(login_data.username, login_data.password, client_ip(request))
        return _login_response(auth_service, user, token)

    @router.post("/otp/send", response_model=OTPChallenge)
    @limiter.limit(settings.OTP_RATE_LIMIT)
    async def send_login_otp(
        otp_request: OTPSendRequest,
        request: Request,
        auth_service: AuthService = Depends(get_auth_service)
    ):
        challenge = auth_service.issue_otp(otp_request.username, OTP_PURPOSE_LOGIN)
        if not challenge:
            raise _otp_failed()
        return challenge

    @router.post("/otp/login")
    @limiter.limit(settings.LOGIN_RATE_LIMIT)
    async def login_with_otp(
        otp_login: OTPLoginRequest,
        request: Request,
        auth_service: AuthService = Depends(get_auth_service)
    ):
        user, token = auth_service.login_with_otp(otp_login.username, otp_login.otp, client_ip(request))
        return _login_response(auth_service, user, token)

    @router.post("/otp/approval", response_model=OTPChallenge)
    @limiter.limit(settings.OTP_RATE_LIMIT)
    async def send_approval_otp(
        request: Request,
        current_user: TokenData = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service)
    ):
        """Code an approver enters to sign a decision"""
        challenge = auth_service.issue_otp(current_user.username, OTP_PURPOSE_APPROVAL)
        if not challenge:
            raise _otp_failed()
        return challenge

    @router.post("/logout")
    async def logout(request: Request, auth_service: AuthService = Depends(get_auth_service)):
        token = request.cookies.get("access_token")
        if token:
            auth_service.revoke_token(token)
        response = JSONResponse(content=SuccessResponse(message="Logged out").model_dump(mode="json"))
        auth_service.clear_auth_cookies(response)
        return response

    @router.get("/me", response_model=UserOut)
    async def read_current_user(current_user: User = Depends(get_current_db_user)):
        return current_user

    return router
