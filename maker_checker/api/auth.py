"""
Registration, login and MFA endpoints.

A rejected code still changes state (the attempt counter, or the
removal of a dead challenge), so SecurityError commits before
answering 401. Every other error rolls back.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from maker_checker.api.deps import client_ip, get_current_user, to_http_exception
from maker_checker.errors import SecurityError, ServiceError
from maker_checker.models.base import get_db
from maker_checker.models.user import User
from maker_checker.schemas.auth import (
    ChallengeSentResponse,
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    MFACode,
    MFALoginVerify,
    MFAStatusResponse,
    RegistrationResend,
    RegistrationStart,
    RegistrationVerify,
    UserMutationResponse,
    UserResponse,
)
from maker_checker.services.auth_service import AuthService
from maker_checker.services.notification_service import Mailer, get_mailer

router = APIRouter(prefix="/auth", tags=["Auth"])


def _fail(db: Session, error: ServiceError):
    if isinstance(error, SecurityError):
        db.commit()
    else:
        db.rollback()
    raise to_http_exception(error)


@router.post("/register", response_model=ChallengeSentResponse, status_code=202)
def register(
    request: RegistrationStart,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """Start a maker registration. A code is mailed to the address."""
    service = AuthService(db, mailer, ip_address=ip)
    try:
        expires_in = service.start_registration(
            request.email, request.first_name, request.last_name, request.password
        )
        db.commit()
        return ChallengeSentResponse(
            message="Verification code sent to your email", expires_in=expires_in
        )
    except ServiceError as e:
        _fail(db, e)


@router.post("/register/resend", response_model=ChallengeSentResponse)
def resend_registration_code(
    request: RegistrationResend,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    service = AuthService(db, mailer, ip_address=ip)
    try:
        expires_in = service.resend_registration_code(request.email)
        db.commit()
        return ChallengeSentResponse(
            message="A new verification code has been sent", expires_in=expires_in
        )
    except ServiceError as e:
        _fail(db, e)


@router.post("/register/verify", response_model=UserMutationResponse, status_code=201)
def verify_registration(
    request: RegistrationVerify,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """Finish registration with the emailed code. Creates the maker account."""
    service = AuthService(db, mailer, ip_address=ip)
    try:
        user = service.complete_registration(request.email, request.code)
        db.commit()
        return UserMutationResponse(
            user=UserResponse.model_validate(user), warnings=service.warnings
        )
    except ServiceError as e:
        _fail(db, e)


@router.post("/login", response_model=LoginResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """
    First login factor.

    When session_granted is false a code has been mailed and
    /auth/login/mfa must be called to finish.
    """
    service = AuthService(db, mailer, ip_address=ip)
    try:
        result = service.authenticate(request.email, request.password)
        db.commit()
        return LoginResponse(
            user_id=result.user.id,
            mfa_required=result.mfa_required,
            session_granted=result.session_granted,
        )
    except ServiceError as e:
        _fail(db, e)


@router.post("/login/mfa", response_model=LoginResponse)
def login_mfa(
    request: MFALoginVerify,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    service = AuthService(db, mailer, ip_address=ip)
    try:
        user = service.complete_mfa_login(request.user_id, request.code)
        db.commit()
        return LoginResponse(user_id=user.id, mfa_required=True, session_granted=True)
    except ServiceError as e:
        _fail(db, e)


@router.post("/mfa/send", response_model=ChallengeSentResponse)
def send_mfa_code(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """Mail a code that confirms MFA enrolment."""
    service = AuthService(db, mailer, ip_address=ip)
    try:
        expires_in = service.send_mfa_enrollment_code(user)
        db.commit()
        return ChallengeSentResponse(
            message="Verification code sent to your email", expires_in=expires_in
        )
    except ServiceError as e:
        _fail(db, e)


@router.post("/mfa/enable", response_model=MFAStatusResponse)
def enable_mfa(
    request: MFACode,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    service = AuthService(db, mailer, ip_address=ip)
    try:
        user = service.enable_mfa(user, request.code)
        db.commit()
        return MFAStatusResponse(mfa_enabled=user.mfa_enabled)
    except ServiceError as e:
        _fail(db, e)


@router.post("/mfa/disable", response_model=MFAStatusResponse)
def disable_mfa(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    service = AuthService(db, mailer, ip_address=ip)
    try:
        user = service.disable_mfa(user)
        db.commit()
        return MFAStatusResponse(mfa_enabled=user.mfa_enabled)
    except ServiceError as e:
        _fail(db, e)


@router.post("/change-password", response_model=MessageResponse)
def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
    ip: str | None = Depends(client_ip),
):
    """Replace the caller's password. The current one must be supplied."""
    service = AuthService(db, mailer, ip_address=ip)
    try:
        service.change_password(user, request.current_password, request.new_password)
        db.commit()
        return MessageResponse(
            message="Password updated successfully", warnings=service.warnings
        )
    except ServiceError as e:
        _fail(db, e)
