from datetime import timedelta
from typing import Optional
from urllib.parse import quote
import json

import httpx
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy import func
from sqlalchemy.orm import Session
from slugify import slugify

from ..db import get_db
from ..config import settings
from ..models.models import User, utcnow
from ..schemas.auth import (
    RegisterRequest,
    LoginRequest,
    VerificationCodeRequest,
    EmailRequest,
    ResetCodeRequest,
    ResetPasswordRequest,
    ChangePasswordRequest,
    AuthUser,
    UserProfile,
)
from ..services.email import send_verification_email, send_password_reset_email
from ..services.google_oauth import GoogleOAuthClient
from ..services.sms import sms_client
from .security import (
    get_password_hash,
    verify_password,
    generate_code,
    create_access_token,
    decode_token,
    _create_token,
    get_current_user,
    user_from_token,
)
from ..logging import structlog


router = APIRouter(prefix="/auth", tags=["auth"])

OAUTH_STATE_TTL = 600


def auth_user(user: User) -> dict:
    return AuthUser.model_validate(user).model_dump(mode="json", by_alias=True)


def _issue_verification_codes(user: User) -> None:
    user.email_verification_code = generate_code()
    user.mobile_verification_code = generate_code()
    user.verification_code_expiry = utcnow() + timedelta(minutes=settings.verification_code_ttl_minutes)


def _send_verification_codes(user: User) -> None:
    try:
        send_verification_email(user.email, user.username, user.email_verification_code)
    except Exception as e:
        structlog.get_logger().warning("verification_email_failed", user_id=str(user.id), error=str(e))
    try:
        sms_client.send_verification(user.mobile, user.mobile_verification_code)
    except Exception as e:
        structlog.get_logger().warning("verification_sms_failed", user_id=str(user.id), error=str(e))


def _check_mobile_code(user: User, code: str) -> None:
    if user.is_mobile_verified:
        raise HTTPException(status_code=400, detail="Mobile is already verified")
    if user.mobile_verification_code != code:
        raise HTTPException(status_code=400, detail="Invalid verification code")
    if user.is_verification_code_expired():
        raise HTTPException(status_code=400, detail="Verification code has expired")


def find_available_username(db: Session, base: str) -> str:
    candidate = slugify(base, lowercase=True, separator="_", regex_pattern=r"[^A-Za-z0-9_]") or "user"
    if len(candidate) < 3:
        candidate = f"{candidate}_user"
    i = 0
    while True:
        name = f"{candidate}{i}" if i > 0 else candidate
        if not db.query(User).filter(User.username == name).first():
            return name
        i += 1


@router.post("/register", status_code=201)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    existing = db.query(User).filter(
        (User.email == payload.email)
        | (User.username == payload.username)
        | (User.mobile == payload.mobile)
    ).first()
    if existing:
        raise HTTPException(status_code=400, detail="User with this email, username, or mobile number already exists")

    user = User(
        username=payload.username,
        email=payload.email,
        password_hash=get_password_hash(payload.password),
        mobile=payload.mobile,
        role=payload.role,
        is_active=True,
    )
    _issue_verification_codes(user)
    db.add(user)
    db.commit()
    db.refresh(user)
    _send_verification_codes(user)

    structlog.get_logger().info("user_registered", user_id=str(user.id), role=user.role)
    return {
        "success": True,
        "message": "Registration successful! Welcome to ServiceHub!",
        "token": create_access_token(str(user.id), user.role),
        "user": auth_user(user),
    }


@router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == req.email).first()
    if not user:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")
    if not verify_password(req.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    user.last_login = utcnow()
    db.commit()
    return {
        "success": True,
        "message": "Login successful",
        "token": create_access_token(str(user.id), user.role),
        "user": auth_user(user),
    }


@router.post("/verify-email")
def verify_email(payload: VerificationCodeRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if user.is_email_verified:
        raise HTTPException(status_code=400, detail="Email is already verified")
    if user.email_verification_code != payload.verification_code:
        raise HTTPException(status_code=400, detail="Invalid verification code")
    if user.is_verification_code_expired():
        raise HTTPException(status_code=400, detail="Verification code has expired")
    user.is_email_verified = True
    user.email_verification_code = None
    db.commit()
    return {"success": True, "message": "Email verified successfully", "user": auth_user(user)}


@router.post("/verify-mobile")
def verify_mobile(payload: VerificationCodeRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _check_mobile_code(user, payload.verification_code)
    user.is_mobile_verified = True
    user.mobile_verification_code = None
    db.commit()
    return {"success": True, "message": "Mobile verified successfully", "user": auth_user(user)}


@router.post("/verify-registration-mobile")
def verify_registration_mobile(payload: VerificationCodeRequest, request: Request, db: Session = Depends(get_db)):
    """Mobile verification straight after sign-up; the token is read from the header."""
    header = request.headers.get("Authorization", "")
    token = header[7:] if header.lower().startswith("bearer ") else None
    if not token:
        raise HTTPException(status_code=401, detail="No token provided")
    user = user_from_token(token, db)
    _check_mobile_code(user, payload.verification_code)
    user.is_mobile_verified = True
    user.mobile_verification_code = None
    user.verification_code_expiry = None
    db.commit()
    return {
        "success": True,
        "message": "Mobile verified successfully! Welcome to ServiceHub!",
        "token": create_access_token(str(user.id), user.role),
        "user": auth_user(user),
    }


@router.post("/resend-verification")
def resend_verification(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    _issue_verification_codes(user)
    db.commit()
    _send_verification_codes(user)
    return {"success": True, "message": "Verification codes sent successfully"}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {"success": True, "user": UserProfile.model_validate(user).model_dump(mode="json", by_alias=True)}


@router.post("/forgot-password")
def forgot_password(payload: EmailRequest, db: Session = Depends(get_db)):
    generic = "If an account with that email exists, a password reset code has been sent"
    user = db.query(User).filter(User.email == payload.email).first()
    if not user:
        return {"success": True, "message": generic}
    if not user.is_active:
        raise HTTPException(status_code=400, detail="Account is deactivated")

    user.password_reset_code = generate_code()
    user.password_reset_expires = utcnow() + timedelta(minutes=settings.password_reset_ttl_minutes)
    db.commit()
    try:
        send_password_reset_email(user.email, user.username, user.password_reset_code)
    except Exception as e:
        structlog.get_logger().warning("password_reset_email_failed", user_id=str(user.id), error=str(e))
        user.password_reset_code = None
        user.password_reset_expires = None
        db.commit()
        raise HTTPException(status_code=500, detail="Failed to send password reset email. Please try again later.")
    return {"success": True, "message": generic}


def _user_with_reset_code(db: Session, email: str, code: str) -> User:
    user = db.query(User).filter(User.email == email).first()
    if not user or not user.has_active_reset_code() or user.password_reset_code != code:
        raise HTTPException(status_code=400, detail="Invalid or expired reset code")
    return user


@router.post("/verify-reset-code")
def verify_reset_code(payload: ResetCodeRequest, db: Session = Depends(get_db)):
    user = _user_with_reset_code(db, payload.email, payload.code)
    return {
        "success": True,
        "message": "Reset code verified successfully",
        "user": {"id": str(user.id), "email": user.email, "username": user.username},
    }


@router.post("/reset-password")
def reset_password(payload: ResetPasswordRequest, db: Session = Depends(get_db)):
    user = _user_with_reset_code(db, payload.email, payload.code)
    user.password_hash = get_password_hash(payload.password)
    user.password_reset_code = None
    user.password_reset_expires = None
    db.commit()
    structlog.get_logger().info("password_reset", user_id=str(user.id))
    return {"success": True, "message": "Password reset successfully. You can now login with your new password."}


@router.get("/get-reset-code/{email}")
def get_reset_code(email: str, db: Session = Depends(get_db)):
    """Development helper: exposes the active reset code when no mail transport is configured."""
    if settings.email_configured:
        raise HTTPException(status_code=403, detail="This endpoint is only available when email service is not configured")
    user = db.query(User).filter(func.lower(User.email) == email.lower()).first()
    if not user or not user.has_active_reset_code():
        raise HTTPException(status_code=404, detail="No active reset code found for this email")
    return {"success": True, "resetCode": user.password_reset_code, "expiresAt": user.password_reset_expires}


@router.put("/change-password")
def change_password(payload: ChangePasswordRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if not verify_password(payload.current_password, user.password_hash):
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    user.password_hash = get_password_hash(payload.new_password)
    db.commit()
    return {"success": True, "message": "Password changed successfully"}


@router.post("/logout")
def logout(user: User = Depends(get_current_user)):
    # Stateless tokens; the client drops its copy
    return {"success": True, "message": "Logged out successfully"}


def _oauth_client() -> GoogleOAuthClient:
    if not settings.google_configured:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Google OAuth is not configured. Please contact the administrator.",
        )
    return GoogleOAuthClient()


@router.get("/google")
def google_login():
    client = _oauth_client()
    state = _create_token("google-oauth", OAUTH_STATE_TTL, extra={"type": "oauth_state"})
    return RedirectResponse(url=client.authorization_url(state))


def upsert_google_user(db: Session, profile: dict) -> User:
    """Find by Google id, else link by email, else create a pre-verified house owner."""
    google_id = str(profile.get("sub"))
    email = (profile.get("email") or "").lower()
    user = db.query(User).filter(User.google_id == google_id).first()
    if user:
        return user
    if email:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.google_id = google_id
            user.is_google_user = True
            db.commit()
            return user
    if not email:
        raise HTTPException(status_code=400, detail="Google account has no email address")

    user = User(
        google_id=google_id,
        username=find_available_username(db, profile.get("name") or email.split("@")[0]),
        email=email,
        first_name=profile.get("given_name") or "",
        last_name=profile.get("family_name") or "",
        profile_picture=profile.get("picture") or "",
        is_google_user=True,
        is_email_verified=True,
        role="house_owner",
        is_active=True,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    structlog.get_logger().info("google_user_created", user_id=str(user.id))
    return user


@router.get("/google/callback")
def google_callback(code: Optional[str] = None, state: Optional[str] = None, db: Session = Depends(get_db)):
    client = _oauth_client()
    failure = RedirectResponse(url=f"{settings.client_url}/login?error=google_auth_failed")
    if not code or not state:
        return failure
    try:
        claims = decode_token(state)
    except HTTPException:
        return failure
    if claims.get("type") != "oauth_state":
        return failure
    try:
        profile = client.fetch_profile(code)
    except httpx.HTTPError as e:
        structlog.get_logger().warning("google_oauth_failed", error=str(e))
        return failure

    user = upsert_google_user(db, profile)
    token = create_access_token(str(user.id), user.role)
    user_blob = {
        "id": str(user.id),
        "username": user.username,
        "email": user.email,
        "role": user.role,
        "firstName": user.first_name,
        "lastName": user.last_name,
        "profilePicture": user.profile_picture,
        "isGoogleUser": user.is_google_user,
    }
    return RedirectResponse(url=f"{settings.client_url}/auth/callback?token={token}&user={quote(json.dumps(user_blob))}")
