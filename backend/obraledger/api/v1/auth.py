"""
Authentication API Routes
"""
from fastapi import APIRouter, Depends, HTTPException, status, Response
from sqlalchemy.orm import Session
from datetime import timedelta

from obraledger.core.database import get_db
from obraledger.core.security import create_access_token, get_current_user
from obraledger.core.config import settings
from obraledger.schemas import LoginRequest, Token, UserResponse, MessageResponse
from obraledger.services.user_service import UserService
from obraledger.services.permission_service import PermissionService
from obraledger.services.audit_service import AuditService, AuditAction

router = APIRouter(prefix="/auth", tags=["Authentication"])

SESSION_COOKIE = "access_token"


def _set_session_cookie(response: Response, token: str, lifetime: timedelta):
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        max_age=int(lifetime.total_seconds()),
        samesite="lax",
        secure=settings.is_production
    )


@router.post("/login", response_model=Token)
async def login(
    login_data: LoginRequest,
    response: Response,
    db: Session = Depends(get_db)
):
    """Exchange credentials for a bearer token (also set as an HttpOnly cookie)"""
    audit = AuditService(db)
    users = UserService(db)
    user = users.authenticate(login_data.username, login_data.password)

    if user is None:
        audit.log(
            action=AuditAction.LOGIN_FAILED,
            resource_type="User",
            description=f"Rejected credentials for '{login_data.username}'",
            status="failure",
            error_message="Invalid credentials"
        )
        db.commit()
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is disabled")

    lifetime = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    token = create_access_token(
        data={"sub": user.username, "organization_id": user.organization_id},
        expires_delta=lifetime
    )

    users.record_login(user)
    audit.log(
        action=AuditAction.LOGIN,
        resource_type="User",
        resource_id=user.id,
        user_id=user.id,
        username=user.username,
        organization_id=user.organization_id
    )
    db.commit()

    _set_session_cookie(response, token, lifetime)
    return {"access_token": token, "token_type": "bearer"}


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response, current_user=Depends(get_current_user)):
    response.delete_cookie(key=SESSION_COOKIE)
    return {"message": "Logged out"}


@router.get("/me", response_model=UserResponse)
async def read_current_user(current_user=Depends(get_current_user)):
    return current_user


@router.get("/permissions")
async def read_permissions(
    db: Session = Depends(get_db),
    current_user=Depends(get_current_user)
):
    """Permissions granted by the user's role"""
    permissions = PermissionService(db).get_user_permissions(current_user)
    return {"role": current_user.role, "permissions": sorted(permissions)}
