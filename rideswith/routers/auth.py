"""
Passwordless sign-in: the user receives a short-lived magic link by email and
following it sets the session cookie.
"""
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..config import settings
from ..database import get_db
from ..deps import get_current_user
from ..limiter import limiter
from ..models import User
from ..roles import PLATFORM_ADMIN_ROLE
from ..schemas import SignInRequest
from ..security import SESSION_COOKIE, create_access_token, create_signin_token, decode_signin_token
from ..serializers import user_profile
from ..services.mailer import send_signin_email

router = APIRouter()
logger = logging.getLogger(__name__)


def _is_platform_admin_email(email: str) -> bool:
    return bool(settings.PLATFORM_ADMIN_EMAIL) and email.lower() == settings.PLATFORM_ADMIN_EMAIL.lower()


@router.post("/signin")
@limiter.limit("5/minute")
async def signin(request: Request, body: SignInRequest, db: Session = Depends(get_db)):
    """Create the account on first sign-in and email a magic link."""
    user = db.query(User).filter(User.email == body.email).first()
    if not user:
        user = User(email=body.email)
        db.add(user)
        logger.info(f"Creating user for {body.email}")

    if _is_platform_admin_email(body.email):
        user.role = PLATFORM_ADMIN_ROLE
    db.commit()

    token = create_signin_token(body.email)
    link = f"{str(request.base_url).rstrip('/')}/api/auth/verify?{urlencode({'token': token})}"
    sent = await send_signin_email(body.email, link)

    return {"success": True, "emailSent": sent}


@router.get("/verify")
def verify(token: str = Query(...), db: Session = Depends(get_db)):
    email = decode_signin_token(token)
    if not email:
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/auth/error?error=Verification")

    user = db.query(User).filter(User.email == email).first()
    if not user:
        return RedirectResponse(url=f"{settings.FRONTEND_URL}/auth/error?error=Verification")

    session_token = create_access_token(data={"sub": str(user.id)})

    response = RedirectResponse(url=f"{settings.FRONTEND_URL}/")
    response.set_cookie(
        key=SESSION_COOKIE,
        value=session_token,
        httponly=True,
        secure=not settings.FRONTEND_URL.startswith("http://"),  # False for http://localhost
        samesite="Lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return response


@router.post("/signout")
def signout(response: Response):
    response.delete_cookie(SESSION_COOKIE)
    return {"success": True}


@router.get("/me")
def get_me(user: User = Depends(get_current_user)):
    return user_profile(user)
