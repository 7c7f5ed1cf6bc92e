import logging

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"


def _http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=10.0)


async def send_signin_email(email: str, link: str) -> bool:
    """
    Email a magic sign-in link through Resend. Without an API key the link is
    only logged, which is enough for local development.
    """
    if not settings.RESEND_API_KEY:
        logger.info(f"RESEND_API_KEY not set; sign-in link for {email}: {link}")
        return False

    html = (
        f"<p>Click the link below to sign in to {settings.APP_NAME}.</p>"
        f'<p><a href="{link}">Sign in</a></p>'
        f"<p>This link expires in {settings.SIGNIN_TOKEN_EXPIRE_MINUTES} minutes.</p>"
    )
    payload = {
        "from": settings.EMAIL_FROM,
        "to": [email],
        "subject": f"Sign in to {settings.APP_NAME}",
        "html": html,
    }

    try:
        async with _http_client() as client:
            response = await client.post(
                RESEND_API_URL,
                json=payload,
                headers={"Authorization": f"Bearer {settings.RESEND_API_KEY}"},
            )
    except httpx.RequestError as e:
        logger.error(f"Could not reach Resend to send sign-in email to {email}: {e}")
        return False

    if response.status_code >= 400:
        logger.error(f"Resend rejected sign-in email: {response.status_code} {response.text[:200]}")
        return False
    return True
