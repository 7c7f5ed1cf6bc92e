from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    APP_NAME: str = "RidesWith"
    DATABASE_URL: str = "sqlite:///./rideswith.db"
    LOG_LEVEL: str = "INFO"

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Security
    SECRET_KEY: str = "change_this_to_a_secure_random_key_in_production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30  # 30 days
    SIGNIN_TOKEN_EXPIRE_MINUTES: int = 15
    PLATFORM_ADMIN_EMAIL: str = ""

    # Strava API
    STRAVA_CLIENT_ID: str = ""
    STRAVA_CLIENT_SECRET: str = ""
    STRAVA_REDIRECT_URI: str = "http://localhost:8000/api/strava/callback"
    STRAVA_AUTO_SYNC_MINUTES: int = 60
    ENABLE_SCHEDULER: bool = False

    # Brand.dev lookup
    BRAND_DEV_API_KEY: str = ""

    # Cloudinary (unsigned uploads)
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_UPLOAD_PRESET: str = "rideswith_unsigned"
    # Signed admin API, used to delete ride photos
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    MAX_UPLOAD_MB: int = 10
    ALLOWED_IMAGE_TYPES: str = "image/jpeg,image/png,image/webp"

    # Email (magic links)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "RidesWith <onboarding@resend.dev>"

    # Web push (VAPID)
    VAPID_PUBLIC_KEY: str = ""
    VAPID_PRIVATE_KEY: str = ""
    VAPID_EMAIL: str = "mailto:support@rideswith.com"

    # Rate limits
    RSVP_RATE_LIMIT: str = "30/minute"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def allowed_origins(self) -> list:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def allowed_image_types(self) -> tuple:
        return tuple(t.strip() for t in self.ALLOWED_IMAGE_TYPES.split(",") if t.strip())

settings = Settings()
