import base64
import hashlib
import uuid
from datetime import datetime

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    TypeDecorator,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .config import settings
from .database import Base

# Fernet keys must be 32 url-safe base64-encoded bytes.
key = base64.urlsafe_b64encode(hashlib.sha256(settings.SECRET_KEY.encode()).digest())
fernet = Fernet(key)


def new_id() -> str:
    return str(uuid.uuid4())


class EncryptedString(TypeDecorator):
    """Stored as encrypted text, decrypted on load."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return fernet.encrypt(value.encode()).decode()

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return fernet.decrypt(value.encode()).decode()
        except InvalidToken:
            # Rows written before encryption was enabled
            return value


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=True)
    image = Column(String, nullable=True)
    slug = Column(String, unique=True, index=True, nullable=True)
    bio = Column(Text, nullable=True)
    location = Column(String, nullable=True)
    instagram = Column(String, nullable=True)
    strava = Column(String, nullable=True)
    role = Column(String, nullable=False, default="USER")
    created_at = Column(DateTime, default=datetime.utcnow)

    notification_settings = relationship(
        "UserNotificationSettings", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def display_name(self) -> str:
        return self.name or (self.email.split("@")[0] if self.email else None) or "Anonymous"


class UserNotificationSettings(Base):
    __tablename__ = "user_notification_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), unique=True, nullable=False)
    push_enabled = Column(Boolean, nullable=False, default=True)
    new_ride_notifications = Column(Boolean, nullable=False, default=True)
    ride_update_notifications = Column(Boolean, nullable=False, default=True)
    ride_reminder_notifications = Column(Boolean, nullable=False, default=True)
    comment_notifications = Column(Boolean, nullable=False, default=True)
    auto_follow_on_rsvp = Column(Boolean, nullable=False, default=True)

    user = relationship("User", back_populates="notification_settings")


class Brand(Base):
    """A community: brand, club, team or group."""
    __tablename__ = "brands"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    type = Column(String, nullable=False, default="BRAND")
    discipline = Column(String, nullable=True)
    domain = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    logo = Column(String, nullable=True)
    logo_dark = Column(String, nullable=True)
    logo_icon = Column(String, nullable=True)
    primary_color = Column(String, nullable=True)
    secondary_color = Column(String, nullable=True)
    backdrop = Column(String, nullable=True)
    slogan = Column(String, nullable=True)
    fonts = Column(JSON, nullable=True)
    instagram = Column(String, nullable=True)
    twitter = Column(String, nullable=True)
    facebook = Column(String, nullable=True)
    strava = Column(String, nullable=True)
    youtube = Column(String, nullable=True)
    sponsors_enabled = Column(Boolean, nullable=False, default=False)
    sponsor_label = Column(String, nullable=True)
    created_by_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    created_by = relationship("User")
    chapters = relationship("Chapter", back_populates="brand", order_by="Chapter.name")


class Chapter(Base):
    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("brand_id", "slug", name="uq_chapter_brand_slug"),)

    id = Column(String(36), primary_key=True, default=new_id)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    slug = Column(String, nullable=False)
    city = Column(String, nullable=False)
    member_count = Column(Integer, nullable=False, default=0)
    ride_count = Column(Integer, nullable=False, default=0)
    custom_logo = Column(String, nullable=True)
    custom_colors = Column(JSON, nullable=True)
    # None inherits the brand setting
    sponsors_enabled = Column(Boolean, nullable=True)
    sponsor_label = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    brand = relationship("Brand", back_populates="chapters")
    members = relationship("ChapterMember", back_populates="chapter", order_by="ChapterMember.joined_at")


class ChapterMember(Base):
    __tablename__ = "chapter_members"
    __table_args__ = (UniqueConstraint("chapter_id", "user_id", name="uq_chapter_member"),)

    id = Column(String(36), primary_key=True, default=new_id)
    chapter_id = Column(String(36), ForeignKey("chapters.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String, nullable=False, default="MODERATOR")
    joined_at = Column(DateTime, default=datetime.utcnow)

    chapter = relationship("Chapter", back_populates="members")
    user = relationship("User")


class Organizer(Base):
    __tablename__ = "organizers"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, index=True, nullable=False)
    description = Column(Text, nullable=True)
    logo_url = Column(String, nullable=True)
    cover_url = Column(String, nullable=True)
    website = Column(String, nullable=True)
    primary_color = Column(String, nullable=True)
    secondary_color = Column(String, nullable=True)
    ride_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)

    members = relationship("OrganizerMember", back_populates="organizer", cascade="all, delete-orphan")


class OrganizerMember(Base):
    __tablename__ = "organizer_members"
    __table_args__ = (UniqueConstraint("organizer_id", "user_id", name="uq_organizer_member"),)

    id = Column(String(36), primary_key=True, default=new_id)
    organizer_id = Column(String(36), ForeignKey("organizers.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String, nullable=False, default="OWNER")

    organizer = relationship("Organizer", back_populates="members")


class Ride(Base):
    __tablename__ = "rides"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    date = Column(DateTime, nullable=False, index=True)
    end_time = Column(DateTime, nullable=True)
    timezone = Column(String, nullable=False, default="UTC")
    location_name = Column(String, nullable=False)
    location_address = Column(String, nullable=False, default="")
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    distance = Column(Float, nullable=True)
    elevation = Column(Float, nullable=True)
    pace = Column(String, nullable=False, default="MODERATE")
    pace_min = Column(Float, nullable=True)
    pace_max = Column(Float, nullable=True)
    terrain = Column(String, nullable=True)
    max_attendees = Column(Integer, nullable=True)
    route_url = Column(String, nullable=True)
    is_free = Column(Boolean, nullable=False, default=True)
    price = Column(Float, nullable=True)
    currency = Column(String, nullable=False, default="EUR")
    status = Column(String, nullable=False, default="PUBLISHED", index=True)
    organizer_id = Column(String(36), ForeignKey("organizers.id"), nullable=False, index=True)
    chapter_id = Column(String(36), ForeignKey("chapters.id"), nullable=True, index=True)
    strava_event_url = Column(String, nullable=True)

    recurrence_pattern = Column(String, nullable=True)
    recurrence_series_id = Column(String(36), nullable=True, index=True)
    recurrence_end_date = Column(DateTime, nullable=True)
    is_recurring_template = Column(Boolean, nullable=False, default=False)

    is_live = Column(Boolean, nullable=False, default=False)
    live_location_url = Column(String, nullable=True)
    live_started_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    organizer = relationship("Organizer")
    chapter = relationship("Chapter")
    rsvps = relationship("Rsvp", back_populates="ride", cascade="all, delete-orphan")
    comments = relationship("RideComment", back_populates="ride", cascade="all, delete-orphan")


class Rsvp(Base):
    __tablename__ = "rsvps"
    __table_args__ = (UniqueConstraint("ride_id", "user_id", name="uq_rsvp_ride_user"),)

    id = Column(String(36), primary_key=True, default=new_id)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String, nullable=False, default="GOING")
    created_at = Column(DateTime, default=datetime.utcnow)

    ride = relationship("Ride", back_populates="rsvps")
    user = relationship("User")


class RideComment(Base):
    __tablename__ = "ride_comments"

    id = Column(String(36), primary_key=True, default=new_id)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    ride = relationship("Ride", back_populates="comments")
    user = relationship("User")


class Follow(Base):
    __tablename__ = "follows"
    __table_args__ = (
        UniqueConstraint("user_id", "brand_id", name="uq_follow_brand"),
        UniqueConstraint("user_id", "chapter_id", name="uq_follow_chapter"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=True)
    chapter_id = Column(String(36), ForeignKey("chapters.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    brand = relationship("Brand")
    chapter = relationship("Chapter")


class Sponsor(Base):
    """Belongs to either a chapter or a whole community."""
    __tablename__ = "sponsors"

    id = Column(String(36), primary_key=True, default=new_id)
    chapter_id = Column(String(36), ForeignKey("chapters.id"), nullable=True, index=True)
    brand_id = Column(String(36), ForeignKey("brands.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    domain = Column(String, nullable=True)
    description = Column(Text, nullable=True)
    website = Column(String, nullable=False)
    logo = Column(String, nullable=True)
    backdrop = Column(String, nullable=True)
    primary_color = Column(String, nullable=True)
    display_size = Column(String, nullable=False, default="SMALL")
    is_active = Column(Boolean, nullable=False, default=True)
    display_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)


class StravaConnection(Base):
    __tablename__ = "strava_connections"

    id = Column(String(36), primary_key=True, default=new_id)
    chapter_id = Column(String(36), ForeignKey("chapters.id"), unique=True, nullable=False)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    access_token = Column(EncryptedString, nullable=False)
    refresh_token = Column(EncryptedString, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    strava_club_id = Column(String, nullable=False, default="")
    strava_club_name = Column(String, nullable=True)
    auto_sync = Column(Boolean, nullable=False, default=True)
    last_sync_at = Column(DateTime, nullable=True)
    last_sync_error = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")
    chapter = relationship("Chapter")


class StravaSyncedEvent(Base):
    __tablename__ = "strava_synced_events"
    __table_args__ = (UniqueConstraint("chapter_id", "strava_event_id", name="uq_synced_event"),)

    id = Column(String(36), primary_key=True, default=new_id)
    chapter_id = Column(String(36), ForeignKey("chapters.id"), nullable=False, index=True)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False)
    strava_event_id = Column(String, nullable=False)
    strava_event_hash = Column(String, nullable=False)
    synced_at = Column(DateTime, default=datetime.utcnow)


class RidePhoto(Base):
    __tablename__ = "ride_photos"

    id = Column(String(36), primary_key=True, default=new_id)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    public_id = Column(String, nullable=False)
    url = Column(String, nullable=False)
    thumbnail_url = Column(String, nullable=True)
    width = Column(Integer, nullable=True)
    height = Column(Integer, nullable=True)
    caption = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")


class RideRoute(Base):
    """A link to the ride's route on a mapping platform. One per platform."""
    __tablename__ = "ride_routes"
    __table_args__ = (UniqueConstraint("ride_id", "platform", name="uq_ride_route_platform"),)

    id = Column(String(36), primary_key=True, default=new_id)
    ride_id = Column(String(36), ForeignKey("rides.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    platform = Column(String, nullable=False)
    url = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    user = relationship("User")


class RideSnippet(Base):
    """Reusable text a user inserts into ride descriptions."""
    __tablename__ = "ride_snippets"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    content = Column(Text, nullable=False)
    category = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class PushSubscription(Base):
    __tablename__ = "push_subscriptions"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    endpoint = Column(String, unique=True, nullable=False)
    p256dh = Column(String, nullable=False)
    auth = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
