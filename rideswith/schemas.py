"""
Request bodies. Fields are snake_case in Python and camelCase on the wire.
Presence rules with user-facing messages are checked in the route handlers.
"""
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


class SignInRequest(CamelModel):
    email: str = Field(..., min_length=3, max_length=320)

    @validator("email")
    def validate_email(cls, v):
        v = v.strip().lower()
        if "@" not in v or v.startswith("@") or v.endswith("@"):
            raise ValueError("A valid email address is required")
        return v


class ProfileUpdate(CamelModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    bio: Optional[str] = None
    location: Optional[str] = None
    instagram: Optional[str] = None
    strava: Optional[str] = None


class NotificationSettingsUpdate(CamelModel):
    push_enabled: Optional[bool] = None
    new_ride_notifications: Optional[bool] = None
    ride_update_notifications: Optional[bool] = None
    ride_reminder_notifications: Optional[bool] = None
    comment_notifications: Optional[bool] = None
    auto_follow_on_rsvp: Optional[bool] = None


class CommunityCreate(CamelModel):
    name: Optional[str] = None
    domain: Optional[str] = None
    type: Optional[str] = None
    discipline: Optional[str] = None


class CommunityUpdate(CamelModel):
    refresh_branding: bool = False
    name: Optional[str] = None
    description: Optional[str] = None
    domain: Optional[str] = None
    type: Optional[str] = None
    logo: Optional[str] = None
    backdrop: Optional[str] = None
    primary_color: Optional[str] = None
    instagram: Optional[str] = None
    twitter: Optional[str] = None
    facebook: Optional[str] = None
    strava: Optional[str] = None
    youtube: Optional[str] = None
    sponsor_label: Optional[str] = None


class SponsorCreate(CamelModel):
    name: Optional[str] = None
    website: Optional[str] = None
    domain: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    backdrop: Optional[str] = None
    primary_color: Optional[str] = None
    display_size: Optional[str] = None
    is_active: Optional[bool] = None
    display_order: Optional[int] = None

    @validator("display_size")
    def validate_display_size(cls, v):
        if v is not None and v not in ("SMALL", "MEDIUM", "LARGE"):
            raise ValueError("displaySize must be SMALL, MEDIUM or LARGE")
        return v


class SponsorUpdate(SponsorCreate):
    refresh_branding: bool = False


class ChapterCreate(CamelModel):
    brand_id: Optional[str] = None
    name: Optional[str] = None
    city: Optional[str] = None


class ChapterUpdate(CamelModel):
    name: Optional[str] = None
    city: Optional[str] = None
    custom_logo: Optional[str] = None
    custom_colors: Optional[Dict[str, Any]] = None
    sponsor_label: Optional[str] = None


class MemberAdd(CamelModel):
    user_id: Optional[str] = None
    role: str = "MODERATOR"


class MemberRoleUpdate(CamelModel):
    user_id: Optional[str] = None
    role: Optional[str] = None


class RideCreate(CamelModel):
    title: Optional[str] = None
    description: Optional[str] = None
    date: Optional[datetime] = None
    end_time: Optional[datetime] = None
    timezone: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance: Optional[float] = None
    elevation: Optional[float] = None
    pace: Optional[str] = None
    pace_min: Optional[float] = None
    pace_max: Optional[float] = None
    terrain: Optional[str] = None
    max_attendees: Optional[int] = Field(None, ge=1)
    route_url: Optional[str] = None
    is_free: bool = True
    price: Optional[float] = Field(None, ge=0)
    currency: Optional[str] = None
    chapter_id: Optional[str] = None
    recurrence_pattern: Optional[str] = None
    # "YYYY-MM-DD" covers the whole day
    recurrence_end_date: Optional[str] = None


class RideUpdate(RideCreate):
    is_live: Optional[bool] = None
    live_location_url: Optional[str] = None


class CommentCreate(CamelModel):
    content: Optional[str] = None


class RsvpUpsert(CamelModel):
    ride_id: Optional[str] = None
    status: Optional[str] = None


class FollowCreate(CamelModel):
    brand_id: Optional[str] = None
    chapter_id: Optional[str] = None


class ClubSelect(CamelModel):
    chapter_id: Optional[str] = None
    club_id: Optional[str] = None
    club_name: Optional[str] = None

    @validator("club_id", pre=True)
    def coerce_club_id(cls, v):
        # Strava club ids arrive as numbers from some clients
        return str(v) if v is not None else v


class SyncSettingsUpdate(CamelModel):
    auto_sync: Optional[bool] = None


class AdminToggle(CamelModel):
    sponsors_enabled: Optional[bool] = None


class OrganizerCreate(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    cover_url: Optional[str] = None
    website: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None


class PhotoCreate(CamelModel):
    public_id: Optional[str] = None
    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    caption: Optional[str] = None


class RouteCreate(CamelModel):
    url: Optional[str] = None


class SnippetCreate(CamelModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    sort_order: Optional[int] = None


class SnippetUpdate(SnippetCreate):
    pass


class PushSubscribe(CamelModel):
    endpoint: Optional[str] = None
    keys: Optional[Dict[str, str]] = None
