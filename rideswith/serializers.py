"""
JSON shapes returned by the API. Keys are camelCase for the web client.
"""
from typing import Any, Dict, List, Optional

from .models import (
    Brand,
    Chapter,
    ChapterMember,
    Follow,
    Organizer,
    Ride,
    RideComment,
    RidePhoto,
    RideRoute,
    RideSnippet,
    Rsvp,
    Sponsor,
    User,
    UserNotificationSettings,
)
from .roles import normalize_role
from .utils import isoformat


def user_summary(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {"id": user.id, "name": user.name, "image": user.image, "slug": user.slug}


def user_profile(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "image": user.image,
        "slug": user.slug,
        "bio": user.bio,
        "location": user.location,
        "instagram": user.instagram,
        "strava": user.strava,
        "role": user.role,
    }


def public_profile(user: User) -> Dict[str, Any]:
    data = user_summary(user)
    data.update({
        "bio": user.bio,
        "location": user.location,
        "instagram": user.instagram,
        "strava": user.strava,
        "createdAt": isoformat(user.created_at),
    })
    return data


def notification_settings(s: UserNotificationSettings) -> Dict[str, Any]:
    return {
        "id": s.id,
        "userId": s.user_id,
        "pushEnabled": s.push_enabled,
        "newRideNotifications": s.new_ride_notifications,
        "rideUpdateNotifications": s.ride_update_notifications,
        "rideReminderNotifications": s.ride_reminder_notifications,
        "commentNotifications": s.comment_notifications,
        "autoFollowOnRsvp": s.auto_follow_on_rsvp,
    }


def organizer_summary(organizer: Optional[Organizer]) -> Optional[Dict[str, Any]]:
    if organizer is None:
        return None
    return {"id": organizer.id, "name": organizer.name, "slug": organizer.slug}


def organizer_dict(organizer: Organizer) -> Dict[str, Any]:
    data = organizer_summary(organizer)
    data.update({
        "description": organizer.description,
        "logoUrl": organizer.logo_url,
        "coverUrl": organizer.cover_url,
        "website": organizer.website,
        "primaryColor": organizer.primary_color,
        "secondaryColor": organizer.secondary_color,
        "rideCount": organizer.ride_count,
        "createdAt": isoformat(organizer.created_at),
    })
    return data


def brand_summary(brand: Brand) -> Dict[str, Any]:
    return {
        "id": brand.id,
        "name": brand.name,
        "slug": brand.slug,
        "logo": brand.logo,
        "primaryColor": brand.primary_color,
    }


def brand_dict(brand: Brand) -> Dict[str, Any]:
    return {
        "id": brand.id,
        "name": brand.name,
        "slug": brand.slug,
        "type": brand.type,
        "discipline": brand.discipline,
        "domain": brand.domain,
        "description": brand.description,
        "logo": brand.logo,
        "logoDark": brand.logo_dark,
        "logoIcon": brand.logo_icon,
        "primaryColor": brand.primary_color,
        "secondaryColor": brand.secondary_color,
        "backdrop": brand.backdrop,
        "slogan": brand.slogan,
        "fonts": brand.fonts,
        "instagram": brand.instagram,
        "twitter": brand.twitter,
        "facebook": brand.facebook,
        "strava": brand.strava,
        "youtube": brand.youtube,
        "sponsorsEnabled": brand.sponsors_enabled,
        "sponsorLabel": brand.sponsor_label,
        "createdById": brand.created_by_id,
        "createdAt": isoformat(brand.created_at),
    }


def member_dict(member: ChapterMember) -> Dict[str, Any]:
    return {
        "id": member.id,
        "chapterId": member.chapter_id,
        "userId": member.user_id,
        "role": normalize_role(member.role),
        "joinedAt": isoformat(member.joined_at),
        "user": user_summary(member.user),
    }


def chapter_summary(chapter: Chapter) -> Dict[str, Any]:
    return {
        "id": chapter.id,
        "name": chapter.name,
        "slug": chapter.slug,
        "city": chapter.city,
        "memberCount": chapter.member_count,
        "rideCount": chapter.ride_count,
    }


def chapter_dict(chapter: Chapter, members: Optional[List[ChapterMember]] = None) -> Dict[str, Any]:
    data = chapter_summary(chapter)
    data.update({
        "brandId": chapter.brand_id,
        "customLogo": chapter.custom_logo,
        "customColors": chapter.custom_colors,
        "sponsorsEnabled": chapter.sponsors_enabled,
        "sponsorLabel": chapter.sponsor_label,
        "createdAt": isoformat(chapter.created_at),
        "brand": brand_summary(chapter.brand) if chapter.brand else None,
        "members": [member_dict(m) for m in (members if members is not None else chapter.members)],
    })
    return data


def ride_summary(ride: Ride, attendee_count: int = 0) -> Dict[str, Any]:
    return {
        "id": ride.id,
        "title": ride.title,
        "description": ride.description,
        "date": isoformat(ride.date),
        "endTime": isoformat(ride.end_time),
        "locationName": ride.location_name,
        "locationAddress": ride.location_address,
        "latitude": ride.latitude,
        "longitude": ride.longitude,
        "distance": ride.distance,
        "elevation": ride.elevation,
        "pace": ride.pace.lower(),
        "terrain": ride.terrain,
        "maxAttendees": ride.max_attendees,
        "isFree": ride.is_free,
        "price": ride.price,
        "routeUrl": ride.route_url,
        "organizer": organizer_summary(ride.organizer),
        "attendeeCount": attendee_count,
    }


def ride_detail(ride: Ride, attendee_count: int = 0) -> Dict[str, Any]:
    data = ride_summary(ride, attendee_count)
    data.update({
        "timezone": ride.timezone,
        "paceMin": ride.pace_min,
        "paceMax": ride.pace_max,
        "currency": ride.currency,
        "status": ride.status,
        "chapterId": ride.chapter_id,
        "stravaEventUrl": ride.strava_event_url,
        "recurrencePattern": ride.recurrence_pattern,
        "recurrenceSeriesId": ride.recurrence_series_id,
        "recurrenceEndDate": isoformat(ride.recurrence_end_date),
        "isRecurringTemplate": ride.is_recurring_template,
        "isLive": ride.is_live,
        "liveLocationUrl": ride.live_location_url,
        "liveStartedAt": isoformat(ride.live_started_at),
        "createdAt": isoformat(ride.created_at),
    })
    return data


def rsvp_dict(rsvp: Rsvp, show_email: bool = False) -> Dict[str, Any]:
    user = user_summary(rsvp.user)
    if show_email and rsvp.user is not None:
        user["email"] = rsvp.user.email
    return {
        "id": rsvp.id,
        "rideId": rsvp.ride_id,
        "userId": rsvp.user_id,
        "status": rsvp.status,
        "createdAt": isoformat(rsvp.created_at),
        "user": user,
    }


def comment_dict(comment: RideComment) -> Dict[str, Any]:
    user = comment.user
    return {
        "id": comment.id,
        "content": comment.content,
        "createdAt": isoformat(comment.created_at),
        "user": {
            "id": user.id,
            "name": user.display_name,
            "image": user.image,
            "slug": user.slug,
        },
    }


def follow_dict(follow: Follow) -> Dict[str, Any]:
    chapter = follow.chapter
    return {
        "id": follow.id,
        "userId": follow.user_id,
        "brandId": follow.brand_id,
        "chapterId": follow.chapter_id,
        "createdAt": isoformat(follow.created_at),
        "brand": brand_summary(follow.brand) if follow.brand else None,
        "chapter": {
            "id": chapter.id,
            "name": chapter.name,
            "slug": chapter.slug,
            "city": chapter.city,
            "brand": brand_summary(chapter.brand),
        } if chapter else None,
    }


def sponsor_dict(sponsor: Sponsor) -> Dict[str, Any]:
    return {
        "id": sponsor.id,
        "chapterId": sponsor.chapter_id,
        "brandId": sponsor.brand_id,
        "name": sponsor.name,
        "domain": sponsor.domain,
        "description": sponsor.description,
        "website": sponsor.website,
        "logo": sponsor.logo,
        "backdrop": sponsor.backdrop,
        "primaryColor": sponsor.primary_color,
        "displaySize": sponsor.display_size,
        "isActive": sponsor.is_active,
        "displayOrder": sponsor.display_order,
        "createdAt": isoformat(sponsor.created_at),
    }


def photo_dict(photo: RidePhoto) -> Dict[str, Any]:
    return {
        "id": photo.id,
        "rideId": photo.ride_id,
        "userId": photo.user_id,
        "publicId": photo.public_id,
        "url": photo.url,
        "thumbnailUrl": photo.thumbnail_url,
        "width": photo.width,
        "height": photo.height,
        "caption": photo.caption,
        "createdAt": isoformat(photo.created_at),
        "user": user_summary(photo.user),
    }


def route_dict(route: RideRoute) -> Dict[str, Any]:
    return {
        "id": route.id,
        "rideId": route.ride_id,
        "userId": route.user_id,
        "platform": route.platform,
        "url": route.url,
        "createdAt": isoformat(route.created_at),
        "user": user_summary(route.user),
    }


def snippet_dict(snippet: RideSnippet) -> Dict[str, Any]:
    return {
        "id": snippet.id,
        "title": snippet.title,
        "content": snippet.content,
        "category": snippet.category,
        "sortOrder": snippet.sort_order,
        "createdAt": isoformat(snippet.created_at),
        "updatedAt": isoformat(snippet.updated_at),
    }
