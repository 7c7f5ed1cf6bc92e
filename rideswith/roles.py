"""
Chapter and platform permission helpers.

Chapter roles are OWNER, ADMIN and MODERATOR. Rows written by older clients may
still carry LEAD (treated as OWNER) or AMBASSADOR (treated as MODERATOR).
"""
from typing import Optional

from .models import ChapterMember

PLATFORM_ADMIN_ROLE = "PLATFORM_ADMIN"

CHAPTER_ROLES = ("OWNER", "ADMIN", "MODERATOR")
LEGACY_ROLES = {"LEAD": "OWNER", "AMBASSADOR": "MODERATOR"}

def normalize_role(role: str) -> str:
    if role in LEGACY_ROLES:
        return LEGACY_ROLES[role]
    if role in CHAPTER_ROLES:
        return role
    return "MODERATOR"

def is_owner(role: Optional[str]) -> bool:
    return role in ("OWNER", "LEAD")

def is_admin(role: Optional[str]) -> bool:
    """OWNER, ADMIN or LEAD can manage members."""
    return role in ("OWNER", "ADMIN", "LEAD")

def is_moderator(role: Optional[str]) -> bool:
    return role in ("OWNER", "ADMIN", "MODERATOR", "LEAD", "AMBASSADOR")

def role_display_name(role: str) -> str:
    return {
        "OWNER": "Owner",
        "ADMIN": "Admin",
        "MODERATOR": "Moderator",
    }.get(normalize_role(role), "Member")

def is_platform_admin(user) -> bool:
    return user is not None and getattr(user, "role", None) == PLATFORM_ADMIN_ROLE

def can_manage_sponsors(user, sponsors_enabled: bool) -> bool:
    """Platform admins can always manage sponsors; everyone else needs the community flag."""
    if is_platform_admin(user):
        return True
    return bool(sponsors_enabled)

def get_membership(db, chapter_id: str, user_id: str):
    return (
        db.query(ChapterMember)
        .filter(ChapterMember.chapter_id == chapter_id, ChapterMember.user_id == user_id)
        .first()
    )

def can_manage_chapter(db, user, chapter) -> bool:
    """Brand creator or a chapter admin."""
    if chapter.brand.created_by_id == user.id:
        return True
    membership = get_membership(db, chapter.id, user.id)
    return membership is not None and is_admin(membership.role)
