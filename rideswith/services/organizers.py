import logging

from sqlalchemy.orm import Session

from ..models import Organizer, OrganizerMember, User
from ..utils import slugify, unique_suffix

logger = logging.getLogger(__name__)

MANAGER_ROLES = ("OWNER", "ADMIN")


def find_managed_organizer(db: Session, user_id: str):
    return (
        db.query(Organizer)
        .join(OrganizerMember, OrganizerMember.organizer_id == Organizer.id)
        .filter(OrganizerMember.user_id == user_id, OrganizerMember.role.in_(MANAGER_ROLES))
        .order_by(Organizer.created_at)
        .first()
    )


def get_or_create_organizer(db: Session, user: User, fallback_name: str = "My Rides") -> Organizer:
    """
    The organizer a user publishes rides under. A personal organizer owned by the
    user is created (and flushed, not committed) on first use.
    """
    organizer = find_managed_organizer(db, user.id)
    if organizer:
        return organizer

    name = user.name or (user.email.split("@")[0] if user.email else None) or fallback_name
    base_slug = slugify(name) or "organizer"
    organizer = Organizer(name=name, slug=f"{base_slug}-{unique_suffix()}")
    organizer.members.append(OrganizerMember(user_id=user.id, role="OWNER"))
    db.add(organizer)
    db.flush()
    logger.info(f"Created personal organizer {organizer.slug} for user {user.id}")
    return organizer


def user_manages_organizer(db: Session, organizer_id: str, user_id: str) -> bool:
    return (
        db.query(OrganizerMember)
        .filter(
            OrganizerMember.organizer_id == organizer_id,
            OrganizerMember.user_id == user_id,
            OrganizerMember.role.in_(MANAGER_ROLES),
        )
        .first()
        is not None
    )
