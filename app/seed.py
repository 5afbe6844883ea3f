"""Seed the first super-admin if none exists."""
import logging

from app.api.deps import get_password_hash
from app.config import settings
from app.models.user import User, UserRole

logger = logging.getLogger(__name__)


async def seed_admin():
    if not settings.seed_admin_password:
        logger.warning("SEED_ADMIN_PASSWORD not set. Skipping admin seed.")
        return
    existing = await User.find_one(User.email == settings.seed_admin_email.lower())
    if existing:
        return
    await User(
        email=settings.seed_admin_email.lower(),
        hashed_password=get_password_hash(settings.seed_admin_password),
        role=UserRole.SUPER_ADMIN,
        full_name=settings.seed_admin_full_name,
    ).insert()
    logger.info(f"Seeded admin account {settings.seed_admin_email}")
