"""
Authorization policy: who counts as an administrator.

Administrator status is a role attribute on the User row. The configured
allow-list (settings.ADMIN_EMAILS) only decides which role an account gets
when it is created or re-addressed, and which accounts are promoted at
startup. Every privilege check goes through this class.

Allow-listed and admin-role accounts are protected: they can never be
deleted, by anyone, including another administrator.
"""

import logging
from typing import Iterable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from authgate.models.user import User, UserRole

logger = logging.getLogger(__name__)


class HasRole(Protocol):
    role: object


class AuthorizationPolicy:
    def __init__(self, admin_emails: Iterable[str] = ()):
        # Exact match only: no case folding or trimming
        self.admin_emails = frozenset(admin_emails)

    def is_admin_email(self, email: str | None) -> bool:
        return email is not None and email in self.admin_emails

    def role_for_email(self, email: str) -> UserRole:
        return UserRole.ADMIN if self.is_admin_email(email) else UserRole.USER

    def is_admin(self, identity: HasRole) -> bool:
        """True if a User row or verified TokenClaims carries the admin role."""
        role = getattr(identity, "role", None)
        return role == UserRole.ADMIN or role == UserRole.ADMIN.value

    def is_protected(self, user: User) -> bool:
        return self.is_admin(user) or self.is_admin_email(user.email)

    async def bootstrap(
        self,
        db: AsyncSession,
        seed_password: str | None = None,
        seed_name: str = "Administrator",
    ) -> None:
        """
        Bring the store in line with the allow-list at startup.

        Existing allow-listed accounts are promoted to admin. If a seed
        password is configured, allow-listed addresses without an account
        get one.
        """
        # Deferred to avoid a cycle: user_store imports the policy type
        from authgate.security import hash_password_async
        from authgate.services import user_store

        for email in sorted(self.admin_emails):
            user = await user_store.find_by_email(db, email)
            if user is None:
                if seed_password:
                    password_hash = await hash_password_async(seed_password)
                    await user_store.create_user(
                        db, seed_name, email, password_hash, role=UserRole.ADMIN
                    )
                    logger.info(f"Seeded administrator account {email}")
                continue
            if user.role != UserRole.ADMIN:
                await user_store.update_user(db, user.id, role=UserRole.ADMIN)
                logger.info(f"Promoted {email} to administrator")

        present = await user_store.count_by_emails(db, self.admin_emails)
        logger.info(
            f"Administrator allow-list: {present} of {len(self.admin_emails)} "
            "addresses have accounts"
        )
