"""
auth/seed.py -- Startup seeding of roles and the optional default admin.

Runs once from the API lifespan, before any request is served. Every step is
idempotent, so restarting the process never duplicates rows.

The admin account is only created when ADMIN_PASSWORD is configured; there
is no built-in default password.
"""

from __future__ import annotations

import logging

from auth.models import RoleName, User
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings

logger = logging.getLogger("todomanager.seed")


def seed_defaults(store: UserStore, settings: Settings) -> None:
    for role in RoleName:
        store.ensure_role(role.value)
    logger.info("Roles ensured: %s", ", ".join(r.value for r in RoleName))

    if not settings.admin_password:
        return
    if store.username_exists(settings.admin_username):
        return

    admin_id = store.create_user(
        User(
            username=settings.admin_username,
            hashed_password=hash_password(settings.admin_password),
            first_name="Admin",
            last_name="User",
            email=settings.admin_email,
        )
    )
    store.add_to_role(admin_id, RoleName.ADMIN.value)
    store.add_to_role(admin_id, RoleName.USER.value)
    logger.info("Default admin %r created and assigned roles", settings.admin_username)
