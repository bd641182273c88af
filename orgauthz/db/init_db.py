from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from orgauthz import models  # noqa: F401  (register tables on Base.metadata)
from orgauthz.db.base import Base
from orgauthz.models import Permission, SubscriptionTier
from orgauthz.permissions.registry import RegistryFile, load_registry_file
from orgauthz.settings import get_settings

logger = logging.getLogger(__name__)


def init_db(registry_file: RegistryFile | None = None) -> None:
    """
    Create tables + seed the permission catalog and subscription tiers.

    Seeding is idempotent: codes and tiers already present are left alone, so
    appending a code to the registry file and restarting only adds the new row.
    """

    from orgauthz.db.session import SessionLocal, engine

    Base.metadata.create_all(bind=engine)

    if registry_file is None:
        registry_file = load_registry_file(get_settings().resolved_registry_path())

    with SessionLocal() as db:
        seed_catalog(db, registry_file)
        db.commit()


def seed_catalog(db: Session, registry_file: RegistryFile) -> None:
    existing_codes = set(db.scalars(select(Permission.code)).all())
    added = 0
    for perm in registry_file.permissions:
        if perm.code in existing_codes:
            continue
        db.add(
            Permission(
                code=perm.code,
                bit_position=perm.bit_position,
                name=perm.name,
                description=perm.description,
                category=perm.category,
                is_addon=perm.is_addon,
                is_dangerous=perm.is_dangerous,
            )
        )
        added += 1

    existing_tiers = set(db.scalars(select(SubscriptionTier.slug)).all())
    for tier in registry_file.tiers:
        if tier.slug in existing_tiers:
            continue
        db.add(
            SubscriptionTier(
                slug=tier.slug,
                name=tier.name,
                description=tier.description,
                base_permissions=tier.base_permissions,
                max_members=tier.max_members,
            )
        )
        added += 1

    db.flush()
    logger.info("Catalog seeded (%d new rows)", added)
