#!/usr/bin/env python3
"""
Seed the Olsera API credential record.

Usage:
    python scripts/seed_api_credentials.py
    python scripts/seed_api_credentials.py --app-id XXX --secret-key YYY

Values default to OLSERA_APP_ID / OLSERA_SECRET_KEY / OLSERA_BASE_URL from
the environment (or .env). An existing record is left untouched.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from stockrecon.core.config import settings
from stockrecon.db.base import Base
from stockrecon.db.session import SessionLocal, engine, ensure_sqlite_directory
from stockrecon.models.credential import ApiCredential
from stockrecon.services.credential_vault import OLSERA_PROVIDER

logger = logging.getLogger("seed_api_credentials")


def seed_api_credentials(db, app_id: str, secret_key: str, base_url: str) -> bool:
    """Create the provider record. Returns False if one already exists."""
    existing = db.query(ApiCredential).filter(ApiCredential.provider == OLSERA_PROVIDER).first()
    if existing:
        logger.info(f"{OLSERA_PROVIDER} API credentials already exist")
        return False

    db.add(ApiCredential(
        provider=OLSERA_PROVIDER,
        app_id=app_id,
        secret_key=secret_key,
        base_url=base_url,
        active=True,
    ))
    db.commit()
    logger.info(f"{OLSERA_PROVIDER} API credentials created")
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description="Seed Olsera API credentials")
    parser.add_argument("--app-id", default=settings.olsera_app_id)
    parser.add_argument("--secret-key", default=settings.olsera_secret_key)
    parser.add_argument("--base-url", default=settings.olsera_base_url)
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    if not args.app_id or not args.secret_key:
        logger.error("An app id and secret key are required (flags or OLSERA_APP_ID/OLSERA_SECRET_KEY)")
        return 1

    ensure_sqlite_directory()
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        seed_api_credentials(db, args.app_id, args.secret_key, args.base_url)
    except Exception as e:
        db.rollback()
        logger.error(f"Error seeding API credentials: {e}")
        raise
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
