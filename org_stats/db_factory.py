#!/usr/bin/env python3
"""
Database factory to switch between SQLite and Firestore based on configuration.
"""

import logging
import os
from typing import Optional

from .config import AppConfig, load_configuration


def _is_writable_directory(directory: str) -> bool:
    os.makedirs(directory, mode=0o755, exist_ok=True)
    test_file = os.path.join(directory, ".write_test")
    with open(test_file, 'w') as f:
        f.write("test")
    os.remove(test_file)
    return True


def resolve_database_path(primary_path: str) -> str:
    """
    Resolve the SQLite path, testing the preferred path first and falling back if needed.

    The fallback (DATABASE_FALLBACK_PATH, default /tmp/org_stats.db) is only
    used when ALLOW_DB_FALLBACK is 'true'.
    """
    logger = logging.getLogger(__name__)
    abs_primary_path = os.path.abspath(primary_path)

    try:
        _is_writable_directory(os.path.dirname(abs_primary_path) or ".")
        return abs_primary_path
    except OSError as e:
        logger.warning(f"Primary database directory for {abs_primary_path} is not writable: {e}")

    if os.environ.get("ALLOW_DB_FALLBACK", "").lower() == "true":
        fallback_abs = os.path.abspath(os.environ.get("DATABASE_FALLBACK_PATH", "/tmp/org_stats.db"))
        try:
            _is_writable_directory(os.path.dirname(fallback_abs) or ".")
            logger.warning(f"Using fallback database path: {fallback_abs}. Data may be ephemeral.")
            return fallback_abs
        except OSError as fallback_error:
            logger.error(f"Fallback database path {fallback_abs} also failed: {fallback_error}")

    # Opening the database will surface the error to the caller
    logger.error(f"All database paths failed, using primary path anyway: {abs_primary_path}")
    return abs_primary_path


def get_database_manager(config: Optional[AppConfig] = None):
    """
    Return the database manager selected by the configuration.

    Firestore is used when USE_FIRESTORE is 'true' or when running on App
    Engine; otherwise SQLite at DATABASE_PATH.
    """
    logger = logging.getLogger(__name__)
    config = config or load_configuration()

    if config.use_firestore:
        from .firestore_db import FirestoreDatabaseManager
        logger.info("Using Firestore database")
        return FirestoreDatabaseManager()

    from .app import DatabaseManager
    logger.debug("Using SQLite database")
    return DatabaseManager(resolve_database_path(config.database_path))
