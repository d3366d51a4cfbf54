"""
Firebase Config Module

Creates the Firestore client shared by every store module.

Functions:
    get_db: Return the Firestore client, or None when Firebase is not configured.
    set_db: Replace the client (emulator, tests).
"""

import logging

import firebase_admin
from firebase_admin import credentials, firestore

from group_ledger.config.settings import Config

logger = logging.getLogger(__name__)

_db = None


def _initialize_app():
    """Initialize the default firebase-admin app if it does not exist yet."""
    try:
        return firebase_admin.get_app()
    except ValueError:
        cred = credentials.Certificate(Config.FIREBASE_CREDENTIALS)
        options = {}
        if Config.FIREBASE_PROJECT_ID:
            options["projectId"] = Config.FIREBASE_PROJECT_ID
        logger.info("Initializing Firebase app")
        return firebase_admin.initialize_app(cred, options or None)


def get_db():
    """
    Get the Firestore client.

    Returns:
        The Firestore client, or None when FIREBASE_CREDENTIALS is not set.
        Callers raise RuntimeError("Firestore is not available") on None.
    """
    global _db
    if _db is not None:
        return _db

    if not Config.FIREBASE_CREDENTIALS:
        logger.warning("FIREBASE_CREDENTIALS is not set, Firestore is unavailable")
        return None

    app = _initialize_app()
    _db = firestore.client(app)
    return _db


def set_db(client) -> None:
    """Use the given client for all later get_db() calls; None resets it."""
    global _db
    _db = client
