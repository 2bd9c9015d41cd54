import json
import logging
import os
from pathlib import Path

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent.parent

# Local fallbacks when FIREBASE_CREDENTIALS is not set
possible_paths = [
    BASE_DIR / 'config' / 'serviceAccountKey.json',
    BASE_DIR / 'serviceAccountKey.json',
]


def _credentials_path():
    for p in possible_paths:
        if p.exists():
            return str(p)
    return None


def firebase_ready():
    return bool(firebase_admin._apps)


def initialize_firebase():
    if firebase_ready():
        return True

    try:
        firebase_creds_json = os.getenv('FIREBASE_CREDENTIALS')
        if firebase_creds_json:
            cred = credentials.Certificate(json.loads(firebase_creds_json))
            firebase_admin.initialize_app(cred)
            logger.info("Firebase Admin initialized from environment")
            return True

        cred_path = _credentials_path()
        if cred_path:
            firebase_admin.initialize_app(credentials.Certificate(cred_path))
            logger.info("Firebase Admin initialized from service account file")
            return True
    except (ValueError, OSError) as exc:
        logger.error("Failed to initialize Firebase: %s", exc)
        return False

    logger.warning("No Firebase credentials configured; push notifications are disabled")
    return False
