"""Firebase Admin app bootstrap shared by the Firestore store and the FCM channel."""

import logging
import os
from typing import Optional

import firebase_admin
from firebase_admin import credentials

from core.config_loader import FirebaseConfig

logger = logging.getLogger(__name__)


def get_firebase_app(config: Optional[FirebaseConfig] = None) -> firebase_admin.App:
    """
    Return the default Firebase app, initializing it on first use.

    Uses the service-account file from config (or GOOGLE_APPLICATION_CREDENTIALS)
    when given, otherwise application default credentials.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    config = config or FirebaseConfig()
    credentials_file = config.credentials_file or os.environ.get('GOOGLE_APPLICATION_CREDENTIALS')
    cred = credentials.Certificate(credentials_file) if credentials_file else credentials.ApplicationDefault()

    options = {'projectId': config.project_id} if config.project_id else None
    app = firebase_admin.initialize_app(cred, options)
    logger.info(f"Firebase app initialized (project: {config.project_id or 'default'})")
    return app
