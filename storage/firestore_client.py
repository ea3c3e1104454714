from __future__ import annotations

from functools import lru_cache
from typing import Optional

from google.cloud import firestore

from config.settings import settings


def gcp_project() -> Optional[str]:
    """Configured project, or None to let ADC pick the default one."""
    return settings.FIRESTORE_PROJECT_ID or None


@lru_cache(maxsize=1)
def get_firestore_client() -> firestore.Client:
    return firestore.Client(project=gcp_project())
