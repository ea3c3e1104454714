from __future__ import annotations

import logging
from functools import lru_cache
from typing import Dict, Optional

from google.cloud import storage

from storage.firestore_client import gcp_project

log = logging.getLogger("medprice.storage.gcs")


@lru_cache(maxsize=1)
def get_gcs_client() -> storage.Client:
    return storage.Client(project=gcp_project())


def upload_bytes(
    bucket_name: str,
    blob_name: str,
    content: bytes,
    content_type: str = "application/octet-stream",
    metadata: Optional[Dict[str, str]] = None,
) -> str:
    """Write `content` to gs://bucket/blob and return that URI."""
    blob = get_gcs_client().bucket(bucket_name).blob(blob_name)
    if metadata:
        blob.metadata = metadata
    blob.upload_from_string(content, content_type=content_type)
    uri = f"gs://{bucket_name}/{blob_name}"
    log.info("gcs_upload", extra={"extra": {"event": "gcs_upload", "uri": uri, "bytes": len(content)}})
    return uri
