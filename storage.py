"""
Moving bytes in and out of the worker: HTTP downloads of remote assets and
uploads of rendered clips to Supabase storage.
"""

import os
import time
import uuid
import shutil
import logging
from typing import Optional
from urllib.parse import urlparse

import requests

from config import DOWNLOAD_TIMEOUT, FINALIZED_PREFIX, SEGMENT_VIDEOS_PREFIX


def is_valid_url(url: Optional[str]) -> bool:
    """True only for well-formed http(s) URLs with a host."""
    if not url or not isinstance(url, str):
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def download_file(url: str, dest_path: str, downloads_root: str, timeout: int = DOWNLOAD_TIMEOUT) -> bool:
    """
    Fetch url into dest_path. The body is streamed into a staging file under
    downloads_root first and only then copied to dest_path, so dest_path is
    never written straight from the network. Returns False on any failure.
    """
    if not is_valid_url(url):
        logging.error(f"❌ Refusing to download non-http(s) URL: {url!r}")
        return False

    staging_path = None
    try:
        logging.info(f"Downloading file from {url}")
        os.makedirs(downloads_root, exist_ok=True)
        staging_name = f"{int(time.time() * 1000)}_{uuid.uuid4().hex}_{os.path.basename(dest_path)}"
        staging_path = os.path.join(downloads_root, staging_name)

        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            with open(staging_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=1024 * 1024):
                    if chunk:
                        f.write(chunk)

        shutil.copyfile(staging_path, dest_path)
        logging.info(f"✅ Downloaded file to {dest_path}")
        return True
    except (requests.RequestException, OSError) as e:
        logging.error(f"❌ Error downloading file {url}: {e}")
        return False
    finally:
        if staging_path and os.path.exists(staging_path):
            try:
                os.remove(staging_path)
            except OSError as e:
                logging.warning(f"Could not delete staged download {staging_path}: {e}")


def storage_path_for(key: str) -> str:
    """Finalized outputs live at the bucket root, everything else under videos/."""
    if key.startswith(FINALIZED_PREFIX):
        return key
    return f"{SEGMENT_VIDEOS_PREFIX}{key}"


def segment_clip_key(story_id: str, segment_id: str) -> str:
    return f"{story_id}/{segment_id}.mp4"


def finalized_video_key(video_id: str, fallback: bool = False) -> str:
    suffix = "_fallback" if fallback else ""
    return f"{FINALIZED_PREFIX}{video_id}{suffix}.mp4"


class StorageClient:
    """Uploads files to one Supabase storage bucket and resolves public URLs."""

    def __init__(self, supabase_client, bucket: str):
        self.client = supabase_client
        self.bucket = bucket

    def upload_file(self, local_path: str, key: str) -> Optional[str]:
        """
        Upload with overwrite allowed, so a retried upload is harmless.
        Returns the public URL, or None if anything failed.
        """
        storage_path = storage_path_for(key)
        try:
            bucket = self.client.storage.from_(self.bucket)
            with open(local_path, "rb") as f:
                bucket.upload(
                    path=storage_path,
                    file=f,
                    file_options={"content-type": "video/mp4", "upsert": "true"},
                )
            public_url = bucket.get_public_url(storage_path)
            logging.info(f"✅ Uploaded {local_path} to {storage_path}")
            return public_url
        except Exception as e:
            logging.error(f"❌ Error uploading file {local_path} to {storage_path}: {e}")
            return None
