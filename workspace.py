"""
Per-job temporary directories under the processing root, plus the sweep
that removes directories left behind by crashed jobs.
"""

import os
import time
import shutil
import logging
from contextlib import contextmanager
from typing import Iterable, Iterator, List

from config import DOWNLOADS_DIR_NAME, LOGS_DIR_NAME, PROCESSING_DIR_NAME, TRANSCRIPTIONS_DIR_NAME


class WorkspaceManager:
    """Allocates and destroys job-scoped directories under one temp root."""

    def __init__(self, temp_root: str):
        self.temp_root = temp_root
        self.processing_root = os.path.join(temp_root, PROCESSING_DIR_NAME)
        self.downloads_root = os.path.join(temp_root, DOWNLOADS_DIR_NAME)
        self.logs_root = os.path.join(temp_root, LOGS_DIR_NAME)
        self.transcriptions_root = os.path.join(temp_root, TRANSCRIPTIONS_DIR_NAME)

    def path_for(self, job_key: str) -> str:
        job_key = str(job_key)
        if not job_key or os.sep in job_key or job_key in (".", ".."):
            raise ValueError(f"Invalid workspace key: {job_key!r}")
        return os.path.join(self.processing_root, job_key)

    def create(self, job_key: str) -> str:
        path = self.path_for(job_key)
        os.makedirs(path, exist_ok=True)
        return path

    def destroy(self, paths: Iterable[str]) -> None:
        """Remove each directory tree. Paths that are already gone are skipped."""
        for path in paths:
            if os.path.exists(path):
                logging.info(f"Removing directory: {path}")
                shutil.rmtree(path, ignore_errors=True)

    @contextmanager
    def tracked(self) -> Iterator[List[str]]:
        """
        Yield a list the caller appends workspace paths to. Every path in the
        list is destroyed when the block exits, however it exits.
        """
        paths: List[str] = []
        try:
            yield paths
        finally:
            try:
                self.destroy(paths)
            except OSError as e:
                logging.error(f"Error during cleanup: {e}")

    def cleanup_video_files(self, video_id: str, segment_ids: Iterable[str] = ()) -> None:
        """Remove the workspaces of a video, its fallback and its segments."""
        logging.info(f"Cleaning up all files for video {video_id}...")
        keys = [video_id, f"{video_id}_fallback", *segment_ids]
        self.destroy([self.path_for(key) for key in keys])
        logging.info(f"Cleaned up all files for video {video_id}")

    def sweep_orphans(self, max_age_hours: float = 24) -> int:
        """
        Remove entries of the processing and download roots older than
        max_age_hours, then remove those roots if they are left empty.
        Best effort: a failing entry is logged and the sweep carries on.
        Returns the number of entries removed.
        """
        cutoff = time.time() - max_age_hours * 3600
        removed = 0

        for root in (self.processing_root, self.downloads_root):
            if not os.path.isdir(root):
                continue
            logging.info(f"Checking for orphaned temp entries in: {root}")
            try:
                entries = os.listdir(root)
            except OSError as e:
                logging.error(f"❌ Could not list {root}: {e}")
                continue

            for name in entries:
                entry = os.path.join(root, name)
                try:
                    if os.path.getmtime(entry) >= cutoff:
                        continue
                    logging.info(f"Removing orphaned entry: {entry}")
                    if os.path.isdir(entry) and not os.path.islink(entry):
                        shutil.rmtree(entry)
                    else:
                        os.remove(entry)
                    removed += 1
                except OSError as e:
                    logging.error(f"❌ Could not remove orphaned entry {entry}: {e}")

            try:
                if not os.listdir(root):
                    logging.info(f"Removing empty directory: {root}")
                    os.rmdir(root)
            except OSError as e:
                logging.warning(f"Could not remove empty directory {root}: {e}")

        logging.info(f"Orphaned temp cleanup completed ({removed} removed)")
        return removed
