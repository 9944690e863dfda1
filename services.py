"""
Service classes for the story video worker.
Contains SegmentProcessor and VideoProcessor.
"""

import os
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from models import STATUS_COMPLETED, STATUS_FAILED, STATUS_PENDING
from renderer import FFmpegRenderer
from storage import StorageClient, download_file, finalized_video_key, is_valid_url, segment_clip_key
from store import RecordStore
from transcription import WhisperTranscriber
from workspace import WorkspaceManager
from exceptions import DownloadError, InvalidAssetError, MergeError, TranscriptionError, UploadError
from config import MERGE_TRANSITION_SECONDS, SUBTITLES_ENABLED


def _log_section(title: str) -> None:
    separator = "=" * 80
    logging.info(separator)
    logging.info(f"📌 {title.upper()}")
    logging.info(separator)


def run_in_background(job: Callable[[], None], name: str = "cleanup") -> None:
    """Fire and forget: run job on a daemon thread, log instead of raising."""
    def _target():
        try:
            job()
        except Exception as e:
            logging.error(f"❌ Background {name} failed: {e}")

    threading.Thread(target=_target, name=name, daemon=True).start()


class SegmentProcessor:
    """Renders one segment into a clip and uploads it. Never touches the segment's status."""

    def __init__(
        self,
        store: RecordStore,
        storage: StorageClient,
        renderer: FFmpegRenderer,
        workspace: WorkspaceManager,
        transcriber: Optional[WhisperTranscriber] = None,
        subtitles_enabled: bool = SUBTITLES_ENABLED,
    ):
        self.store = store
        self.storage = storage
        self.renderer = renderer
        self.workspace = workspace
        self.transcriber = transcriber
        self.subtitles_enabled = subtitles_enabled

    def process(self, segment_id: str) -> Optional[str]:
        """
        Returns the public URL of the uploaded clip, or None if any step
        failed. The segment workspace is removed on every path.
        """
        try:
            logging.info(f"Starting to process segment {segment_id}")
            segment = self.store.get_segment(segment_id)
            if segment is None:
                raise InvalidAssetError(f"Segment {segment_id} not found")
            if not segment.imageURL or not segment.audioURL:
                raise InvalidAssetError(f"Segment {segment_id} is missing image or audio URL")
            if not is_valid_url(segment.imageURL) or not is_valid_url(segment.audioURL):
                raise InvalidAssetError(
                    f"Segment {segment_id} has invalid image or audio URL format: "
                    f"imageURL: {segment.imageURL}, audioURL: {segment.audioURL}"
                )
            story_id = segment.storyId
            image_url, audio_url = segment.imageURL, segment.audioURL
        except Exception as e:
            logging.error(f"❌ Error processing segment {segment_id}: {e}")
            return None

        segment_dir = self.workspace.create(segment_id)
        try:
            image_path = os.path.join(segment_dir, "image.jpg")
            audio_path = os.path.join(segment_dir, "audio.mp3")
            video_path = os.path.join(segment_dir, "output.mp4")

            downloads_root = self.workspace.downloads_root
            if not download_file(image_url, image_path, downloads_root) or not download_file(
                audio_url, audio_path, downloads_root
            ):
                raise DownloadError("Failed to download image or audio files")

            duration = self.renderer.probe_duration(audio_path)
            subtitles_path = self._subtitles_for(audio_path, segment_dir)

            self.renderer.render_clip(image_path, audio_path, video_path, duration, subtitles_path)

            key = segment_clip_key(story_id, segment_id)
            logging.info(f"Uploading video as {key}")
            video_url = self.storage.upload_file(video_path, key)
            if not video_url:
                raise UploadError("Failed to upload video to storage")

            logging.info(f"✅ Created video URL: {video_url}")
            return video_url
        except Exception as e:
            logging.error(f"❌ Error processing segment {segment_id}: {e}")
            return None
        finally:
            self.workspace.destroy([segment_dir])

    def _subtitles_for(self, audio_path: str, segment_dir: str) -> Optional[str]:
        if not self.subtitles_enabled or self.transcriber is None:
            return None
        try:
            srt = self.transcriber.transcribe(audio_path, output_dir=segment_dir)
        except TranscriptionError as e:
            logging.warning(f"⚠️ Transcription failed, rendering without subtitles: {e} {e.stderr}")
            return None
        if not srt:
            return None
        subtitles_path = os.path.join(segment_dir, "subtitles.srt")
        with open(subtitles_path, "w", encoding="utf-8") as f:
            f.write(srt)
        return subtitles_path


@dataclass
class ProcessedSegment:
    id: str
    sortedIndex: int
    videoURL: str


class VideoProcessor:
    """Drives one video from pending to completed or failed."""

    def __init__(
        self,
        store: RecordStore,
        storage: StorageClient,
        renderer: FFmpegRenderer,
        workspace: WorkspaceManager,
        segment_processor: SegmentProcessor,
        transition_seconds: float = MERGE_TRANSITION_SECONDS,
        background: Callable[[Callable[[], None]], None] = run_in_background,
    ):
        self.store = store
        self.storage = storage
        self.renderer = renderer
        self.workspace = workspace
        self.segment_processor = segment_processor
        self.transition_seconds = transition_seconds
        self.background = background

    def process(self, video_id: str) -> Optional[str]:
        """
        Returns the finalized video URL, or None when the video ended up failed.
        Raises MergeError when the merge failed and no fallback could be stored.
        """
        try:
            return self._process(video_id)
        except MergeError:
            self._cleanup_now(video_id)
            raise
        except Exception as e:
            logging.exception(f"❌ Error processing video {video_id}: {e}")
            self._cleanup_now(video_id)
            try:
                self.store.update_video_status(video_id, STATUS_FAILED)
            except Exception as update_error:
                logging.error(f"❌ Failed to update video {video_id} status to failed: {update_error}")
            return None

    def _process(self, video_id: str) -> Optional[str]:
        _log_section(f"Processing video {video_id}")

        video = self.store.get_video(video_id)
        if video is None:
            logging.error(f"❌ Failed to fetch video {video_id}: Video not found")
            self.store.update_video_status(video_id, STATUS_FAILED)
            return None
        if not video.storyId:
            logging.error(f"❌ Video {video_id} is not associated with a story")
            self.store.update_video_status(video_id, STATUS_FAILED)
            return None
        story_id = video.storyId

        self.store.update_video_status(video_id, STATUS_PENDING)

        logging.info(f"Fetching segments for story {story_id}")
        segments = self.store.list_segments(story_id)
        if not segments:
            logging.error(f"❌ No segments found for story {story_id}")
            return self._fail(video_id)
        logging.info(f"Found {len(segments)} segments for video {video_id} (story {story_id})")

        video_dir = self.workspace.create(video_id)
        processed: List[ProcessedSegment] = []
        has_failed_segments = False

        with self.workspace.tracked() as segment_dirs:
            for segment in segments:
                _log_section(f"Processing segment {segment.id} (index: {segment.sortedIndex})")
                segment_dirs.append(self.workspace.create(segment.id))
                video_url = self._process_segment(segment.id)
                if video_url:
                    processed.append(ProcessedSegment(segment.id, segment.sortedIndex, video_url))
                else:
                    has_failed_segments = True

        if has_failed_segments:
            logging.warning(f"⚠️ Some segments failed during processing for video {video_id}")
            return self._fail(video_id)

        if not processed:
            logging.error(f"❌ Failed to process any segments for video {video_id}")
            return self._fail(video_id)

        _log_section(f"Merging {len(processed)} segment videos for video {video_id}")
        processed.sort(key=lambda s: s.sortedIndex)

        local_files = []
        for segment in processed:
            segment_video_path = os.path.join(video_dir, f"segment_{segment.id}.mp4")
            if download_file(segment.videoURL, segment_video_path, self.workspace.downloads_root):
                local_files.append(segment_video_path)
            else:
                logging.error(f"❌ Failed to download video for segment {segment.id}")

        if not local_files:
            logging.error("❌ Failed to download any segment videos")
            return self._fail(video_id)

        final_path = os.path.join(video_dir, f"{video_id}.mp4")
        try:
            self.renderer.merge_clips(local_files, final_path, self.transition_seconds)
        except Exception as merge_error:
            logging.error(f"❌ Error merging videos for {video_id}: {merge_error}")
            return self._fallback(video_id, processed[0], merge_error)

        key = finalized_video_key(video_id)
        logging.info(f"Uploading finalized video to storage as {key}")
        final_url = self.storage.upload_file(final_path, key)
        if not final_url:
            logging.error("❌ Failed to upload final merged video to storage")
            return self._fail(video_id)

        self.store.update_video_status(video_id, STATUS_COMPLETED, final_url)
        logging.info(f"✅ Successfully processed and merged video {video_id}")
        self._schedule_cleanup(video_id)
        return final_url

    def _process_segment(self, segment_id: str) -> Optional[str]:
        """Render one segment and persist its outcome. Returns the clip URL only if both succeeded."""
        try:
            video_url = self.segment_processor.process(segment_id)
            if video_url and self.store.complete_segment(segment_id, video_url):
                logging.info(f"✅ Updated segment {segment_id} with videoURL")
                return video_url
            logging.error(f"❌ Failed to process segment {segment_id}")
        except Exception as e:
            logging.error(f"❌ Error processing segment {segment_id}: {e}")

        try:
            self.store.fail_segment(segment_id)
        except Exception as e:
            logging.error(f"❌ Failed to update segment {segment_id} status to failed: {e}")
        return None

    def _fallback(self, video_id: str, first: ProcessedSegment, merge_error: Exception) -> None:
        """
        Keep the first clip as a degraded artifact. The video is still failed.
        If the fallback itself cannot be stored the merge error is raised as a
        MergeError after the video is marked failed.
        """
        logging.warning(f"⚠️ Merging failed. Falling back to segment {first.id}'s video")
        fallback_dir = self.workspace.create(f"{video_id}_fallback")
        fallback_path = os.path.join(fallback_dir, "segment_fallback.mp4")

        fallback_url = None
        if download_file(first.videoURL, fallback_path, self.workspace.downloads_root):
            fallback_url = self.storage.upload_file(fallback_path, finalized_video_key(video_id, fallback=True))

        if not fallback_url:
            logging.error(f"❌ Could not store fallback video for {video_id}")
            self.store.update_video_status(video_id, STATUS_FAILED)
            if isinstance(merge_error, MergeError):
                raise merge_error
            raise MergeError(str(merge_error)) from merge_error

        self.store.update_video_status(video_id, STATUS_FAILED, fallback_url)
        logging.warning(f"⚠️ Fallback: stored first segment for video {video_id} but marked it as failed")
        self._schedule_cleanup(video_id)
        return None

    def _fail(self, video_id: str) -> None:
        self.store.update_video_status(video_id, STATUS_FAILED)
        self._schedule_cleanup(video_id)
        return None

    def _segment_ids(self, video_id: str) -> List[str]:
        try:
            return self.store.segment_ids_for_video(video_id)
        except Exception as e:
            logging.warning(f"Could not list segments of video {video_id} for cleanup: {e}")
            return []

    def _cleanup_now(self, video_id: str) -> None:
        try:
            self.workspace.cleanup_video_files(video_id, self._segment_ids(video_id))
        except Exception as e:
            logging.error(f"❌ Error cleaning up files for video {video_id}: {e}")

    def _schedule_cleanup(self, video_id: str) -> None:
        logging.info(f"Scheduling cleanup of temporary files for video {video_id}")
        self.background(lambda: self._cleanup_now(video_id))
