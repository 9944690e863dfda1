"""
FFmpeg render engine for the story video worker.

Two pipelines are built with ffmpeg-python and executed as a single ffmpeg
process each:

- render_clip: one still image + one narration track -> a clip with a slow
  Ken Burns zoom and optional burned-in subtitles.
- merge_clips: N rendered clips -> one video, joined with a cross-fade
  (or a hard cut when the transition is 0).

Both calls block until ffmpeg exits, write a side-channel log under the logs
directory and report normalized progress to an optional callback.
"""

import os
import time
import uuid
import shutil
import logging
import threading
import subprocess
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

import ffmpeg

from config import (
    AUDIO_CODEC,
    FFMPEG_PATH,
    FFPROBE_PATH,
    MERGE_TRANSITION_SECONDS,
    PIXEL_FORMAT,
    RENDER_TIMEOUT,
    SUBTITLE_STYLE,
    VIDEO_CODEC,
    VIDEO_CRF,
    VIDEO_FPS,
    VIDEO_HEIGHT,
    VIDEO_PRESET,
    VIDEO_PROFILE,
    VIDEO_WIDTH,
    ZOOM_END,
    ZOOM_START,
)
from exceptions import MergeError, RenderError

ProgressCallback = Callable[[int], None]

# Keys ffmpeg writes with -progress; anything else on the pipe is diagnostics.
PROGRESS_KEYS = {
    "frame", "fps", "bitrate", "total_size", "out_time_us", "out_time_ms",
    "out_time", "dup_frames", "drop_frames", "speed", "progress",
}


def _timestamp() -> str:
    return f"[{datetime.now(timezone.utc).isoformat()}]"


def log_progress(percent: int) -> None:
    bar = "█" * (percent // 5) + "░" * (20 - percent // 5)
    logging.info(f"🔄 Processing: [{bar}] {percent}%")


class ProgressNormalizer:
    """
    Turns ffmpeg's raw percentage into a display-worthy sequence.

    The raw signal can overshoot 100, restart near zero when a second pass
    begins and jitter backwards. Rules, in order:
      - clamp to [0, 100]
      - two zeros in a row after any progress start a new phase
        (the high-water mark is reset)
      - a single zero after more than 50 points in the same phase is noise
      - a drop of more than 5 points below a high-water mark above 10
        re-uses the last emitted value
      - only changes of at least 2 points are emitted, except 0 and 100
    update() returns the value to display, or None to stay silent.
    """

    NOISE_ZERO_FLOOR = 50
    DROP_TOLERANCE = 5
    DROP_FLOOR = 10
    MIN_STEP = 2

    def __init__(self):
        self.high_water = 0
        self.last_emitted: Optional[int] = None
        self.consecutive_zeros = 0
        self.new_phase = False

    def update(self, raw_percent) -> Optional[int]:
        try:
            percent = int(float(raw_percent or 0))
        except (TypeError, ValueError, OverflowError):
            percent = 0
        percent = max(0, min(100, percent))

        if percent == 0:
            self.consecutive_zeros += 1
            if self.consecutive_zeros >= 2 and self.high_water > 0:
                self.high_water = 0
                self.new_phase = True
            elif not self.new_phase and self.high_water > self.NOISE_ZERO_FLOOR:
                return None
        else:
            self.consecutive_zeros = 0
            self.new_phase = False

        if (
            not self.new_phase
            and self.high_water > self.DROP_FLOOR
            and percent < self.high_water - self.DROP_TOLERANCE
        ):
            percent = self.last_emitted if self.last_emitted is not None else self.high_water

        if percent > self.high_water:
            self.high_water = percent

        if (
            self.last_emitted is not None
            and abs(percent - self.last_emitted) < self.MIN_STEP
            and percent not in (0, 100)
        ):
            return None

        self.last_emitted = percent
        return percent

    def finish(self) -> Optional[int]:
        """Final reading once the engine reports the end; 100 unless already shown."""
        if self.last_emitted == 100:
            return None
        self.last_emitted = 100
        self.high_water = 100
        return 100


@dataclass
class RenderResult:
    output_path: str
    log_path: str
    duration: Optional[float] = None


class FFmpegRenderer:
    """Builds and runs the clip and merge filter graphs."""

    def __init__(
        self,
        processing_root: str,
        logs_root: str,
        ffmpeg_path: str = FFMPEG_PATH,
        ffprobe_path: str = FFPROBE_PATH,
        timeout: int = RENDER_TIMEOUT,
        on_progress: Optional[ProgressCallback] = log_progress,
    ):
        self.processing_root = processing_root
        self.logs_root = logs_root
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout = timeout
        self.on_progress = on_progress

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def probe_duration(self, path: str) -> float:
        """Duration of a media file in seconds, from ffprobe."""
        try:
            info = ffmpeg.probe(path, cmd=self.ffprobe_path)
        except ffmpeg.Error as e:
            error_details = e.stderr.decode("utf8", errors="replace") if e.stderr else "Unknown ffprobe error"
            raise RenderError(f"ffprobe failed for {path}", stderr=error_details) from e

        duration = info.get("format", {}).get("duration")
        if duration is None:
            raise RenderError(f"Duration not found in: {path}")
        return float(duration)

    # ------------------------------------------------------------------
    # Graph construction
    # ------------------------------------------------------------------

    def build_clip_stream(
        self,
        image_path: str,
        audio_path: str,
        output_path: str,
        duration: float,
        subtitles_path: Optional[str] = None,
    ):
        frames = max(1, int(round(duration * VIDEO_FPS)))
        zoom_step = (ZOOM_END - ZOOM_START) / frames

        image = ffmpeg.input(image_path)
        audio = ffmpeg.input(audio_path)

        video = (
            image.video
            .filter("scale", VIDEO_WIDTH, VIDEO_HEIGHT)
            .filter(
                "zoompan",
                z=f"min(zoom+{zoom_step:.8f},{ZOOM_END})",
                d=frames,
                s=f"{VIDEO_WIDTH}x{VIDEO_HEIGHT}",
                fps=VIDEO_FPS,
            )
        )
        if subtitles_path:
            # ffmpeg-python escapes the path and the style for the filter graph
            video = video.filter("subtitles", subtitles_path, force_style=SUBTITLE_STYLE)

        return ffmpeg.output(
            video,
            audio.audio,
            output_path,
            vcodec=VIDEO_CODEC,
            acodec=AUDIO_CODEC,
            shortest=None,
            pix_fmt=PIXEL_FORMAT,
            t=f"{duration:.3f}",
            r=VIDEO_FPS,
            preset=VIDEO_PRESET,
            crf=VIDEO_CRF,
            **{"profile:v": VIDEO_PROFILE},
        )

    def build_merge_stream(
        self,
        input_paths: List[str],
        output_path: str,
        transition_seconds: float,
        durations: Optional[List[float]] = None,
    ):
        if not input_paths:
            raise MergeError("No video files provided for merging")

        inputs = [ffmpeg.input(path) for path in input_paths]

        if len(inputs) == 1:
            return inputs[0].output(output_path, c="copy")

        if transition_seconds > 0:
            if not durations or len(durations) != len(inputs):
                raise MergeError("Clip durations are required for a cross-fade merge")
            video, audio = self._crossfade(inputs, durations, transition_seconds)
        else:
            videos = [inp.video.filter("setpts", "PTS-STARTPTS") for inp in inputs]
            audios = [inp.audio.filter("asetpts", "PTS-STARTPTS") for inp in inputs]
            video = ffmpeg.concat(*videos, v=1, a=0)
            audio = ffmpeg.concat(*audios, v=0, a=1)

        video = video.filter("format", PIXEL_FORMAT)

        return ffmpeg.output(
            video,
            audio,
            output_path,
            sn=None,
            vcodec=VIDEO_CODEC,
            acodec=AUDIO_CODEC,
            preset=VIDEO_PRESET,
            crf=VIDEO_CRF,
            **{"profile:v": VIDEO_PROFILE},
        )

    @staticmethod
    def effective_transition(durations: List[float], transition_seconds: float) -> float:
        """A fade can never be longer than half of the shortest clip."""
        return max(0.0, min(transition_seconds, min(durations) / 2))

    @classmethod
    def merged_duration(cls, durations: List[float], transition_seconds: float) -> float:
        if len(durations) < 2:
            return sum(durations)
        transition = cls.effective_transition(durations, transition_seconds)
        return sum(durations) - transition * (len(durations) - 1)

    def _crossfade(self, inputs, durations: List[float], transition_seconds: float):
        transition = self.effective_transition(durations, transition_seconds)

        # xfade needs matching frame rate and time base on both sides
        videos = [
            inp.video
            .filter("setpts", "PTS-STARTPTS")
            .filter("fps", VIDEO_FPS)
            .filter("settb", "AVTB")
            for inp in inputs
        ]
        audios = [inp.audio.filter("asetpts", "PTS-STARTPTS") for inp in inputs]

        video, audio = videos[0], audios[0]
        elapsed = durations[0]
        for index in range(1, len(inputs)):
            offset = max(0.0, elapsed - transition)
            video = ffmpeg.filter(
                [video, videos[index]],
                "xfade",
                transition="fade",
                duration=f"{transition:.3f}",
                offset=f"{offset:.3f}",
            )
            audio = ffmpeg.filter([audio, audios[index]], "acrossfade", d=f"{transition:.3f}")
            elapsed = elapsed + durations[index] - transition
        return video, audio

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    def render_clip(
        self,
        image_path: str,
        audio_path: str,
        output_path: str,
        duration: float,
        subtitles_path: Optional[str] = None,
    ) -> RenderResult:
        """Render image + audio into output_path, capped at duration seconds."""
        logging.info(f"🎬 Creating video with image {image_path} and audio {audio_path}")
        return self._run(
            lambda scratch_path: self.build_clip_stream(
                image_path, audio_path, scratch_path, duration, subtitles_path
            ),
            output_path,
            expected_duration=duration,
            log_prefix="ffmpeg",
        )

    def merge_clips(
        self,
        input_paths: List[str],
        output_path: str,
        transition_seconds: float = MERGE_TRANSITION_SECONDS,
    ) -> RenderResult:
        """
        Join clips in the given order. One clip is stream-copied, two or more
        are re-encoded with a cross-fade of transition_seconds (hard cut at 0).
        Raises MergeError on any failure, including zero inputs.
        """
        if not input_paths:
            raise MergeError("No video files provided for merging")

        logging.info(f"🎞️ Merging {len(input_paths)} videos with {transition_seconds}s transitions")

        crossfade = len(input_paths) > 1 and transition_seconds > 0
        durations = self._probe_all(input_paths, required=crossfade)
        expected = self.merged_duration(durations, transition_seconds) if durations else None

        try:
            return self._run(
                lambda scratch_path: self.build_merge_stream(
                    input_paths, scratch_path, transition_seconds, durations
                ),
                output_path,
                expected_duration=expected,
                log_prefix="ffmpeg-merge",
            )
        except MergeError:
            raise
        except RenderError as e:
            raise MergeError(str(e), stderr=e.stderr, log_path=e.log_path) from e

    def _probe_all(self, paths: List[str], required: bool) -> Optional[List[float]]:
        try:
            return [self.probe_duration(path) for path in paths]
        except RenderError as e:
            if required:
                raise MergeError(f"Could not read clip durations: {e}", stderr=e.stderr) from e
            logging.warning(f"⚠️ Could not read clip durations, progress will not be reported: {e}")
            return None

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _run(self, build, output_path: str, expected_duration: Optional[float], log_prefix: str) -> RenderResult:
        """
        Render into a private scratch directory, then copy to output_path.
        The scratch directory is always removed.
        """
        scratch_dir = os.path.join(self.processing_root, f"render-{uuid.uuid4().hex}")
        os.makedirs(scratch_dir, exist_ok=True)
        os.makedirs(self.logs_root, exist_ok=True)
        scratch_path = os.path.join(scratch_dir, os.path.basename(output_path))
        log_path = os.path.join(self.logs_root, f"{log_prefix}-{int(time.time() * 1000)}.log")

        try:
            stream = build(scratch_path)
            self._execute(stream, expected_duration, log_path)
            if os.path.abspath(scratch_path) != os.path.abspath(output_path):
                shutil.copyfile(scratch_path, output_path)
        finally:
            shutil.rmtree(scratch_dir, ignore_errors=True)

        logging.info(f"✅ Video written to {output_path}")
        return RenderResult(output_path=output_path, log_path=log_path, duration=expected_duration)

    def _execute(self, stream, expected_duration: Optional[float], log_path: str) -> None:
        args = (
            stream
            .global_args("-hide_banner", "-nostats", "-loglevel", "error", "-progress", "pipe:1")
            .overwrite_output()
            .compile(cmd=self.ffmpeg_path)
        )
        normalizer = ProgressNormalizer()
        output_tail = deque(maxlen=50)
        timed_out = threading.Event()

        with open(log_path, "a", encoding="utf-8") as log:
            log.write(f"{_timestamp()} Command: {' '.join(args)}\n")
            logging.info("FFmpeg process started")

            try:
                process = subprocess.Popen(
                    args,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.STDOUT,
                    text=True,
                    errors="replace",
                )
            except OSError as e:
                log.write(f"{_timestamp()} Error: {e}\n")
                raise RenderError(f"Failed to start ffmpeg: {e}", log_path=log_path) from e

            def _kill():
                timed_out.set()
                process.kill()

            watchdog = threading.Timer(self.timeout, _kill)
            watchdog.daemon = True
            watchdog.start()
            try:
                for line in process.stdout:
                    line = line.strip()
                    key, sep, value = line.partition("=")
                    if sep and key in PROGRESS_KEYS:
                        if key == "out_time_us" and expected_duration:
                            self._report(normalizer, value, expected_duration, log)
                        elif key == "progress" and value == "end":
                            self._emit(normalizer.finish(), log)
                        continue
                    if line:
                        output_tail.append(line)
                returncode = process.wait()
            finally:
                watchdog.cancel()
                if process.stdout:
                    process.stdout.close()

            stderr = "\n".join(output_tail)
            if timed_out.is_set():
                log.write(f"{_timestamp()} Error: timed out after {self.timeout} seconds\n")
                logging.error(f"❌ FFmpeg process timed out after {self.timeout} seconds")
                raise RenderError(f"ffmpeg timed out after {self.timeout} seconds", stderr=stderr, log_path=log_path)
            if returncode != 0:
                last_line = output_tail[-1] if output_tail else "Unknown FFmpeg error"
                log.write(f"{_timestamp()} Error: exit code {returncode}: {stderr}\n")
                logging.error(f"❌ FFmpeg process failed. Output:\n{stderr}")
                raise RenderError(f"ffmpeg exited with code {returncode}: {last_line}", stderr=stderr, log_path=log_path)

            log.write(f"{_timestamp()} Finished successfully\n")
            logging.info("✅ FFmpeg processing completed")

    def _report(self, normalizer: ProgressNormalizer, out_time_us: str, expected_duration: float, log) -> None:
        try:
            seconds = int(out_time_us) / 1_000_000
        except ValueError:
            return
        self._emit(normalizer.update(seconds / expected_duration * 100), log)

    def _emit(self, emitted: Optional[int], log) -> None:
        if emitted is None:
            return
        log.write(f"{_timestamp()} Progress: {emitted}%\n")
        if self.on_progress:
            try:
                self.on_progress(emitted)
            except Exception as e:
                logging.warning(f"Progress callback failed: {e}")
