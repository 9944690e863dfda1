"""
Speech-to-text through the whisper command line tool.
"""

import os
import logging
import subprocess
from typing import Optional

from config import TRANSCRIBE_TIMEOUT, WHISPER_COMMAND, WHISPER_LANGUAGE, WHISPER_MODEL
from exceptions import TranscriptionError, TranscriptionUnavailableError


class WhisperTranscriber:
    """Runs whisper on an audio file and returns the SRT subtitle track it writes."""

    def __init__(
        self,
        output_dir: str,
        command: str = WHISPER_COMMAND,
        model: str = WHISPER_MODEL,
        language: str = WHISPER_LANGUAGE,
        timeout: int = TRANSCRIBE_TIMEOUT,
    ):
        self.output_dir = output_dir
        self.command = command
        self.model = model
        self.language = language
        self.timeout = timeout

    def output_path_for(self, audio_path: str, output_dir: str) -> str:
        # whisper names the file after the input, up to the first dot
        base_name = os.path.basename(audio_path).split(".")[0]
        return os.path.join(output_dir, f"{base_name}.srt")

    def build_command(self, audio_path: str, output_dir: str) -> list:
        return [
            self.command,
            audio_path,
            "--model", self.model,
            "--language", self.language,
            "--word_timestamps", "True",
            "--output_format", "srt",
            "--output_dir", output_dir,
        ]

    def transcribe(self, audio_path: str, output_dir: Optional[str] = None) -> str:
        """
        Returns the SRT text. output_dir defaults to the shared transcription
        directory; callers running concurrently should pass their own.
        """
        output_dir = output_dir or self.output_dir
        os.makedirs(output_dir, exist_ok=True)
        output_path = self.output_path_for(audio_path, output_dir)
        command = self.build_command(audio_path, output_dir)
        logging.info(f"🎙️ Running transcription: {' '.join(command)}")

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise TranscriptionUnavailableError(f"Failed to start whisper: {e}") from e
        except subprocess.TimeoutExpired as e:
            stderr = e.stderr if isinstance(e.stderr, str) else ""
            raise TranscriptionError(f"Whisper timed out after {self.timeout} seconds", stderr=stderr) from e

        if result.returncode != 0 or not os.path.exists(output_path):
            logging.error(f"❌ Whisper failed with code {result.returncode}. Stderr:\n{result.stderr}")
            raise TranscriptionError(
                f"Whisper transcription failed with code {result.returncode}",
                stderr=result.stderr or "",
            )

        try:
            with open(output_path, "r", encoding="utf-8") as f:
                transcription = f.read().strip()
        except OSError as e:
            raise TranscriptionError(f"Failed to read transcription: {e}") from e
        finally:
            try:
                os.remove(output_path)
            except OSError as e:
                logging.warning(f"Could not delete transcription file: {e}")

        logging.info(f"✅ Transcribed {audio_path}")
        return transcription
