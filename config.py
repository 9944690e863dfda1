"""
Configuration file for the story video worker.
Contains all global constants, path layout and render settings.
"""

import os
import logging

from dotenv import load_dotenv

load_dotenv()


def _env_int(key: str, default: int) -> int:
    value = os.getenv(key)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() == "true"


# --- External services ---
DATABASE_URL = os.getenv("DATABASE_URL", "")
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", os.getenv("SUPABASE_ANON_KEY", ""))
STORAGE_BUCKET = os.getenv("STORAGE_BUCKET", "")

VIDEO_QUEUE_NAME = os.getenv("VIDEO_QUEUE_NAME", "video_queue")
SEGMENT_QUEUE_NAME = os.getenv("SEGMENT_QUEUE_NAME", "segment_queue")

# --- Server ---
HOST = os.getenv("HOST", "127.0.0.1")
PORT = _env_int("PORT", 3001)
ALLOWED_IPS = [ip.strip() for ip in os.getenv("ALLOWED_IPS", "127.0.0.1,::1").split(",") if ip.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Processing loop ---
WORKER_COUNT = _env_int("WORKER_COUNT", 6)
PROCESSING_INTERVAL = _env_int("PROCESSING_INTERVAL", 60)  # seconds
AUTO_START = _env_bool("AUTO_START", True)

CLEANUP_INTERVAL_HOURS = _env_int("CLEANUP_INTERVAL_HOURS", 1)
ORPHAN_MAX_AGE_HOURS = _env_int("ORPHAN_MAX_AGE_HOURS", 24)

# --- Paths ---
TEMP_DIR = os.getenv("TEMP_DIR", os.path.join(os.path.expanduser("~"), "story-generator-temp"))
PROCESSING_DIR_NAME = "processing"
DOWNLOADS_DIR_NAME = "downloads"
LOGS_DIR_NAME = "logs"
TRANSCRIPTIONS_DIR_NAME = "transcriptions"

# --- External engines ---
FFMPEG_PATH = os.getenv("FFMPEG_PATH", "ffmpeg")
FFPROBE_PATH = os.getenv("FFPROBE_PATH", "ffprobe")
WHISPER_COMMAND = os.getenv("WHISPER_COMMAND", "whisper")
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "base")
WHISPER_LANGUAGE = os.getenv("WHISPER_LANGUAGE", "en")
SUBTITLES_ENABLED = _env_bool("SUBTITLES_ENABLED", False)

RENDER_TIMEOUT = _env_int("RENDER_TIMEOUT", 1800)
TRANSCRIBE_TIMEOUT = _env_int("TRANSCRIBE_TIMEOUT", 900)
DOWNLOAD_TIMEOUT = _env_int("DOWNLOAD_TIMEOUT", 120)

# --- Render settings ---
VIDEO_WIDTH = 1920
VIDEO_HEIGHT = 1080
VIDEO_FPS = 30
VIDEO_CODEC = "libx264"
AUDIO_CODEC = "aac"
VIDEO_PRESET = "medium"
VIDEO_PROFILE = "main"
VIDEO_CRF = 23
PIXEL_FORMAT = "yuv420p"
ZOOM_START = 1.0
ZOOM_END = 1.1
MERGE_TRANSITION_SECONDS = 0.5

SUBTITLE_STYLE = (
    "Alignment=2,PlayResX=1920,PlayResY=1080,FontName=Arial,FontSize=75,"
    "MarginV=50,BorderStyle=3,Outline=2,Shadow=0,LineSpacing=0,"
    "MarginL=200,MarginR=200"
)

# --- Storage layout ---
FINALIZED_PREFIX = "finalized-videos/"
SEGMENT_VIDEOS_PREFIX = "videos/"


def validate_config() -> str:
    """
    Make sure the temp root exists. Falls back to ./temp when the configured
    location cannot be used. Returns the temp root that is in effect.
    """
    global TEMP_DIR
    try:
        base_dir = os.path.dirname(TEMP_DIR)
        if not os.path.isdir(base_dir):
            raise OSError(f"Base temporary directory {base_dir} does not exist")
        os.makedirs(TEMP_DIR, exist_ok=True)
    except OSError as e:
        logging.warning(f"⚠️ Could not access or create temp directory: {e}")
        TEMP_DIR = os.path.join(os.getcwd(), "temp")
        logging.warning(f"⚠️ Using {TEMP_DIR} for temporary files instead.")
        os.makedirs(TEMP_DIR, exist_ok=True)

    logging.info("Configuration validated successfully")
    return TEMP_DIR
