# app/config.py
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List

MIN_PAGE_COUNT = 3
MAX_PAGE_COUNT = 10

def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip().lower() in {"1", "true", "yes", "on"}

def _env_csv(name: str, default: str = "*") -> List[str]:
    raw = os.getenv(name, default)
    return [x.strip() for x in raw.split(",") if x.strip()]

@dataclass(frozen=True)
class Config:
    # OpenAI
    openai_api_key: str
    openai_text_model: str
    openai_image_model: str
    image_size: str  # valid: 1024x1024, 1024x1536, 1536x1024, auto
    text_temperature: float
    # API / CORS
    allowed_origins: List[str]
    # Output handling (PDF exports)
    keep_outputs: bool
    base_output_dir: Path
    # Concurrency
    max_workers: int               # one in-flight image call per page
    image_timeout_seconds: float   # 0 disables the per-image timeout
    text_timeout_seconds: float
    openai_max_retries: int        # one attempt per call unless raised
    # Illustration fallback
    fallback_image_base_url: str
    # Logging
    log_level: str

def load_config() -> Config:
    return Config(
        openai_api_key = os.getenv("OPENAI_API_KEY", ""),
        openai_text_model = os.getenv("OPENAI_TEXT_MODEL", "gpt-4o-mini"),
        openai_image_model = os.getenv("OPENAI_IMAGE_MODEL", "gpt-image-1"),
        image_size = os.getenv("IMAGE_SIZE", "1536x1024"),
        text_temperature = float(os.getenv("TEXT_TEMPERATURE", "0.8")),
        allowed_origins = _env_csv("ALLOWED_ORIGINS", "*"),
        keep_outputs = _env_bool("KEEP_OUTPUTS", False),
        base_output_dir = (Path(__file__).resolve().parent / "output"),
        max_workers = int(os.getenv("MAX_WORKERS", str(MAX_PAGE_COUNT))),
        image_timeout_seconds = float(os.getenv("IMAGE_TIMEOUT_SECONDS", "120")),
        text_timeout_seconds = float(os.getenv("TEXT_TIMEOUT_SECONDS", "120")),
        openai_max_retries = int(os.getenv("OPENAI_MAX_RETRIES", "0")),
        fallback_image_base_url = os.getenv("FALLBACK_IMAGE_BASE_URL", "https://picsum.photos/800/600"),
        log_level = os.getenv("LOG_LEVEL", "INFO"),
    )

# Load once and ensure output directory exists
config = load_config()
config.base_output_dir.mkdir(parents=True, exist_ok=True)

def make_job_dir(prefix: str = "book_") -> Path:
    """
    Create a unique working directory under base_output_dir for a single export.
    Returns the Path to that directory.
    """
    path_str = tempfile.mkdtemp(prefix=prefix, dir=str(config.base_output_dir))
    return Path(path_str)
