"""Application configuration."""

from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # App settings
    app_name: str = "Label Verification API"
    
    # CORS - Allow all origins for prototype (restrict in production)
    cors_origins: list[str] = ["*"]
    
    # Upload limits
    max_upload_size_mb: int = 10
    min_image_dimension: int = 50
    allowed_extensions: set[str] = {"png", "jpg", "jpeg", "webp", "bmp", "gif", "tif", "tiff"}
    
    # OCR settings
    ocr_backend: str = "tesseract"  # "tesseract" or "easyocr"
    tesseract_cmd: str | None = None
    tesseract_lang: str = "eng"
    easyocr_lang: str = "en"
    easyocr_model_dir: str | None = None
    
    # What the OCR wrapper reads: the grid of preprocessed variants
    # ("composite") or the decoded upload itself ("original")
    ocr_source: str = "composite"
    
    # Pause between field verifications so long batches don't hog the loop
    verification_yield_seconds: float = 0.05
    
    # Verification log (appended JSON array)
    log_file: Path = Path("logs/verification-log.json")
    log_level: str = "INFO"
    
    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        env_prefix = "LABEL_VERIFIER_"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
