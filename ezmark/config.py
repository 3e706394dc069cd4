"""
Configuration settings for the grading pipeline backend
"""
from pydantic_settings import BaseSettings
from pathlib import Path
from typing import List


class Settings(BaseSettings):
    """Application settings using pydantic-settings"""
    
    # Server settings
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    DEBUG: bool = True
    
    # CORS settings
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]
    
    # Project paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    DATA_DIR: Path = PROJECT_ROOT / "data"
    LOGS_DIR: Path = PROJECT_ROOT / "logs"
    EXPORTS_DIR: Path = PROJECT_ROOT / "exports"
    ASSETS_DIR: Path = DATA_DIR / "pipeline"
    UPLOADS_DIR: Path = DATA_DIR / "uploads"
    SCHEDULES_DIR: Path = DATA_DIR / "schedules"
    REFERENCES_DIR: Path = DATA_DIR / "references"
    
    # Rasterization and cropping
    RASTER_DPI: int = 216  # 3x the 72dpi PDF user space
    PAGE_WIDTH_MM: float = 210.0
    PAGE_HEIGHT_MM: float = 297.0
    CROP_PADDING_PX: int = 10
    
    # Stage execution
    STAGE_TIMEOUT_SECONDS: float = 1800.0
    RECOGNITION_CONCURRENCY: int = 8
    SUBJECTIVE_PREFETCH: bool = False
    SAVE_RETRIES: int = 3
    
    # Upload limits
    MAX_PDF_SIZE: int = 200 * 1024 * 1024  # 200MB
    
    class Config:
        env_file = ".env"
        extra = "allow"


settings = Settings()

# Ensure directories exist
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
settings.LOGS_DIR.mkdir(parents=True, exist_ok=True)
settings.EXPORTS_DIR.mkdir(parents=True, exist_ok=True)
settings.ASSETS_DIR.mkdir(parents=True, exist_ok=True)
settings.UPLOADS_DIR.mkdir(parents=True, exist_ok=True)
settings.SCHEDULES_DIR.mkdir(parents=True, exist_ok=True)
settings.REFERENCES_DIR.mkdir(parents=True, exist_ok=True)
