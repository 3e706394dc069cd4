"""
Utility functions for the application
"""
import shutil
import uuid
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Union

logger = logging.getLogger(__name__)


def ensure_directory(path: Union[str, Path]) -> Path:
    """Ensure a directory exists, create if not"""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_directory(path: Union[str, Path]) -> bool:
    """Remove a directory tree if it exists"""
    path = Path(path)
    if not path.exists():
        return False
    shutil.rmtree(path)
    return True


def generate_id(prefix: str = "") -> str:
    """Generate a short unique identifier"""
    token = uuid.uuid4().hex[:12]
    if prefix:
        return f"{prefix}_{token}"
    return token


def utc_now() -> str:
    """ISO timestamp in UTC"""
    return datetime.now(timezone.utc).isoformat()


def get_file_extension(filename: str) -> str:
    """Get file extension without dot"""
    return Path(filename).suffix.lstrip(".")


def is_valid_pdf(filename: str) -> bool:
    """Check if file is a valid PDF"""
    return get_file_extension(filename).lower() == "pdf"


def format_file_size(size_bytes: int) -> str:
    """Format file size in human readable format"""
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.2f} TB"
