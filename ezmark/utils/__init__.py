# Utils package
from .helpers import (
    ensure_directory,
    remove_directory,
    generate_id,
    utc_now,
    get_file_extension,
    is_valid_pdf,
    format_file_size,
)

__all__ = [
    "ensure_directory",
    "remove_directory",
    "generate_id",
    "utc_now",
    "get_file_extension",
    "is_valid_pdf",
    "format_file_size",
]
