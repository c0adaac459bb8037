from farm_exports.files.validator import FileValidator, mime_type_for
from farm_exports.files.cleanup import FileCleanupService

__all__ = [
    "FileValidator",
    "mime_type_for",
    "FileCleanupService",
]
