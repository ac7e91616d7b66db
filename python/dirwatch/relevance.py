"""
Relevance Filter - Decides which files participate in the index.

The application predicate is always composed with the exclusion of the
index's own storage directory.
"""

from pathlib import Path
from typing import Callable, Optional

from .errors import ConfigurationError


RelevancePredicate = Callable[[Path], bool]

_SEPARATORS = (".", "/", "\\")


def validate_extension(extension: str) -> str:
    """Return the extension unchanged, or raise ConfigurationError."""
    if not isinstance(extension, str) or not extension:
        raise ConfigurationError("extension must be a non-empty string")
    if extension.startswith(_SEPARATORS):
        raise ConfigurationError(
            f"extension must not start with a separator: {extension!r}"
        )
    return extension


def extension_filter(extension: str) -> RelevancePredicate:
    """Default predicate: the file name ends with "." + extension."""
    suffix = "." + validate_extension(extension)

    def is_relevant(path: Path) -> bool:
        return path.name.endswith(suffix)

    return is_relevant


class RelevanceFilter:
    """Application predicate plus the built-in index directory exclusion."""

    def __init__(
        self,
        extension: str,
        index_dir_name: str,
        predicate: Optional[RelevancePredicate] = None,
    ):
        self.extension = validate_extension(extension)
        self.index_dir_name = index_dir_name
        self.predicate = predicate or extension_filter(extension)

    def __call__(self, path: Path) -> bool:
        if path.name == self.index_dir_name:
            return False
        return bool(self.predicate(path))
