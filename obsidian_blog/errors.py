"""Exception types and the per-file error record collected during a run."""

from __future__ import annotations

from dataclasses import dataclass


class BlogError(Exception):
    """Base class for all errors raised by obsidian_blog."""


class ConfigError(BlogError):
    """Configuration file is missing, malformed or has unknown keys."""


class StructuralError(BlogError):
    """A failure that makes the whole generation run impossible."""


@dataclass(frozen=True)
class FileError:
    """A recoverable failure tied to one path (or one artifact) and stage."""

    path: str
    stage: str
    message: str

    def __str__(self) -> str:
        return f"[{self.stage}] {self.path}: {self.message}"
