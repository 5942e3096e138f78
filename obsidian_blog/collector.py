"""Walk the vault and pick out markdown notes and images."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from .config import FilesConfig
from .errors import FileError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    """A file found in the vault."""

    full_path: Path
    relative_path: str  # POSIX separators, relative to the vault root
    name: str


class FileFilter:
    """Exclusion and file-type rules shared by the collector and the watcher.

    Names starting with ``.`` or ``_`` are always excluded; ``patterns`` are
    regular expressions searched in the bare file or directory name.
    """

    def __init__(self, markdown_ext: str = ".md", image_exts: Iterable[str] = (),
                 patterns: Iterable[str] = ()):
        self.markdown_ext = markdown_ext.lower()
        self.image_exts = tuple(ext.lower() for ext in image_exts)
        self.patterns = [re.compile(p) for p in patterns]

    @classmethod
    def from_config(cls, files: FilesConfig) -> "FileFilter":
        return cls(files.markdown_ext, files.image_exts, files.exclude_patterns)

    def is_excluded(self, name: str) -> bool:
        if name.startswith((".", "_")):
            return True
        return any(p.search(name) for p in self.patterns)

    def is_markdown(self, name: str) -> bool:
        return name.lower().endswith(self.markdown_ext) and not self.is_excluded(name)

    def is_image(self, name: str) -> bool:
        return name.lower().endswith(self.image_exts) and not self.is_excluded(name)

    def is_excluded_path(self, relative_path: str) -> bool:
        """True if any component of a vault-relative path is excluded."""
        parts = [p for p in relative_path.replace("\\", "/").split("/") if p]
        return any(self.is_excluded(part) for part in parts)


def collect_files(root: Path, predicate: Callable[[str], bool], file_filter: FileFilter,
                  errors: Optional[List[FileError]] = None,
                  skip_dir: Optional[Path] = None) -> List[SourceFile]:
    """Recursively collect files under ``root`` whose name matches ``predicate``.

    Excluded directories are pruned, so nothing below them is visited. A
    directory that cannot be read is logged (and appended to ``errors``) and
    contributes no files; the rest of the walk continues.
    """
    root = Path(root)
    skip = skip_dir.resolve() if skip_dir is not None else None
    found: List[SourceFile] = []

    def _on_error(exc: OSError) -> None:
        path = exc.filename or str(root)
        logger.error("Failed to read directory %s: %s", path, exc.strerror or exc)
        if errors is not None:
            errors.append(FileError(str(path), "collect", str(exc)))

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        current_dir = Path(dirpath)
        kept = []
        for d in sorted(dirnames):
            if file_filter.is_excluded(d):
                continue
            if skip is not None and (current_dir / d).resolve() == skip:
                continue
            kept.append(d)
        dirnames[:] = kept

        for fname in sorted(filenames):
            if not predicate(fname):
                continue
            fpath = current_dir / fname
            rel = fpath.relative_to(root).as_posix()
            found.append(SourceFile(full_path=fpath, relative_path=rel, name=fname))

    return found
