import os
from pathlib import Path

import pytest

from obsidian_blog.config import BlogConfig


class Vault:
    """Builds a throwaway vault on disk."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def write(self, relative: str, text: str = "", mtime: float = None) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    def write_bytes(self, relative: str, data: bytes) -> Path:
        path = self.root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path


@pytest.fixture
def vault(tmp_path):
    return Vault(tmp_path / "go")


@pytest.fixture
def config(tmp_path):
    cfg = BlogConfig()
    cfg.site.url = "https://blog.example.org"
    cfg.site.title = "Test Blog"
    cfg.site.description = "Notes & things"
    return cfg.resolve_paths(tmp_path)
