"""Run the whole vault -> blog pipeline once."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from .collector import FileFilter, collect_files
from .config import BlogConfig
from .errors import FileError, StructuralError
from .nav import build_folder_tree
from .output import (copy_images, purge_generated_html, write_manifest, write_posts,
                     write_rss, write_sitemap)
from .posts import PostRepository

logger = logging.getLogger(__name__)


@dataclass
class GenerationResult:
    success: bool
    post_count: int = 0
    errors: List[FileError] = field(default_factory=list)
    duration: float = 0.0


class BlogGenerator:
    """Regenerates the full output bundle from the vault on every call.

    Only one ``generate()`` runs at a time; concurrent callers wait.
    """

    def __init__(self, config: BlogConfig):
        self.config = config
        self.file_filter = FileFilter.from_config(config.files)
        self._lock = threading.Lock()

    @property
    def source_dir(self) -> Path:
        return Path(self.config.paths.source)

    @property
    def output_dir(self) -> Path:
        return Path(self.config.paths.output)

    def new_repository(self) -> PostRepository:
        return PostRepository(
            site_url=self.config.site.url,
            url_prefix=self.config.paths.posts_url_prefix,
            markdown_ext=self.config.files.markdown_ext,
            description_length=self.config.build.description_length,
        )

    def prepare_output_directory(self) -> None:
        if not self.source_dir.is_dir():
            raise StructuralError(f"Source directory not found: {self.source_dir}")
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StructuralError(f"Cannot create output directory {self.output_dir}: {exc}") from exc

    def _skip_dir(self) -> Optional[Path]:
        # output nested inside the vault must not be collected as source
        try:
            self.output_dir.resolve().relative_to(self.source_dir.resolve())
        except ValueError:
            return None
        return self.output_dir

    def generate(self) -> GenerationResult:
        with self._lock:
            return self._generate()

    def _generate(self) -> GenerationResult:
        started = time.monotonic()
        errors: List[FileError] = []
        repo = self.new_repository()
        logger.info("Generating blog from %s", self.source_dir)

        try:
            self.prepare_output_directory()
            purge_generated_html(self.output_dir, errors)

            images = collect_files(self.source_dir, self.file_filter.is_image, self.file_filter,
                                   errors, skip_dir=self._skip_dir())
            logger.info("Found %d image files", len(images))
            copy_images(images, self.output_dir, errors, self.config.files.large_image_bytes)

            markdown_files = collect_files(self.source_dir, self.file_filter.is_markdown,
                                           self.file_filter, errors, skip_dir=self._skip_dir())
            logger.info("Found %d markdown files", len(markdown_files))
            repo.build(markdown_files)
            errors.extend(repo.errors)
            tree = build_folder_tree(repo)

            if self.config.build.write_html:
                written = write_posts(repo, tree, self.config, errors)
                logger.info("Wrote %d post pages", written)

            write_manifest(repo, tree, self.config, errors)
            write_rss(repo, self.config, errors)
            write_sitemap(repo, self.config, errors)
        except StructuralError as exc:
            logger.error("Generation failed: %s", exc)
            return GenerationResult(False, len(repo), errors, time.monotonic() - started)
        except Exception:
            logger.exception("Generation failed with an unexpected error")
            return GenerationResult(False, len(repo), errors, time.monotonic() - started)

        duration = time.monotonic() - started
        if errors:
            logger.warning("Generated %d posts with %d errors in %.2fs", len(repo), len(errors), duration)
        else:
            logger.info("Generated %d posts in %.2fs", len(repo), duration)
        return GenerationResult(True, len(repo), errors, duration)
