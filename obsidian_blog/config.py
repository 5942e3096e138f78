"""Configuration for the blog generator.

Defaults mirror a single-vault setup: markdown notes under ``go/`` and
generated pages under ``blog/``, with the manifest, feed and sitemap written
next to them. A YAML file can override any value:

    site:
      url: https://example.org
      title: Notes
    paths:
      source: vault
      output: public/blog
    feed:
      max_items: 10
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigError

DEFAULT_EXCLUDE_PATTERNS = [
    r"^\._",         # macOS metadata
    r"\.tmp$",
    r"\.temp$",
    r"node_modules",
    r"\.obsidian",
    r"\.trash",
]

DEFAULT_IMAGE_EXTS = [".png", ".jpg", ".jpeg", ".gif", ".svg", ".webp"]


@dataclass
class SiteConfig:
    url: str = "https://example.com"
    title: str = "Blog"
    description: str = "Notes published from an Obsidian vault"
    author: str = ""
    language: str = "en"


@dataclass
class PathsConfig:
    source: Path = Path("go")
    output: Path = Path("blog")
    manifest: Path = Path("blog-list.json")
    rss: Path = Path("rss.xml")
    sitemap: Path = Path("sitemap.xml")
    # public URL segment the output directory is served under
    posts_url_prefix: str = "blog"
    stylesheet: str = ""


@dataclass
class FilesConfig:
    markdown_ext: str = ".md"
    image_exts: List[str] = field(default_factory=lambda: list(DEFAULT_IMAGE_EXTS))
    exclude_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))
    large_image_bytes: int = 1024 * 1024


@dataclass
class BuildConfig:
    description_length: int = 150
    write_html: bool = True


@dataclass
class FeedConfig:
    enabled: bool = True
    max_items: int = 20
    title: str = ""
    description: str = ""


@dataclass
class SitemapConfig:
    enabled: bool = True
    changefreq: str = "weekly"
    priority: float = 0.8


@dataclass
class WatchConfig:
    debounce_ms: int = 500
    # set to null in the config file to log to the console only
    log_file: Optional[Path] = Path("obsidian-blog.log")


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class BlogConfig:
    site: SiteConfig = field(default_factory=SiteConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    sitemap: SitemapConfig = field(default_factory=SitemapConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    def resolve_paths(self, base_dir: Path) -> "BlogConfig":
        """Make every filesystem path absolute relative to ``base_dir``."""
        for name in ("source", "output", "manifest", "rss", "sitemap"):
            value = Path(getattr(self.paths, name)).expanduser()
            if not value.is_absolute():
                value = base_dir / value
            setattr(self.paths, name, value.resolve())
        if self.watch.log_file is not None:
            log_file = Path(self.watch.log_file).expanduser()
            if not log_file.is_absolute():
                log_file = base_dir / log_file
            self.watch.log_file = log_file.resolve()
        return self

    @property
    def feed_title(self) -> str:
        return self.feed.title or self.site.title

    @property
    def feed_description(self) -> str:
        return self.feed.description or self.site.description


_PATH_FIELDS = {("paths", "source"), ("paths", "output"), ("paths", "manifest"),
                ("paths", "rss"), ("paths", "sitemap"), ("watch", "log_file")}


def _apply_section(section_name: str, target: Any, values: Dict[str, Any]) -> None:
    known = {f.name for f in dataclasses.fields(target)}
    for key, value in values.items():
        if key not in known:
            raise ConfigError(f"Unknown config key: {section_name}.{key}")
        if (section_name, key) in _PATH_FIELDS and value is not None:
            value = Path(str(value))
        setattr(target, key, value)


def config_from_dict(data: Dict[str, Any]) -> BlogConfig:
    """Build a BlogConfig from a parsed mapping (e.g. loaded YAML)."""
    config = BlogConfig()
    sections = {f.name for f in dataclasses.fields(config)}
    for section_name, values in (data or {}).items():
        if section_name not in sections:
            raise ConfigError(f"Unknown config section: {section_name}")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Config section '{section_name}' must be a mapping")
        _apply_section(section_name, getattr(config, section_name), values)

    if config.feed.max_items < 0:
        raise ConfigError("feed.max_items must not be negative")
    if config.build.description_length <= 0:
        raise ConfigError("build.description_length must be positive")
    if config.watch.debounce_ms < 0:
        raise ConfigError("watch.debounce_ms must not be negative")
    return config


def load_config(path: Optional[Path] = None) -> BlogConfig:
    """Load configuration from a YAML file, or defaults when ``path`` is None.

    Relative paths are resolved against the config file's directory (or the
    current working directory when no file is given).
    """
    if path is None:
        return BlogConfig().resolve_paths(Path.cwd())

    path = Path(path).expanduser()
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    return config_from_dict(data).resolve_paths(path.resolve().parent)
