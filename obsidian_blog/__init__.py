"""Turn an Obsidian vault into a static blog with a JSON manifest, RSS and sitemap."""

from .config import BlogConfig, load_config
from .generator import BlogGenerator, GenerationResult
from .slugs import encode_slug

__all__ = ["BlogConfig", "BlogGenerator", "GenerationResult", "encode_slug", "load_config"]

__version__ = "0.1.0"
