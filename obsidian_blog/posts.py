"""Post entities and the per-run slug -> Post repository."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Dict, Iterable, Iterator, List, Optional
from urllib.parse import quote

from .collector import SourceFile
from .errors import FileError
from .slugs import encode_slug

logger = logging.getLogger(__name__)

TITLE_RE = re.compile(r"^#[ \t]+(.+)$", re.MULTILINE)
FRONT_MATTER_RE = re.compile(r"\A---\s*\n.*?\n---\s*(?:\n|\Z)", re.DOTALL)
HEADING_LINE_RE = re.compile(r"^\s{0,3}#{1,6}(\s.*)?$")


@dataclass(frozen=True)
class Post:
    slug: str
    title: str
    source_path: str
    description: str
    content: str
    last_modified: datetime
    created: datetime
    url: str

    def summary(self) -> dict:
        """Manifest entry: everything except the markdown body."""
        return {
            "title": self.title,
            "slug": self.slug,
            "path": self.source_path,
            "description": self.description,
            "lastModified": isoformat(self.last_modified),
            "created": isoformat(self.created),
            "url": self.url,
        }


def isoformat(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def post_url(site_url: str, prefix: str, slug: str) -> str:
    parts = [site_url.rstrip("/")]
    if prefix.strip("/"):
        parts.append(prefix.strip("/"))
    parts.append(quote(slug, safe="/") + ".html")
    return "/".join(parts)


def strip_front_matter(content: str) -> str:
    return FRONT_MATTER_RE.sub("", content, count=1)


def extract_title(content: str, relative_path: str, markdown_ext: str = ".md") -> str:
    """First level-1 heading, else the file stem with hyphens as spaces."""
    match = TITLE_RE.search(strip_front_matter(content))
    if match and match.group(1).strip():
        return match.group(1).strip()
    name = PurePosixPath(relative_path).name
    if markdown_ext and name.lower().endswith(markdown_ext.lower()):
        name = name[: -len(markdown_ext)]
    return name.replace("-", " ").strip() or name


def _plain_text(paragraph: str) -> str:
    text = re.sub(r"!\[\[[^\]]*\]\]", "", paragraph)           # obsidian image embeds
    text = re.sub(r"!\[[^\]]*\]\([^)]*\)", "", text)           # images
    text = re.sub(r"\[([^\]]*)\]\([^)]*\)", r"\1", text)       # links keep their text
    text = re.sub(r"\[\[(?:[^\]|]*\|)?([^\]]*)\]\]", r"\1", text)  # wikilinks keep alias/target
    text = re.sub(r"\*\*(.+?)\*\*", r"\1", text)
    text = re.sub(r"(?<!\w)__(.+?)__(?!\w)", r"\1", text)
    text = re.sub(r"\*(.+?)\*", r"\1", text)
    text = re.sub(r"(?<!\w)_(.+?)_(?!\w)", r"\1", text)
    text = re.sub(r"`([^`]*)`", r"\1", text)
    return re.sub(r"\s+", " ", text).strip()


def extract_description(content: str, max_length: int = 150) -> str:
    """Best-effort plain-text excerpt of the first real paragraph.

    This is a heuristic, not a markdown parser: heading lines are dropped,
    emphasis markers and images are stripped and links keep their text.
    """
    body = strip_front_matter(content).replace("\r\n", "\n")
    for block in re.split(r"\n\s*\n", body):
        lines = [line for line in block.splitlines() if not HEADING_LINE_RE.match(line)]
        text = _plain_text("\n".join(lines))
        if text:
            return text[:max_length].rstrip()
    return ""


class PostRepository:
    """Posts for one generation run, keyed by slug.

    Built from scratch on every run; the first file to claim a slug keeps it.
    """

    def __init__(self, site_url: str, url_prefix: str = "blog", markdown_ext: str = ".md",
                 description_length: int = 150):
        self.site_url = site_url
        self.url_prefix = url_prefix
        self.markdown_ext = markdown_ext
        self.description_length = description_length
        self.errors: List[FileError] = []
        self._posts: Dict[str, Post] = {}

    def __len__(self) -> int:
        return len(self._posts)

    def __contains__(self, slug: object) -> bool:
        return slug in self._posts

    def __iter__(self) -> Iterator[Post]:
        return iter(self._posts.values())

    def get(self, slug: str) -> Optional[Post]:
        return self._posts.get(slug)

    def slugs(self) -> List[str]:
        return list(self._posts)

    def clear(self) -> None:
        self._posts.clear()
        self.errors.clear()

    def add(self, post: Post) -> bool:
        if not post.slug:
            logger.warning("Skipping %s: path produces an empty slug", post.source_path)
            return False
        if post.slug in self._posts:
            logger.warning("Duplicate slug '%s' from %s, keeping %s", post.slug,
                           post.source_path, self._posts[post.slug].source_path)
            return False
        self._posts[post.slug] = post
        return True

    def load_post(self, source: SourceFile) -> Post:
        content = source.full_path.read_text(encoding="utf-8")
        stats = source.full_path.stat()
        slug = encode_slug(source.relative_path, self.markdown_ext)
        modified = datetime.fromtimestamp(stats.st_mtime, tz=timezone.utc)
        birth = getattr(stats, "st_birthtime", None)
        created = datetime.fromtimestamp(birth, tz=timezone.utc) if birth else modified
        return Post(
            slug=slug,
            title=extract_title(content, source.relative_path, self.markdown_ext),
            source_path=source.relative_path,
            description=extract_description(content, self.description_length),
            content=content,
            last_modified=modified,
            created=created,
            url=post_url(self.site_url, self.url_prefix, slug),
        )

    def build(self, files: Iterable[SourceFile]) -> "PostRepository":
        self.clear()
        for source in files:
            try:
                post = self.load_post(source)
            except (OSError, UnicodeDecodeError, ValueError) as exc:
                logger.error("Failed to process %s: %s", source.relative_path, exc)
                self.errors.append(FileError(source.relative_path, "posts", str(exc)))
                continue
            if self.add(post):
                logger.debug("Loaded %s -> %s", source.relative_path, post.slug)
        return self

    def recent(self, limit: Optional[int] = None) -> List[Post]:
        """Posts by descending modification time, ties broken by slug."""
        ordered = sorted(self._posts.values(), key=lambda p: p.slug)
        ordered.sort(key=lambda p: p.last_modified, reverse=True)
        return ordered if limit is None else ordered[:limit]
