"""Write the generated bundle: post pages, images, manifest, RSS and sitemap.

Every stage catches its own failures, logs them and records a FileError, so
one broken artifact never stops the stages after it.
"""

from __future__ import annotations

import html
import json
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import Iterable, List, Optional
from xml.sax.saxutils import escape

from .collector import SourceFile
from .config import BlogConfig
from .errors import FileError
from .nav import FolderNode, render_sidebar_html
from .posts import Post, PostRepository, isoformat
from .render import build_wikilink_index, relative_href, render_post

logger = logging.getLogger(__name__)


def escape_xml(text: str) -> str:
    return escape(text or "", {'"': "&quot;", "'": "&#39;"})


def _default_file_mode() -> int:
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def write_text_atomic(path: Path, text: str) -> None:
    """Write via a temp file in the same directory, then rename into place.

    The file gets the usual umask-derived mode (0644 under the default umask)
    rather than the owner-only mode ``mkstemp`` creates, so a web server user
    can read the pages.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        os.chmod(tmp_name, _default_file_mode())
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError:
            pass
        raise


def purge_generated_html(output_root: Path, errors: List[FileError]) -> int:
    """Delete previously generated ``*.html`` below ``output_root``; keep everything else."""
    removed = 0

    def _on_error(exc: OSError) -> None:
        path = exc.filename or str(output_root)
        logger.error("Failed to read output directory %s: %s", path, exc.strerror or exc)
        errors.append(FileError(str(path), "purge", str(exc)))

    for dirpath, _dirnames, filenames in os.walk(output_root, onerror=_on_error):
        for fname in filenames:
            if not fname.lower().endswith(".html"):
                continue
            target = Path(dirpath) / fname
            try:
                target.unlink()
                removed += 1
            except OSError as exc:
                logger.warning("Failed to remove %s: %s", target, exc)
                errors.append(FileError(str(target), "purge", str(exc)))
    logger.info("Removed %d previously generated HTML files", removed)
    return removed


def copy_images(images: Iterable[SourceFile], output_root: Path, errors: List[FileError],
                large_image_bytes: Optional[int] = None) -> int:
    copied = 0
    for image in images:
        dst = output_root / image.relative_path
        try:
            size = image.full_path.stat().st_size
            if large_image_bytes and size > large_image_bytes:
                logger.warning("Large image: %s (%d KB)", image.relative_path, size // 1024)
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(image.full_path, dst)
            copied += 1
            logger.debug("Copied image %s", image.relative_path)
        except OSError as exc:
            logger.warning("Failed to copy image %s: %s", image.relative_path, exc)
            errors.append(FileError(image.relative_path, "images", str(exc)))
    return copied


def _page_link(current: Post):
    def link_for(post: Post) -> str:
        href = html.escape(relative_href(current.slug, f"{post.slug}.html"))
        return f'<a href="{href}" class="blog-link" data-slug="{html.escape(post.slug)}">{html.escape(post.title)}</a>'
    return link_for


def write_posts(repo: PostRepository, tree: FolderNode, config: BlogConfig,
                errors: List[FileError]) -> int:
    """Render every post to ``<output>/<slug>.html``."""
    output_root = Path(config.paths.output).resolve()
    wikilinks = build_wikilink_index(repo)
    written = 0
    for post in repo:
        out_path = (output_root / f"{post.slug}.html").resolve()
        try:
            if output_root not in out_path.parents:
                raise ValueError(f"page path {out_path} is outside {output_root}")
            nav_html = render_sidebar_html(tree, link_for=_page_link(post), active_slug=post.slug)
            page = render_post(post, config, nav_html, wikilinks)
            write_text_atomic(out_path, page)
            written += 1
            logger.debug("Wrote %s", out_path)
        except (OSError, ValueError) as exc:
            logger.error("Failed to write %s.html: %s", post.slug, exc)
            errors.append(FileError(post.source_path, "render", str(exc)))
    return written


def build_manifest(repo: PostRepository, tree: FolderNode,
                   now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    return {
        "blogList": render_sidebar_html(tree),
        "lastUpdated": isoformat(now),
        "totalPosts": len(repo),
        "posts": [post.summary() for post in repo.recent()],
    }


def write_manifest(repo: PostRepository, tree: FolderNode, config: BlogConfig,
                   errors: List[FileError]) -> bool:
    path = Path(config.paths.manifest)
    try:
        data = build_manifest(repo, tree)
        write_text_atomic(path, json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    except (OSError, TypeError, ValueError) as exc:
        logger.error("Failed to write manifest %s: %s", path, exc)
        errors.append(FileError(str(path), "manifest", str(exc)))
        return False
    logger.info("Wrote manifest %s (%d posts)", path, len(repo))
    return True


def build_rss(repo: PostRepository, config: BlogConfig, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    site_root = config.site.url.rstrip("/")
    items = []
    for post in repo.recent(config.feed.max_items):
        items.append(
            "    <item>\n"
            f"      <title>{escape_xml(post.title)}</title>\n"
            f"      <description>{escape_xml(post.description)}</description>\n"
            f"      <link>{escape_xml(post.url)}</link>\n"
            f'      <guid isPermaLink="true">{escape_xml(post.url)}</guid>\n'
            f"      <pubDate>{format_datetime(post.last_modified, usegmt=True)}</pubDate>\n"
            "    </item>\n"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<rss version="2.0" xmlns:atom="http://www.w3.org/2005/Atom">\n'
        "  <channel>\n"
        f"    <title>{escape_xml(config.feed_title)}</title>\n"
        f"    <description>{escape_xml(config.feed_description)}</description>\n"
        f"    <link>{escape_xml(site_root)}</link>\n"
        f'    <atom:link href="{escape_xml(site_root)}/{escape_xml(Path(config.paths.rss).name)}"'
        ' rel="self" type="application/rss+xml"/>\n'
        f"    <language>{escape_xml(config.site.language)}</language>\n"
        f"    <lastBuildDate>{format_datetime(now, usegmt=True)}</lastBuildDate>\n"
        "    <generator>obsidian-blog</generator>\n"
        f"{''.join(items)}"
        "  </channel>\n"
        "</rss>\n"
    )


def write_rss(repo: PostRepository, config: BlogConfig, errors: List[FileError]) -> bool:
    if not config.feed.enabled:
        logger.info("RSS feed disabled")
        return False
    path = Path(config.paths.rss)
    try:
        write_text_atomic(path, build_rss(repo, config))
    except OSError as exc:
        logger.error("Failed to write RSS feed %s: %s", path, exc)
        errors.append(FileError(str(path), "rss", str(exc)))
        return False
    logger.info("Wrote RSS feed %s", path)
    return True


def build_sitemap(repo: PostRepository, config: BlogConfig, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    entries = [
        "  <url>\n"
        f"    <loc>{escape_xml(config.site.url.rstrip('/'))}</loc>\n"
        f"    <lastmod>{now.date().isoformat()}</lastmod>\n"
        "    <changefreq>daily</changefreq>\n"
        "    <priority>1.0</priority>\n"
        "  </url>\n"
    ]
    for post in sorted(repo, key=lambda p: p.slug):
        entries.append(
            "  <url>\n"
            f"    <loc>{escape_xml(post.url)}</loc>\n"
            f"    <lastmod>{post.last_modified.astimezone(timezone.utc).date().isoformat()}</lastmod>\n"
            f"    <changefreq>{escape_xml(config.sitemap.changefreq)}</changefreq>\n"
            f"    <priority>{config.sitemap.priority:.1f}</priority>\n"
            "  </url>\n"
        )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{''.join(entries)}"
        "</urlset>\n"
    )


def write_sitemap(repo: PostRepository, config: BlogConfig, errors: List[FileError]) -> bool:
    if not config.sitemap.enabled:
        logger.info("Sitemap disabled")
        return False
    path = Path(config.paths.sitemap)
    try:
        write_text_atomic(path, build_sitemap(repo, config))
    except OSError as exc:
        logger.error("Failed to write sitemap %s: %s", path, exc)
        errors.append(FileError(str(path), "sitemap", str(exc)))
        return False
    logger.info("Wrote sitemap %s", path)
    return True
