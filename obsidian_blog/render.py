"""Markdown conversion, Obsidian wikilinks and the post page template."""

from __future__ import annotations

import html
import posixpath
import re
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import quote

import markdown

from .config import BlogConfig
from .posts import TITLE_RE, Post, strip_front_matter

WIKILINK_RE = re.compile(r"(!?)\[\[([^\]|#]*)(?:#([^\]|]*))?(?:\|([^\]]+))?\]\]")


def convert_markdown_to_html(md_text: str) -> Tuple[str, str]:
    """Convert markdown and also return a generated ToC HTML.

    Returns (content_html, toc_html)
    """
    md = markdown.Markdown(extensions=["extra", "fenced_code", "tables", "toc"])
    content_html = md.convert(md_text)
    toc_html = getattr(md, "toc", "")
    return content_html, toc_html


def build_wikilink_index(posts: Iterable[Post]) -> Dict[str, Post]:
    """Case-insensitive lookup for wikilink targets.

    Keys include: file stem, full slug, last slug segment and title.
    """
    index: Dict[str, Post] = {}
    for post in posts:
        stem = posixpath.splitext(posixpath.basename(post.source_path))[0]
        source_no_ext = posixpath.splitext(post.source_path)[0]
        for key in (stem, source_no_ext, post.slug, post.slug.rsplit("/", 1)[-1], post.title):
            if key:
                index.setdefault(key.lower(), post)
    return index


def relative_href(from_slug: str, to_path: str) -> str:
    """Relative URL from the page of ``from_slug`` to an output-relative path."""
    start = posixpath.dirname(from_slug) or "."
    return quote(posixpath.relpath(to_path, start=start), safe="/#")


def replace_wikilinks(md_text: str, current: Post, index: Dict[str, Post]) -> str:
    """Rewrite ``[[Target|Alias]]`` links and ``![[image.png]]`` embeds as markdown.

    Images are assumed to sit next to the note, as Obsidian stores them by
    default. Unresolved links collapse to their label.
    """
    note_dir = posixpath.dirname(current.source_path)

    def _repl(match: re.Match) -> str:
        embed, target, heading, alias = match.groups()
        target = (target or "").strip()
        label = (alias or target or heading or "").strip()
        if embed:
            src = posixpath.normpath(posixpath.join(note_dir, target)) if target else ""
            return f"![{label}]({relative_href(current.slug, src)})" if src else ""
        if not target:
            return label
        post = index.get(target.lower()) or index.get(posixpath.splitext(target)[0].lower())
        if post is None:
            return label
        href = relative_href(current.slug, f"{post.slug}.html")
        if heading:
            href += "#" + quote(heading.strip().lower().replace(" ", "-"))
        return f"[{label}]({href})"

    return WIKILINK_RE.sub(_repl, md_text)


def render_page_html(page_title: str, content_html: str, description: str, config: BlogConfig,
                     nav_html: str = "", toc_html: Optional[str] = None) -> str:
    """Render full HTML page with a left sidebar and an optional right ToC."""
    site = config.site
    esc_title = html.escape(page_title)
    meta_description = html.escape(description or f"{page_title} - {site.title}")
    title_text = html.escape(f"{page_title} - {site.title}" if site.title else page_title)
    stylesheet = (f'\n    <link rel="stylesheet" href="{html.escape(config.paths.stylesheet)}">'
                  if config.paths.stylesheet else "")
    author = (f'\n    <meta name="author" content="{html.escape(site.author)}">'
              if site.author else "")
    site_root = site.url.rstrip("/")
    rss_href = html.escape(f"{site_root}/{config.paths.rss.name}")
    home_href = html.escape(site_root + "/")
    toc = (f'\n      <aside class="rightbar"><h2>On this page</h2><div class="toc">{toc_html}</div></aside>'
           if toc_html else "")
    year = datetime.now(timezone.utc).year
    return f"""<!doctype html>
<html lang="{html.escape(site.language)}">
  <head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1">
    <title>{title_text}</title>
    <meta name="description" content="{meta_description}">{author}
    <meta property="og:title" content="{esc_title}">
    <meta property="og:description" content="{meta_description}">
    <meta property="og:type" content="article">
    <meta property="og:site_name" content="{html.escape(site.title)}">
    <meta name="twitter:card" content="summary">
    <meta name="twitter:title" content="{esc_title}">
    <meta name="twitter:description" content="{meta_description}">
    <link rel="alternate" type="application/rss+xml" title="{html.escape(config.feed_title)}" href="{rss_href}">{stylesheet}
    <style>
      .layout-container {{ display: grid; grid-template-columns: 260px 1fr 220px; column-gap: 2rem; }}
      .sidebar {{ position: sticky; top: 0; height: 100vh; overflow: auto; padding: 1.25rem; }}
      .sidebar ul {{ list-style: none; padding-left: 1rem; }}
      .sidebar .sidebar-file.active > a {{ font-weight: 600; }}
      .content {{ max-width: 800px; padding: 2rem; line-height: 1.6; }}
      .content img {{ max-width: 100%; height: auto; }}
      .content pre {{ background: #f5f5f5; padding: 1em; border-radius: 5px; overflow-x: auto; }}
      .rightbar {{ position: sticky; top: 2rem; align-self: start; }}
    </style>
  </head>
  <body>
    <div class="layout-container">
      <aside class="sidebar">
        <a href="{home_href}">Home</a>
        <ul class="sidebar-tree">
{nav_html}        </ul>
      </aside>
      <main class="content">
        <h1>{esc_title}</h1>
        <article>
{content_html}
        </article>
        <footer><p>&copy; {year} {html.escape(site.title)}</p></footer>
      </main>{toc}
    </div>
  </body>
</html>
"""


def render_post(post: Post, config: BlogConfig, nav_html: str,
                wikilinks: Dict[str, Post]) -> str:
    body = strip_front_matter(post.content)
    # the template prints the title itself
    heading = TITLE_RE.search(body)
    if heading and heading.group(1).strip() == post.title:
        body = body[:heading.start()] + body[heading.end():]
    md_text = replace_wikilinks(body, post, wikilinks)
    content_html, toc_html = convert_markdown_to_html(md_text)
    # only show the right ToC if there are at least 2 entries
    has_toc = toc_html.count("<a ") >= 2
    return render_page_html(
        page_title=post.title,
        content_html=content_html,
        description=post.description,
        config=config,
        nav_html=nav_html,
        toc_html=toc_html if has_toc else None,
    )
