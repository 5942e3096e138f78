"""Folder tree derived from slugs, and the sidebar markup rendered from it."""

from __future__ import annotations

import html
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .posts import Post


class FolderNode:
    """A folder in the navigation tree with subfolders and posts."""

    def __init__(self, name: str, path: str = ""):
        self.name = name
        self.path = path  # slug prefix of this folder, "" for the root
        self.folders: Dict[str, "FolderNode"] = {}
        self.files: Dict[str, Post] = {}

    def __repr__(self) -> str:
        return f"FolderNode({self.path!r}, folders={len(self.folders)}, files={len(self.files)})"

    def sorted_folders(self) -> List["FolderNode"]:
        return [self.folders[name] for name in sorted(self.folders, key=sort_key)]

    def sorted_files(self) -> List[Tuple[str, Post]]:
        return [(name, self.files[name]) for name in sorted(self.files, key=sort_key)]

    def contains(self, slug: str) -> bool:
        return not self.path or slug.startswith(self.path + "/")


def sort_key(name: str) -> Tuple[str, str]:
    # case-insensitive first, raw name breaks ties so the order is total
    return (name.casefold(), name)


def build_folder_tree(posts: Iterable[Post]) -> FolderNode:
    """Rebuild the folder hierarchy implied by the posts' slugs."""
    root = FolderNode(name="")
    for post in posts:
        parts = post.slug.split("/")
        node = root
        for part in parts[:-1]:
            child_path = f"{node.path}/{part}" if node.path else part
            node = node.folders.setdefault(part, FolderNode(part, child_path))
        node.files[parts[-1]] = post
    return root


def iter_tree(node: FolderNode, depth: int = 0) -> Iterator[Tuple[int, Union[FolderNode, Post]]]:
    """Depth-first walk in render order: folders first, then posts, each by name."""
    for folder in node.sorted_folders():
        yield depth, folder
        yield from iter_tree(folder, depth + 1)
    for _, post in node.sorted_files():
        yield depth, post


def manifest_link(post: Post) -> str:
    """Sidebar entry for the client-side loader: the slug travels in data-slug."""
    return (f'<a href="#" class="blog-link" data-slug="{html.escape(post.slug)}">'
            f'{html.escape(post.title)}</a>')


def render_sidebar_html(tree: FolderNode, link_for: Callable[[Post], str] = manifest_link,
                        active_slug: Optional[str] = None) -> str:
    """Render nested sidebar list items.

    Folders the active post lives in are rendered open and the active
    entry is marked.
    """

    def render_dir(node: FolderNode, indent: str) -> str:
        out: List[str] = []
        for folder in node.sorted_folders():
            is_open = active_slug is not None and folder.contains(active_slug)
            open_cls = " open" if is_open else ""
            out.append(f'{indent}<li class="sidebar-folder{open_cls}">'
                       f'<span>{html.escape(folder.name)}</span><ul>\n')
            out.append(render_dir(folder, indent + "  "))
            out.append(f"{indent}</ul></li>\n")
        for _, post in node.sorted_files():
            active_cls = " active" if post.slug == active_slug else ""
            out.append(f'{indent}<li class="sidebar-file{active_cls}">{link_for(post)}</li>\n')
        return "".join(out)

    return render_dir(tree, "")
