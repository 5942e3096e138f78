import os
import sys

import pytest

from obsidian_blog.collector import FileFilter, collect_files
from obsidian_blog.config import FilesConfig


@pytest.fixture
def file_filter():
    return FileFilter.from_config(FilesConfig())


def test_filter_rules(file_filter):
    assert file_filter.is_markdown("note.md")
    assert file_filter.is_markdown("NOTE.MD")
    assert not file_filter.is_markdown(".hidden.md")
    assert not file_filter.is_markdown("_draft.md")
    assert not file_filter.is_markdown("note.md.tmp")
    assert file_filter.is_image("pic.PNG")
    assert file_filter.is_image("diagram.svg")
    assert not file_filter.is_image("note.md")
    assert not file_filter.is_image("._pic.png")
    assert file_filter.is_excluded("node_modules")
    assert file_filter.is_excluded(".obsidian")
    assert not file_filter.is_excluded("Notes")


def test_excluded_path_checks_every_component(file_filter):
    assert file_filter.is_excluded_path("Notes/.trash/old.md")
    assert file_filter.is_excluded_path("_private/a.md")
    assert not file_filter.is_excluded_path("Notes/Sub/a.md")


def test_collect_prunes_excluded_directories(vault, file_filter):
    vault.write("a.md", "# A")
    vault.write("Notes/b.md", "# B")
    vault.write("Notes/pic.png", "")
    vault.write(".obsidian/workspace.md", "")
    vault.write("_templates/t.md", "")
    vault.write("node_modules/pkg/readme.md", "")
    vault.write("Notes/.hidden.md", "")

    found = collect_files(vault.root, file_filter.is_markdown, file_filter)

    assert [f.relative_path for f in found] == ["a.md", "Notes/b.md"]
    assert found[1].name == "b.md"
    assert found[1].full_path == vault.root / "Notes" / "b.md"


def test_collect_images(vault, file_filter):
    vault.write("Notes/b.md", "")
    vault.write_bytes("Notes/img/pic.png", b"\x89PNG")
    vault.write_bytes("cover.webp", b"RIFF")

    found = collect_files(vault.root, file_filter.is_image, file_filter)

    assert sorted(f.relative_path for f in found) == ["Notes/img/pic.png", "cover.webp"]


def test_collect_skips_output_directory(vault, file_filter):
    vault.write("a.md", "")
    vault.write("public/a.md", "")

    found = collect_files(vault.root, file_filter.is_markdown, file_filter,
                          skip_dir=vault.root / "public")

    assert [f.relative_path for f in found] == ["a.md"]


@pytest.mark.skipif(sys.platform == "win32" or os.geteuid() == 0,
                    reason="needs POSIX permissions and a non-root user")
def test_unreadable_directory_is_isolated(vault, file_filter):
    vault.write("ok/a.md", "")
    locked = vault.root / "locked"
    vault.write("locked/b.md", "")
    locked.chmod(0)
    errors = []
    try:
        found = collect_files(vault.root, file_filter.is_markdown, file_filter, errors)
    finally:
        locked.chmod(0o755)

    assert [f.relative_path for f in found] == ["ok/a.md"]
    assert len(errors) == 1
    assert errors[0].stage == "collect"
