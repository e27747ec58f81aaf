"""
Crawl a local directory and return its files as an ordered list of FileRecord.

Used by FetchRepo. Exclusion is checked per entry in this order: the root .gitignore,
then the explicit exclude globs. An excluded directory is pruned without descending
into it. Surviving files must match an include glob (unless none, or "*", is
configured) and fit under max_file_size. Directory entries are visited in sorted
name order so file indices are stable across runs.
"""

import fnmatch
import logging
import os
from pathlib import PurePath
from typing import Iterable

import pathspec

from errors import DirectoryNotFoundError
from shared_schema import FileRecord

logger = logging.getLogger("agentic_wiki.crawl")

IGNORE_FILENAME = ".gitignore"


def crawl_local_files(
    directory: str,
    include_patterns: Iterable[str] | None = None,
    exclude_patterns: Iterable[str] | None = None,
    max_file_size: int | None = None,
) -> list[FileRecord]:
    """
    Walk a directory and read file contents.

    Args:
        directory: Root directory to crawl.
        include_patterns: Globs matched against the relative path (e.g. {"*.py", "*.md"}).
            Empty, None, or containing "*" includes every non-excluded file.
        exclude_patterns: Globs matched against the relative path (e.g. {"tests/*"}).
        max_file_size: Skip files larger than this many bytes. None disables the cap.

    Returns:
        List of FileRecord with POSIX-style paths relative to directory.

    Raises:
        DirectoryNotFoundError: directory is missing or not a directory.
    """
    root = os.path.abspath(directory)
    if not os.path.isdir(root):
        raise DirectoryNotFoundError(f"Directory does not exist: {directory}")

    include = list(include_patterns or [])
    exclude = list(exclude_patterns or [])
    include_all = not include or "*" in include
    ignore_spec = _load_ignore_spec(root)

    files: list[FileRecord] = []
    stack = [root]
    # Depth-first; children pushed in reverse so they pop in sorted order.
    while stack:
        current = stack.pop()
        try:
            with os.scandir(current) as it:
                entries = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning("Unable to list directory %s: %s", current, e)
            continue
        subdirs: list[str] = []
        for entry in entries:
            rel = PurePath(os.path.relpath(entry.path, root)).as_posix()
            is_dir = entry.is_dir(follow_symlinks=False)
            if _is_excluded(rel, is_dir, ignore_spec, exclude):
                continue
            if is_dir:
                subdirs.append(entry.path)
                continue
            if not entry.is_file():
                continue
            if not include_all and not any(fnmatch.fnmatch(rel, p) for p in include):
                continue
            try:
                size = entry.stat().st_size
            except OSError as e:
                logger.warning("Unable to stat file %s: %s", entry.path, e)
                continue
            if max_file_size and size > max_file_size:
                logger.debug("Skipping %s (%s bytes > %s)", rel, size, max_file_size)
                continue
            try:
                with open(entry.path, "r", encoding="utf-8", errors="strict") as f:
                    content = f.read()
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Unable to read file %s: %s", entry.path, e)
                continue
            files.append(FileRecord(path=rel, content=content))
        stack.extend(reversed(subdirs))

    logger.info("Crawled %s: %s files", directory, len(files))
    return files


def _load_ignore_spec(root: str) -> pathspec.PathSpec | None:
    path = os.path.join(root, IGNORE_FILENAME)
    if not os.path.isfile(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            spec = pathspec.GitIgnoreSpec.from_lines(f.read().splitlines())
    except (OSError, UnicodeDecodeError, ValueError) as e:
        logger.warning("Unable to read or parse %s: %s", path, e)
        return None
    logger.info("Loaded ignore patterns from %s", path)
    return spec


def _is_excluded(
    rel_path: str,
    is_dir: bool,
    ignore_spec: pathspec.PathSpec | None,
    exclude: list[str],
) -> bool:
    """Return True if rel_path is ignored by the ignore file or matches an exclude glob."""
    # Directories are also tested with a trailing slash so "build/" and "dist/*" prune them.
    candidates = [rel_path, rel_path + "/"] if is_dir else [rel_path]
    if ignore_spec is not None and any(ignore_spec.match_file(c) for c in candidates):
        return True
    return any(fnmatch.fnmatch(c, p) for c in candidates for p in exclude)
