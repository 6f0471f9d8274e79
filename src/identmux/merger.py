"""Managed block handling for files identmux shares with their owner.

Generated content lives between two literal marker lines at the top of
the target file. Everything outside the markers belongs to the user and
is carried over untouched on every rewrite.
"""

from __future__ import annotations

import os
import stat
import tempfile
from pathlib import Path

MANAGED_START = "# >>> identmux managed start >>>"
MANAGED_END = "# <<< identmux managed end <<<"


def _marker_of(line: str) -> str:
    return line.rstrip("\r\n")


def find_managed_block(content: str) -> tuple[int, int] | None:
    """Locate the managed block in file content.

    Args:
        content: Full file content

    Returns:
        (start, end) character offsets spanning both marker lines, or None
        when the file has no complete block
    """
    offset = 0
    start: int | None = None
    for line in content.splitlines(keepends=True):
        marker = _marker_of(line)
        if marker == MANAGED_START and start is None:
            start = offset
        elif marker == MANAGED_END and start is not None:
            return start, offset + len(marker)
        offset += len(line)
    return None


def strip_managed_block(content: str) -> str:
    """Return the content outside the managed block, line endings intact."""
    preserved: list[str] = []
    inside = False
    for line in content.splitlines(keepends=True):
        marker = _marker_of(line)
        if marker == MANAGED_START:
            inside = True
            continue
        if marker == MANAGED_END:
            inside = False
            continue
        if not inside:
            preserved.append(line)
    return "".join(preserved)


def _trim_leading_blank_lines(content: str) -> str:
    lines = content.splitlines(keepends=True)
    while lines and not lines[0].strip():
        lines.pop(0)
    return "".join(lines)


def merge_block_text(existing: str | None, block: str) -> str:
    """Compute new file content with ``block`` as the managed block.

    The block is always placed first; SSH applies the first matching
    ``Host`` stanza, so generated entries must precede user entries.
    """
    preserved = ""
    if existing:
        preserved = _trim_leading_blank_lines(strip_managed_block(existing))

    if not block.endswith("\n"):
        block += "\n"

    merged = f"{MANAGED_START}\n{block}{MANAGED_END}\n"
    if preserved:
        merged += f"\n{preserved}"
    return merged


def read_user_text(path: Path) -> str:
    """Read a file identmux shares with its owner, undecodable bytes kept.

    Bytes that are not UTF-8 survive as surrogates and are written back
    unchanged by :func:`atomic_write_text`.
    """
    with Path(path).open(encoding="utf-8", errors="surrogateescape", newline="") as f:
        return f.read()


def atomic_write_text(path: Path, content: str, mode: int | None = None) -> None:
    """Write text through a temp file and rename it over ``path``.

    Args:
        path: Target file path
        content: Text to write
        mode: Permission bits for the result (defaults to the existing
            file's mode, or the umask default for new files)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if mode is None and path.exists():
        mode = stat.S_IMODE(path.stat().st_mode)

    fd, tmp_path = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        if mode is None:
            umask = os.umask(0)
            os.umask(umask)
            mode = 0o666 & ~umask
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def merge_managed_block(path: Path, block: str, mode: int | None = None) -> str:
    """Rewrite ``path`` so its managed block holds ``block``.

    Args:
        path: File to update (created with its parent directory if absent)
        block: Generated content for the managed block
        mode: Optional permission bits for the written file

    Returns:
        The content written
    """
    path = Path(path)
    existing = read_user_text(path) if path.exists() else None
    merged = merge_block_text(existing, block)
    atomic_write_text(path, merged, mode=mode)
    return merged
