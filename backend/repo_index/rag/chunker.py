"""Chunk parsed files for embedding.

Each structural code unit becomes one ``code_unit`` chunk.  Files with no
recognisable units (plain text, configuration, prose without headings) are
split into fixed-size, line-aligned ``file_chunk`` windows that repeat the
last few lines of the previous window for context.
"""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .models import (
    CHUNK_TYPE_CODE_UNIT,
    CHUNK_TYPE_FILE_CHUNK,
    Chunk,
    ChunkMetadata,
    CodeUnit,
    ParsedFile,
    make_chunk_id,
)

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_CHARS = 2000
DEFAULT_OVERLAP_LINES = 5

_PRAGMA_RE = re.compile(r"pragma\s+language_version\s*[><=]*\s*([\d.]+)")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def create_chunks(
    parsed: ParsedFile,
    repository: str,
    repo_version: str = "main",
    indexed_at: Optional[str] = None,
    window_chars: int = DEFAULT_WINDOW_CHARS,
    overlap_lines: int = DEFAULT_OVERLAP_LINES,
) -> List[Chunk]:
    """Turn a parsed file into chunks with deterministic ids.

    Args:
        parsed:        Output of ``parse_file``.
        repository:    ``owner/repo`` the file belongs to.
        repo_version:  Branch or tag the content was fetched from.
        indexed_at:    ISO-8601 timestamp shared by the whole indexing pass.
        window_chars:  Maximum characters per fallback window.
        overlap_lines: Lines repeated at the start of the next window.

    Returns:
        Chunks ordered by start line.  Empty for whitespace-only files.
    """
    if not parsed.content.strip():
        logger.info("[Chunker] Skipping whitespace-only file %s", parsed.path)
        return []

    indexed_at = indexed_at or utc_now_iso()
    pragma = extract_pragma_version(parsed.content) if parsed.language == "compact" else None

    def _meta(start: int, end: int, **extra) -> ChunkMetadata:
        return ChunkMetadata(
            repository=repository,
            file_path=parsed.path,
            language=parsed.language,
            start_line=start,
            end_line=end,
            repo_version=repo_version,
            pragma_version=pragma,
            indexed_at=indexed_at,
            **extra,
        )

    if parsed.code_units:
        chunks = []
        for group in _group_by_start_line(parsed.code_units):
            first = group[0]
            start = first.start_line
            end = max(u.end_line for u in group)
            text = "\n\n".join(u.code for u in group)
            chunks.append(Chunk(
                id=make_chunk_id(repository, parsed.path, start),
                text=text,
                metadata=_meta(
                    start,
                    end,
                    chunk_type=CHUNK_TYPE_CODE_UNIT,
                    code_unit_type=first.type,
                    code_unit_name=first.name,
                    is_public=any(u.is_public for u in group),
                ),
            ))
        return chunks

    chunks = []
    for start, end, text in split_windows(parsed.content, window_chars, overlap_lines):
        chunks.append(Chunk(
            id=make_chunk_id(repository, parsed.path, start),
            text=text,
            metadata=_meta(start, end, chunk_type=CHUNK_TYPE_FILE_CHUNK, is_public=True),
        ))
    logger.debug(
        "[Chunker] %s: no code units, %d fallback window(s)", parsed.path, len(chunks),
    )
    return chunks


def split_windows(content: str, window_chars: int, overlap_lines: int) -> List[tuple]:
    """Split *content* into ``(start_line, end_line, text)`` windows.

    A window is flushed before it would exceed *window_chars*; a single line
    longer than the limit forms a window of its own.  Up to *overlap_lines*
    trailing lines are carried into the next window, but never the whole
    previous window, so start lines strictly increase.
    """
    lines = content.split("\n")
    windows: List[tuple] = []

    current: List[str] = []
    current_start = 1
    size = 0

    for idx, line in enumerate(lines):
        line_no = idx + 1
        line_size = len(line) + 1

        if current and size + line_size > window_chars:
            _emit(windows, current_start, current)

            keep = current[-overlap_lines:] if overlap_lines > 0 else []
            if len(keep) >= len(current):
                keep = current[1:]
            # drop carried lines until the incoming line fits
            while keep and sum(len(k) + 1 for k in keep) + line_size > window_chars:
                keep = keep[1:]

            current = list(keep)
            current_start = line_no - len(current)
            size = sum(len(k) + 1 for k in current)

        current.append(line)
        size += line_size

    if current:
        _emit(windows, current_start, current)
    return windows


def extract_pragma_version(content: str) -> Optional[str]:
    """Return X.Y.Z from ``pragma language_version >= X.Y.Z;`` if present."""
    m = _PRAGMA_RE.search(content)
    return m.group(1) if m else None


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _emit(windows: List[tuple], start: int, lines: List[str]) -> None:
    text = "\n".join(lines)
    if text.strip():
        windows.append((start, start + len(lines) - 1, text))


def _group_by_start_line(units: List[CodeUnit]) -> List[List[CodeUnit]]:
    groups: Dict[int, List[CodeUnit]] = {}
    for unit in sorted(units, key=lambda u: u.start_line):
        groups.setdefault(unit.start_line, []).append(unit)
    return list(groups.values())
