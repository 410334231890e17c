"""Include/exclude glob matching for repository paths.

``**/`` matches zero or more leading directories (so ``**/*.md`` also
matches ``README.md`` at the root), ``**`` matches anything, ``*`` matches
within one path segment and ``?`` matches one non-separator character.
"""
import re
from functools import lru_cache
from typing import Iterable, List, Sequence


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> "re.Pattern":
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**/", i):
            out.append("(?:.*/)?")
            i += 3
        elif pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + "$")


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(glob_to_regex(p).match(path) for p in patterns)


def filter_paths(
    paths: Iterable[str],
    include: Sequence[str],
    exclude: Sequence[str] = (),
) -> List[str]:
    """Keep paths matching at least one include glob and no exclude glob."""
    return [
        p for p in paths
        if matches_any(p, include) and not matches_any(p, exclude)
    ]
