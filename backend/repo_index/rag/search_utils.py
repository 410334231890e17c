"""Helpers for ``key:value`` filter tokens in search query strings.

Queries may carry GitHub-search style tokens (``repo:owner/name``,
``language:compact``, ``type:circuit``) next to free text.  These helpers
detect, add, extract and strip such tokens.  Matching is case-insensitive.
"""
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ParsedQuery:
    terms: str
    filters: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class QueryCheck:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _token_pattern(filter_type: str) -> "re.Pattern":
    return re.compile(rf"(?:^|\W){re.escape(filter_type)}:(\S+)", re.I)


def has_filter(query: str, filter_type: str) -> bool:
    return _token_pattern(filter_type).search(query) is not None


def has_specific_filter(query: str, filter_type: str, filter_value: str) -> bool:
    pattern = re.compile(
        rf"(?:^|\W){re.escape(filter_type)}:{re.escape(filter_value)}(?:$|\W)", re.I,
    )
    return pattern.search(query) is not None


def add_filter(query: str, filter_type: str, filter_value: str) -> str:
    """Prefix ``type:value`` unless a filter of that type is already present."""
    if has_filter(query, filter_type):
        return query
    return f"{filter_type}:{filter_value} {query}".strip()


def add_repo_filter(query: str, owner: Optional[str], repo: Optional[str]) -> str:
    if not owner or not repo:
        return query
    return add_filter(query, "repo", f"{owner}/{repo}")


def extract_filter(query: str, filter_type: str) -> Optional[str]:
    m = _token_pattern(filter_type).search(query)
    return m.group(1) if m else None


def extract_all_filters(query: str, filter_type: str) -> List[str]:
    return _token_pattern(filter_type).findall(query)


def remove_filter(query: str, filter_type: str) -> str:
    pattern = re.compile(rf"\s*\b{re.escape(filter_type)}:\S+\s*", re.I)
    return normalize_query(pattern.sub(" ", query))


def parse_query(query: str, keys: Optional[List[str]] = None) -> ParsedQuery:
    """Split *query* into free-text terms and ``key:value`` filters.

    With *keys*, only those filter names are recognised; other ``a:b``
    tokens stay in the terms.
    """
    filters: Dict[str, List[str]] = {}
    wanted = {k.lower() for k in keys} if keys else None

    def _take(m: "re.Match") -> str:
        key, value = m.group(1), m.group(2)
        if wanted is not None and key.lower() not in wanted:
            return m.group(0)
        filters.setdefault(key.lower() if wanted is not None else key, []).append(value)
        return " "

    terms = re.sub(r"\b(\w+):(\S+)", _take, query)
    return ParsedQuery(terms=normalize_query(terms), filters=filters)


def build_search_query(
    terms: str,
    owner: Optional[str] = None,
    repo: Optional[str] = None,
    language: Optional[str] = None,
    code_type: Optional[str] = None,
    additional_filters: Optional[Dict[str, str]] = None,
) -> str:
    """Compose a query string, skipping any filter type already present."""
    query = add_repo_filter(terms, owner, repo)
    if language:
        query = add_filter(query, "language", language)
    if code_type:
        query = add_filter(query, "type", code_type)
    for key, value in (additional_filters or {}).items():
        query = add_filter(query, key, value)
    return query.strip()


def check_query(query: str) -> QueryCheck:
    """Report problems with a raw query string without raising."""
    errors: List[str] = []
    warnings: List[str] = []

    if not query or not query.strip():
        errors.append("Query cannot be empty")
    if query.count('"') % 2:
        errors.append("Unbalanced quotes in query")
    if len(query) > 1000:
        warnings.append("Query is very long and may be truncated")
    if "  " in query:
        warnings.append("Query contains multiple consecutive spaces")

    return QueryCheck(valid=not errors, errors=errors, warnings=warnings)


def normalize_query(query: str) -> str:
    return re.sub(r"\s+", " ", query).strip()
