"""Pattern-based structural parser for indexed source files.

Extracts named code units (declarations, functions, types, doc sections)
with 1-based line spans from three families of files:

* Compact contracts (``.compact``): ledger fields, circuits, witnesses,
  type aliases, structs and enums.
* TypeScript / JavaScript: functions, exported arrow functions, classes,
  interfaces, type aliases and enums.
* Markdown / MDX: heading-delimited sections.

Block-structured units are delimited by balanced-brace scanning from the
first ``{`` after the declaration keyword.  Braces inside strings and
comments are *not* special-cased: this is a deliberate approximation, not a
lexer.  Extraction never raises; a failure degrades to zero code units and
the chunker falls back to fixed-size windows.
"""
import logging
import re
from pathlib import PurePosixPath
from typing import Callable, Dict, List, Optional, Tuple

from repo_index.errors import ParseError

from .models import CodeUnit, FileFlags, Parameter, ParsedFile

logger = logging.getLogger(__name__)

LANG_COMPACT = "compact"
LANG_TYPESCRIPT = "typescript"
LANG_MARKDOWN = "markdown"
LANG_TEXT = "text"

_EXT_TO_LANG: Dict[str, str] = {
    ".compact": LANG_COMPACT,
    ".ts": LANG_TYPESCRIPT,
    ".tsx": LANG_TYPESCRIPT,
    ".mts": LANG_TYPESCRIPT,
    ".cts": LANG_TYPESCRIPT,
    ".js": LANG_TYPESCRIPT,
    ".jsx": LANG_TYPESCRIPT,
    ".md": LANG_MARKDOWN,
    ".mdx": LANG_MARKDOWN,
}


def detect_language(path: str) -> str:
    """Map a file path to one of the parser's language ids."""
    return _EXT_TO_LANG.get(PurePosixPath(path).suffix.lower(), LANG_TEXT)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_file(path: str, content: str) -> ParsedFile:
    """Parse *content* according to the extension of *path*.

    Never raises: extraction errors are logged and yield a ``ParsedFile``
    with no code units.
    """
    language = detect_language(path)
    parser = _PARSERS.get(language)

    if parser is None:
        logger.warning("[Parser] Unknown file extension for %s; no structural units", path)
        return _empty(path, language, content)

    try:
        return parser(path, content)
    except Exception as exc:
        err = ParseError(f"Failed to parse {path}: {exc}", path=path, language=language)
        logger.warning("[Parser] %s (details=%s)", err.message, err.details)
        return _empty(path, language, content)


def parse_compact_file(path: str, content: str) -> ParsedFile:
    """Extract ledger fields, circuits, witnesses and types from a contract."""
    units: List[CodeUnit] = []
    exports: List[str] = []
    flags = FileFlags(line_count=_line_count(content))

    imports = [m.group(1) for m in _COMPACT_INCLUDE.finditer(content)]

    # ledger { ... } blocks: one unit per field, or the block itself when
    # it declares nothing we can recognise.
    for m in _COMPACT_LEDGER_BLOCK.finditer(content):
        flags.has_ledger = True
        open_idx = m.end() - 1
        end = find_block_end(content, open_idx)
        body_start = open_idx + 1
        body = content[body_start:max(body_start, end - 1)]

        fields = list(_COMPACT_LEDGER_FIELD.finditer(body))
        for fm in fields:
            is_private = fm.group(1) is not None
            field_code = fm.group(0).strip()
            line = line_of(content, body_start + fm.start())
            units.append(CodeUnit(
                type="ledger",
                name=fm.group(2),
                code=field_code,
                start_line=line,
                end_line=line + field_code.count("\n"),
                is_public=not is_private,
                is_private=is_private,
                return_type=" ".join(fm.group(3).split()),
            ))
        if not fields:
            code, start_line, end_line = _span(content, m.start(), end)
            units.append(CodeUnit(
                type="ledger",
                name="ledger",
                code=code,
                start_line=start_line,
                end_line=end_line,
                is_public=True,
            ))

    # Top-level declarations: [export] [sealed] ledger name: Type;
    for m in _COMPACT_LEDGER_DECL.finditer(content):
        flags.has_ledger = True
        is_export = m.group(1) is not None
        name = m.group(3)
        if is_export:
            exports.append(name)
        code, start_line, end_line = _span(content, _decl_start(m), m.end())
        units.append(CodeUnit(
            type="ledger",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            is_private=False,
            return_type=" ".join(m.group(4).split()),
        ))

    for m in _COMPACT_CIRCUIT.finditer(content):
        flags.has_circuits = True
        is_export = m.group(1) is not None
        name = m.group(2)
        end = find_block_end(content, m.end() - 1)
        code, start_line, end_line = _span(content, _decl_start(m), end)
        if is_export:
            exports.append(name)
        units.append(CodeUnit(
            type="circuit",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            is_private=False,
            parameters=split_parameters(m.group(3), default_type="unknown"),
            return_type=_clean_type(m.group(4)) or "[]",
        ))

    for m in _COMPACT_WITNESS.finditer(content):
        flags.has_witnesses = True
        name = m.group(2)
        if m.group(5) == "{":
            end = find_block_end(content, m.end() - 1)
        else:
            end = m.end()
        code, start_line, end_line = _span(content, _decl_start(m), end)
        units.append(CodeUnit(
            type="witness",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=False,
            is_private=True,
            parameters=split_parameters(m.group(3), default_type="unknown"),
            return_type=_clean_type(m.group(4)) or "unknown",
        ))

    units.extend(_type_aliases(content, _COMPACT_TYPE_ALIAS, exports))
    units.extend(_braced_types(content, _COMPACT_STRUCT_OR_ENUM, exports))

    return ParsedFile(
        path=path,
        language=LANG_COMPACT,
        content=content,
        code_units=_ordered(units),
        imports=imports,
        exports=_dedupe(exports),
        metadata=flags,
    )


def parse_typescript_file(path: str, content: str) -> ParsedFile:
    """Extract functions, classes, interfaces and type aliases."""
    units: List[CodeUnit] = []
    exports: List[str] = []

    imports = [m.group(1) for m in _TS_IMPORT.finditer(content)]
    imports.extend(m.group(1) for m in _TS_SIDE_EFFECT_IMPORT.finditer(content))

    for m in _TS_FUNCTION.finditer(content):
        is_export = m.group(1) is not None
        is_async = m.group(2) is not None
        name = m.group(3)
        end = find_block_end(content, m.end() - 1)
        code, start_line, end_line = _span(content, _decl_start(m), end)
        if is_export:
            exports.append(name)
        units.append(CodeUnit(
            type="function",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            parameters=split_parameters(m.group(4), default_type="any"),
            return_type=_clean_type(m.group(5)) or ("Promise<void>" if is_async else "void"),
        ))

    for m in _TS_ARROW_FUNCTION.finditer(content):
        is_export = m.group(1) is not None
        is_async = m.group(3) is not None
        name = m.group(2)
        end = find_block_end(content, m.end() - 1)
        code, start_line, end_line = _span(content, _decl_start(m), end)
        if is_export:
            exports.append(name)
        units.append(CodeUnit(
            type="function",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            parameters=split_parameters(m.group(4), default_type="any"),
            return_type=_clean_type(m.group(5)) or ("Promise<void>" if is_async else "void"),
        ))

    for m in _TS_CLASS.finditer(content):
        is_export = m.group(1) is not None
        is_abstract = m.group(2) is not None
        name = m.group(3)
        end = find_block_end(content, m.end() - 1)
        code, start_line, end_line = _span(content, _decl_start(m), end)
        if is_export:
            exports.append(name)
        units.append(CodeUnit(
            type="class",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            documentation="abstract class" if is_abstract else None,
        ))

    for m in _TS_INTERFACE.finditer(content):
        is_export = m.group(1) is not None
        name = m.group(2)
        end = find_block_end(content, m.end() - 1)
        code, start_line, end_line = _span(content, _decl_start(m), end)
        if is_export:
            exports.append(name)
        units.append(CodeUnit(
            type="interface",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
        ))

    units.extend(_type_aliases(content, _TS_TYPE_ALIAS, exports))
    units.extend(_braced_types(content, _TS_ENUM, exports))

    for m in _TS_EXPORT_LIST.finditer(content):
        for item in m.group(1).split(","):
            # "a as b" exports the name b
            exported = item.strip().split(" as ")[-1].strip()
            if exported:
                exports.append(exported)

    return ParsedFile(
        path=path,
        language=LANG_TYPESCRIPT,
        content=content,
        code_units=_ordered(units),
        imports=_dedupe(imports),
        exports=_dedupe(exports),
        metadata=FileFlags(line_count=_line_count(content)),
    )


def parse_markdown_file(path: str, content: str) -> ParsedFile:
    """Split a document into heading-delimited sections.

    A section spans from its heading to the next heading of any level (or
    end of file).  Headings inside fenced code blocks are ignored.  Text
    before the first heading becomes an ``introduction`` section.
    """
    lines = content.split("\n")
    headings: List[Tuple[int, str]] = []  # (line index, title)
    fence: Optional[str] = None

    for idx, line in enumerate(lines):
        stripped = line.strip()
        fence_match = _MD_FENCE.match(stripped)
        if fence_match:
            marker = fence_match.group(1)[:3]
            if fence is None:
                fence = marker
            elif marker == fence:
                fence = None
            continue
        if fence is not None:
            continue
        hm = _MD_HEADING.match(line)
        if hm:
            headings.append((idx, hm.group(2).strip()))

    units: List[CodeUnit] = []

    first_heading = headings[0][0] if headings else len(lines)
    if headings and "\n".join(lines[:first_heading]).strip():
        unit = _section(lines, 0, first_heading, "introduction", None)
        if unit is not None:
            units.append(unit)

    for pos, (idx, title) in enumerate(headings):
        stop = headings[pos + 1][0] if pos + 1 < len(headings) else len(lines)
        unit = _section(lines, idx, stop, _slugify(title), title)
        if unit is not None:
            units.append(unit)

    return ParsedFile(
        path=path,
        language=LANG_MARKDOWN,
        content=content,
        code_units=units,
        metadata=FileFlags(line_count=len(lines)),
    )


# ---------------------------------------------------------------------------
# Brace matching and span helpers
# ---------------------------------------------------------------------------

def find_block_end(content: str, start: int) -> int:
    """Return the index just past the ``}`` balancing the first ``{`` at/after *start*.

    Single linear scan, no backtracking.  Unbalanced input runs to the end
    of *content*.
    """
    open_idx = content.find("{", start)
    if open_idx < 0:
        return len(content)

    depth = 0
    for i in range(open_idx, len(content)):
        ch = content[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
    return len(content)


def line_of(content: str, index: int) -> int:
    """1-based line number of character *index*."""
    return content.count("\n", 0, index) + 1


def split_parameters(params: str, default_type: str = "any") -> tuple:
    """Split ``a: Field, b: Map<Field, Bytes<32>>`` on top-level commas."""
    parts: List[str] = []
    depth = 0
    current: List[str] = []
    for ch in params:
        if ch in "<([{":
            depth += 1
        elif ch in ">)]}":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))

    result: List[Parameter] = []
    for part in parts:
        part = part.strip()
        if not part:
            continue
        name, sep, type_ = part.partition(":")
        name = name.strip().rstrip("?").strip()
        type_ = _DEFAULT_VALUE.sub("", type_).strip() if sep else ""
        result.append(Parameter(name=name, type=" ".join(type_.split()) or default_type))
    return tuple(result)


def _span(content: str, start: int, end: int) -> Tuple[str, int, int]:
    code = content[start:end]
    start_line = line_of(content, start)
    return code, start_line, start_line + code.count("\n")


def _decl_start(m: "re.Match") -> int:
    """Start of the declaration proper, skipping whitespace the pattern consumed."""
    text = m.group(0)
    return m.start() + (len(text) - len(text.lstrip()))


def _clean_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = " ".join(value.split())
    return cleaned or None


def _type_aliases(content: str, pattern: "re.Pattern", exports: List[str]) -> List[CodeUnit]:
    units: List[CodeUnit] = []
    for m in pattern.finditer(content):
        is_export = m.group(1) is not None
        name = m.group(2)
        if is_export:
            exports.append(name)
        code, start_line, end_line = _span(content, _decl_start(m), m.end())
        units.append(CodeUnit(
            type="type",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            return_type=" ".join(m.group(3).split()),
        ))
    return units


def _braced_types(content: str, pattern: "re.Pattern", exports: List[str]) -> List[CodeUnit]:
    """Structs and enums: ``type`` units spanning their brace block."""
    units: List[CodeUnit] = []
    for m in pattern.finditer(content):
        is_export = m.group(1) is not None
        name = m.group(3)
        end = find_block_end(content, m.end() - 1)
        code, start_line, end_line = _span(content, _decl_start(m), end)
        if is_export:
            exports.append(name)
        units.append(CodeUnit(
            type="type",
            name=name,
            code=code,
            start_line=start_line,
            end_line=end_line,
            is_public=is_export,
            documentation=m.group(2),
        ))
    return units


def _section(
    lines: List[str],
    start: int,
    stop: int,
    name: str,
    title: Optional[str],
) -> Optional[CodeUnit]:
    body = lines[start:stop]
    while body and not body[-1].strip():
        body.pop()
    if not body:
        return None
    return CodeUnit(
        type="function",
        name=name,
        code="\n".join(body).strip(),
        start_line=start + 1,
        end_line=start + len(body),
        is_public=True,
        documentation=title,
    )


def _slugify(title: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "-", title).lower()


def _ordered(units: List[CodeUnit]) -> List[CodeUnit]:
    # sorted() is stable, so units on the same line keep extraction order
    return sorted(units, key=lambda u: (u.start_line, u.end_line))


def _dedupe(items: List[str]) -> List[str]:
    return list(dict.fromkeys(items))


def _line_count(content: str) -> int:
    return len(content.split("\n"))


def _empty(path: str, language: str, content: str) -> ParsedFile:
    return ParsedFile(
        path=path,
        language=language,
        content=content,
        metadata=FileFlags(line_count=_line_count(content)),
    )


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

_DEFAULT_VALUE = re.compile(r"\s*=(?!>).*$", re.S)

_COMPACT_INCLUDE = re.compile(
    r"^\s*(?:include|import)\s+[\"']?([\w./-]+)[\"']?(?:\s+prefix\s+\w+)?\s*;",
    re.M,
)
_COMPACT_LEDGER_BLOCK = re.compile(r"\bledger\s*\{")
_COMPACT_LEDGER_FIELD = re.compile(r"(@private\s+)?(\w+)\s*:\s*([^;]+);")
_COMPACT_LEDGER_DECL = re.compile(
    r"^[ \t]*(export\s+)?(sealed\s+)?ledger\s+(\w+)\s*:\s*([^;]+);",
    re.M,
)
_COMPACT_CIRCUIT = re.compile(
    r"(?:^|(?<=\s))(export\s+)?(?:pure\s+)?circuit\s+(\w+)\s*(?:<[^>]*>)?\s*"
    r"\(([^)]*)\)\s*(?::\s*([^{;]+?))?\s*\{"
)
_COMPACT_WITNESS = re.compile(
    r"(?:^|(?<=\s))(export\s+)?witness\s+(\w+)\s*(?:<[^>]*>)?\s*"
    r"\(([^)]*)\)\s*(?::\s*([^{;]+?))?\s*([{;])"
)
_COMPACT_TYPE_ALIAS = re.compile(
    r"(?:^|(?<=\s))(export\s+)?type\s+(\w+)(?:<[^>]*>)?\s*=\s*([^;]+);"
)
_COMPACT_STRUCT_OR_ENUM = re.compile(
    r"(?:^|(?<=\s))(export\s+)?(struct|enum)\s+(\w+)(?:<[^>]*>)?\s*\{"
)

_TS_IMPORT = re.compile(
    r"^\s*import\s+(?:type\s+)?[^'\";]+?\s+from\s+[\"']([^\"']+)[\"']",
    re.M,
)
_TS_SIDE_EFFECT_IMPORT = re.compile(r"^\s*import\s+[\"']([^\"']+)[\"']", re.M)
_TS_FUNCTION = re.compile(
    r"(?:^|(?<=\s))(export\s+(?:default\s+)?)?(async\s+)?function\s*\*?\s*(\w+)\s*"
    r"(?:<[^>]*>)?\s*\(([^)]*)\)\s*(?::\s*([^{]+?))?\s*\{"
)
_TS_ARROW_FUNCTION = re.compile(
    r"^[ \t]*(export\s+)?const\s+(\w+)\s*(?::[^=]+)?=\s*(async\s+)?(?:<[^>]*>\s*)?"
    r"\(([^)]*)\)\s*(?::\s*([^=]+?))?\s*=>\s*\{",
    re.M,
)
_TS_CLASS = re.compile(
    r"(?:^|(?<=\s))(export\s+(?:default\s+)?)?(abstract\s+)?class\s+(\w+)(?:<[^>]*>)?"
    r"(?:\s+extends\s+[\w.]+(?:<[^>]*>)?)?(?:\s+implements\s+[^{]+)?\s*\{"
)
_TS_INTERFACE = re.compile(
    r"(?:^|(?<=\s))(export\s+)?interface\s+(\w+)(?:<[^>]*>)?(?:\s+extends\s+[^{]+)?\s*\{"
)
_TS_TYPE_ALIAS = re.compile(
    r"(?:^|(?<=\s))(export\s+)?type\s+(\w+)(?:<[^>]*>)?\s*=\s*([^;]+);"
)
_TS_ENUM = re.compile(r"(?:^|(?<=\s))(export\s+)?((?:const\s+)?enum)\s+(\w+)\s*\{")
_TS_EXPORT_LIST = re.compile(r"^\s*export\s*\{([^}]*)\}", re.M)

_MD_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_MD_FENCE = re.compile(r"^(`{3,}|~{3,})")

_PARSERS: Dict[str, Callable[[str, str], ParsedFile]] = {
    LANG_COMPACT: parse_compact_file,
    LANG_TYPESCRIPT: parse_typescript_file,
    LANG_MARKDOWN: parse_markdown_file,
}
