"""Core data model for the indexing pipeline.

``SourceFile`` → ``ParsedFile`` (with ``CodeUnit`` s) → ``Chunk`` →
``IndexedDocument`` on the write path; ``SearchResult`` on the read path.
"""
from dataclasses import asdict, dataclass, field
from typing import Optional

CODE_UNIT_TYPES = (
    "ledger",
    "circuit",
    "witness",
    "function",
    "type",
    "class",
    "interface",
    "import",
    "export",
)

CHUNK_TYPE_CODE_UNIT = "code_unit"
CHUNK_TYPE_FILE_CHUNK = "file_chunk"


@dataclass
class SourceFile:
    """A file fetched from the code host.  Discarded after chunking."""

    path: str
    content: str
    hash: str = ""
    size: int = 0


@dataclass(frozen=True)
class Parameter:
    name: str
    type: str


@dataclass(frozen=True)
class CodeUnit:
    """A structurally identified declaration (1-based, inclusive line span)."""

    type: str
    name: str
    code: str
    start_line: int
    end_line: int
    is_public: bool = False
    is_private: bool = False
    parameters: Optional[tuple] = None
    return_type: Optional[str] = None
    documentation: Optional[str] = None


@dataclass
class FileFlags:
    has_ledger: bool = False
    has_circuits: bool = False
    has_witnesses: bool = False
    line_count: int = 0


@dataclass
class ParsedFile:
    path: str
    language: str
    content: str
    code_units: list[CodeUnit] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    exports: list[str] = field(default_factory=list)
    metadata: FileFlags = field(default_factory=FileFlags)


@dataclass
class ChunkMetadata:
    """Metadata stored alongside each chunk and used for filtering."""

    repository: str
    file_path: str
    language: str
    start_line: int
    end_line: int
    chunk_type: str = CHUNK_TYPE_CODE_UNIT
    code_unit_type: Optional[str] = None
    code_unit_name: Optional[str] = None
    is_public: bool = True
    repo_version: str = ""
    pragma_version: Optional[str] = None
    indexed_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "ChunkMetadata":
        return cls(**{k: v for k, v in d.items() if k in cls.__dataclass_fields__})


def make_chunk_id(repository: str, file_path: str, start_line: int) -> str:
    """Deterministic chunk id: ``{repository}:{filePath}:{startLine}``."""
    return f"{repository}:{file_path}:{start_line}"


@dataclass
class Chunk:
    id: str
    text: str
    metadata: ChunkMetadata


@dataclass
class IndexedDocument:
    """A chunk plus its embedding, as persisted in the vector store."""

    id: str
    content: str
    embedding: list[float]
    metadata: ChunkMetadata

    @classmethod
    def from_chunk(cls, chunk: Chunk, embedding: list[float]) -> "IndexedDocument":
        return cls(id=chunk.id, content=chunk.text, embedding=embedding, metadata=chunk.metadata)


@dataclass
class SearchResult:
    id: str
    content: str
    score: float
    metadata: ChunkMetadata
