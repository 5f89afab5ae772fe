"""Pydantic models for analysis requests, findings and knowledge graphs.

Field names are snake_case in Python and camelCase on the wire
(``docId``, ``sourceChunks``, ``totalTokens``). Dump with
``model_dump(by_alias=True)`` for JSON consumers.
"""

from enum import Enum
from typing import Any, Literal, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnalyzeMode(str, Enum):
    """The four fixed analysis strategies."""

    BASE = "base"
    RETRIEVAL = "retrieval"
    RLM = "rlm"
    RLM_GRAPH = "rlm-graph"


EntityType = Literal[
    "party",
    "date",
    "amount",
    "clause",
    "obligation",
    "right",
    "condition",
    "document",
    "section",
]

RelationType = Literal[
    "has_obligation",
    "has_right",
    "references",
    "depends_on",
    "effective_on",
    "expires_on",
    "involves_amount",
    "defined_in",
    "related_to",
]

ENTITY_TYPES: tuple[str, ...] = get_args(EntityType)
RELATION_TYPES: tuple[str, ...] = get_args(RelationType)


# ============================================================================
# Inputs
# ============================================================================


class DocumentInput(_WireModel):
    """A caller-supplied document. Empty ids are replaced positionally."""

    id: str = ""
    text: str = ""

    @field_validator("id", "text", mode="before")
    @classmethod
    def _none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


class AnalyzeOptions(_WireModel):
    """Tunable limits for one analysis run.

    Unknown keys are rejected rather than silently ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
        frozen=True,
    )

    chunk_size: int = Field(default=1800, gt=0)
    top_k: int = Field(default=8, gt=0)
    max_subcalls: int = Field(default=24, gt=0)
    base_max_chars: int = Field(default=12000, gt=0)
    concurrency: int = Field(default=6, gt=0)
    comprehensive_mode: bool = False

    def merged(self, overrides: "AnalyzeOptions | None") -> "AnalyzeOptions":
        """Apply only the fields the caller explicitly set in ``overrides``."""
        if overrides is None:
            return self
        update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
        return self.model_copy(update=update)


class AnalyzeRequest(_WireModel):
    """One analysis request: documents, a question and a strategy."""

    documents: list[DocumentInput] = Field(default_factory=list)
    question: str = ""
    mode: AnalyzeMode
    options: AnalyzeOptions | None = None


# ============================================================================
# Findings and extractions
# ============================================================================


class SubFinding(_WireModel):
    """Relevance verdict and summary produced for one chunk."""

    relevant: bool = False
    summary: str = ""
    citations: list[str] = Field(default_factory=list)
    chunk_id: str
    doc_id: str


class Entity(_WireModel):
    """An entity extracted from a single chunk."""

    type: EntityType
    name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class Relationship(_WireModel):
    """A relationship between two entity names extracted from a single chunk."""

    type: RelationType
    source_name: str
    target_name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class EntityExtraction(_WireModel):
    """Entities and relationships extracted from one chunk."""

    entities: list[Entity] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.entities and not self.relationships


class ChunkExtraction(_WireModel):
    """An extraction tagged with the chunk it came from."""

    chunk_id: str
    extraction: EntityExtraction


class GraphSubResult(_WireModel):
    """Combined finding + extraction for one chunk in graph mode."""

    finding: SubFinding
    extraction: EntityExtraction = Field(default_factory=EntityExtraction)


# ============================================================================
# Knowledge graph
# ============================================================================


class GraphNode(_WireModel):
    """A merged entity. ``id`` is synthetic and only meaningful within one graph."""

    id: str
    type: EntityType
    name: str
    properties: dict[str, Any] = Field(default_factory=dict)
    source_chunks: list[str] = Field(default_factory=list)
    confidence: float = 0.8


class GraphEdge(_WireModel):
    """A relationship between two merged nodes."""

    id: str
    type: RelationType
    source: str
    target: str
    properties: dict[str, Any] = Field(default_factory=dict)
    source_chunk: str
    confidence: float = 0.8


class GraphMetadata(_WireModel):
    document_count: int = 0
    chunk_count: int = 0
    extraction_model: str = ""


class KnowledgeGraph(_WireModel):
    """Deduplicated entity/relationship graph built once per analysis run."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    nodes: list[GraphNode] = Field(default_factory=list)
    edges: list[GraphEdge] = Field(default_factory=list)
    metadata: GraphMetadata = Field(default_factory=GraphMetadata)


# ============================================================================
# Responses
# ============================================================================


class AnalyzeUsage(_WireModel):
    total_tokens: int = 0


class AnalyzeDebug(_WireModel):
    """Per-mode debug metrics. Unset metrics are omitted from the wire form."""

    mode: AnalyzeMode
    chunks_total: int | None = None
    chunks_used: int | None = None
    subcalls: int | None = None
    truncated: bool | None = None
    graph_nodes: int | None = None
    graph_edges: int | None = None


class AnalyzeResponse(_WireModel):
    """Final answer of one analysis run."""

    answer: str
    mode: AnalyzeMode
    usage: AnalyzeUsage | None = None
    debug: AnalyzeDebug
    graph: KnowledgeGraph | None = None

    def to_wire(self) -> dict[str, Any]:
        """JSON-ready dict with camelCase keys and unset metrics dropped."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
