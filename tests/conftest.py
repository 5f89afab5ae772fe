"""Shared test fixtures for rlm-analyzer."""

import tempfile
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from rlm_analyzer.analysis.models import ChunkExtraction, DocumentInput, Entity, EntityExtraction, Relationship
from rlm_analyzer.analysis.prompts import GRAPH_SUB_PROMPT, REWRITE_PROMPT, SUB_PROMPT
from rlm_analyzer.ingest.chunker import Chunk
from rlm_analyzer.llm.client import OracleResponse

Reply = str | OracleResponse | Exception


@dataclass
class OracleCall:
    deployment: str
    system: str
    user: str
    temperature: float


@dataclass
class FakeOracle:
    """Scripted oracle that records every call.

    ``responder(call)`` returns the reply text, a full OracleResponse, or an
    exception to raise. Plain strings are reported with ``tokens`` usage.
    """

    responder: Callable[[OracleCall], Reply] = lambda call: "ok"
    tokens: int | None = 10
    calls: list[OracleCall] = field(default_factory=list)

    async def complete(self, deployment, messages, temperature=0.2, max_tokens=None):
        call = OracleCall(
            deployment=deployment,
            system=messages[0]["content"],
            user=messages[-1]["content"],
            temperature=temperature,
        )
        self.calls.append(call)
        reply = self.responder(call)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, OracleResponse):
            return reply
        return OracleResponse(content=reply, total_tokens=self.tokens)

    def calls_with(self, system_prompt: str) -> list[OracleCall]:
        return [c for c in self.calls if c.system == system_prompt]

    @property
    def sub_calls(self) -> list[OracleCall]:
        return [c for c in self.calls if c.system in (SUB_PROMPT, GRAPH_SUB_PROMPT)]

    @property
    def rewrite_calls(self) -> list[OracleCall]:
        return self.calls_with(REWRITE_PROMPT)


def make_chunk(chunk_id: str = "doc-1-chunk-1", doc_id: str = "contract", text: str = "Some text.") -> Chunk:
    return Chunk(id=chunk_id, doc_id=doc_id, index=0, text=text, start=0, end=len(text) + 2)


def extraction(
    chunk_id: str,
    entities: list[tuple] = (),
    relationships: list[tuple] = (),
) -> ChunkExtraction:
    """Build a ChunkExtraction from (type, name[, confidence[, properties]]) and
    (type, source, target[, confidence]) tuples."""
    ents = []
    for entry in entities:
        entity_type, name, *rest = entry
        ents.append(Entity(
            type=entity_type,
            name=name,
            confidence=rest[0] if rest else 0.8,
            properties=rest[1] if len(rest) > 1 else {},
        ))
    rels = []
    for entry in relationships:
        relation_type, source, target, *rest = entry
        rels.append(Relationship(
            type=relation_type,
            source_name=source,
            target_name=target,
            confidence=rest[0] if rest else 0.8,
        ))
    return ChunkExtraction(chunk_id=chunk_id, extraction=EntityExtraction(entities=ents, relationships=rels))


@pytest.fixture
def fake_oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def chunk() -> Chunk:
    return make_chunk()


@pytest.fixture
def contract_documents() -> list[DocumentInput]:
    """Two short contracts, one paragraph per clause."""
    return [
        DocumentInput(
            id="msa",
            text=(
                "Master Services Agreement between Acme Corp and Beta LLC.\n\n"
                "Acme Corp shall pay Beta LLC 10,000 USD per month.\n\n"
                "This agreement is effective on 1 March 2024."
            ),
        ),
        DocumentInput(
            id="",
            text=(
                "Amendment No. 1 to the Master Services Agreement.\n\n"
                "Beta LLC may terminate with 30 days notice."
            ),
        ),
    ]


@pytest.fixture
def tmp_dir():
    """Temporary directory that cleans up after test."""
    with tempfile.TemporaryDirectory() as d:
        yield Path(d)
