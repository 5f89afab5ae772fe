"""System prompts and user-message builders for every oracle call.

Sub-call prompts ask for JSON; the result parser tolerates anything the
oracle actually sends back.
"""

from collections.abc import Sequence

from rlm_analyzer.analysis.models import ENTITY_TYPES, RELATION_TYPES, DocumentInput, SubFinding
from rlm_analyzer.ingest.chunker import Chunk

NO_FINDINGS = "No relevant findings were extracted."
DOCUMENT_SEPARATOR = "\n\n---\n\n"

BASE_PROMPT = "Answer the question using the provided documents. If insufficient, say so."

ROOT_PROMPT = """
You are the root model for a document analysis run.
You receive extracted findings from smaller snippets.
Answer the question using only the findings provided.
If the findings are insufficient, say what is missing.
Include citations using bracketed chunk IDs like [doc-1-chunk-3].
Keep the response structured and concise.
""".strip()

SUB_PROMPT = """
You are a sub model analyzing a single snippet from a larger document.
Only use the snippet. Do not speculate beyond it.
Return JSON with keys: relevant (boolean), summary (string), citations (array of strings).
If not relevant, set relevant=false, summary="", citations=[].
Always include the provided chunk ID in citations when relevant.
Return JSON only.
""".strip()

RETRIEVAL_PROMPT = """
You are answering a question using retrieved snippets from a document set.
Only use the snippets provided. If insufficient, say so explicitly.
Include citations using bracketed chunk IDs like [doc-1-chunk-3].
""".strip()

REWRITE_PROMPT = """
You are a senior attorney writing for both lawyers and business readers.
Rewrite the draft answer with legal precision and plain-language clarity.
Preserve meaning, keep citations exactly as provided, and do not add new facts.
If the draft is insufficient, explicitly say what is missing.
Structure the response with clear headings and short paragraphs.
""".strip()

GRAPH_SUB_PROMPT = f"""
You are a sub model analyzing a single snippet from a larger document.
Only use the snippet. Do not speculate beyond it.
Do two things:
1. Decide whether the snippet is relevant to the question and summarize what it says about it.
2. Extract the entities and relationships that appear in the snippet, whether or not it is relevant.

Entity types (use ONLY these): {", ".join(ENTITY_TYPES)}
Relationship types (use ONLY these, do not invent new types): {", ".join(RELATION_TYPES)}

Return JSON only, in this shape:
{{
  "finding": {{"relevant": true, "summary": "string", "citations": ["chunk id"]}},
  "extraction": {{
    "entities": [
      {{"type": "party", "name": "string", "properties": {{}}, "confidence": 0.0-1.0}}
    ],
    "relationships": [
      {{"type": "has_obligation", "sourceName": "entity name", "targetName": "entity name", "properties": {{}}, "confidence": 0.0-1.0}}
    ]
  }}
}}
If not relevant, set relevant=false, summary="", citations=[].
Always include the provided chunk ID in citations when relevant.
Relationship sourceName/targetName must match names of extracted entities.
""".strip()

GRAPH_ROOT_PROMPT = """
You are the root model for a document analysis run.
You receive a knowledge graph summary of the entities and relationships found
across the documents, plus extracted findings from smaller snippets.
Use the graph to connect parties, obligations, dates and amounts across snippets.
Answer the question using only the graph summary and the findings provided.
If they are insufficient, say what is missing.
Include citations using bracketed chunk IDs like [doc-1-chunk-3].
Keep the response structured and concise.
""".strip()


def build_combined_documents(documents: Sequence[DocumentInput]) -> str:
    """Concatenate documents with ``Document N (id):`` headers."""
    return DOCUMENT_SEPARATOR.join(
        f"Document {index} ({doc.id}):\n{doc.text}"
        for index, doc in enumerate(documents, start=1)
    )


def format_chunk(chunk: Chunk) -> str:
    return f"[#{chunk.id}] (doc: {chunk.doc_id})\n{chunk.text}"


def format_findings(findings: Sequence[SubFinding]) -> str:
    """Bullet list of findings, or the no-findings sentence."""
    if not findings:
        return NO_FINDINGS
    return "\n".join(
        f"- {finding.summary} (citations: {', '.join(finding.citations)})"
        for finding in findings
    )


def build_base_message(question: str, documents_text: str) -> str:
    return f"Question:\n{question}\n\nDocuments:\n{documents_text}"


def build_retrieval_message(question: str, chunks: Sequence[Chunk]) -> str:
    snippets = "\n\n".join(format_chunk(chunk) for chunk in chunks)
    return f"Question:\n{question}\n\nSnippets:\n{snippets}"


def build_sub_message(question: str, chunk: Chunk) -> str:
    return f"Chunk ID: {chunk.id}\nQuestion: {question}\nSnippet:\n{chunk.text}"


def build_root_message(question: str, findings_text: str, graph_summary: str | None = None) -> str:
    if graph_summary is None:
        return f"Question:\n{question}\n\nFindings:\n{findings_text}"
    return f"Question:\n{question}\n\n{graph_summary}\n\nFindings:\n{findings_text}"


def build_rewrite_message(question: str, draft: str) -> str:
    return f"Question:\n{question}\n\nDraft answer:\n{draft}"
