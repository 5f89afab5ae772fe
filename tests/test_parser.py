"""Tests for parsing oracle output into findings and extractions."""

import json

from conftest import make_chunk

from rlm_analyzer.analysis.models import SubFinding
from rlm_analyzer.analysis.parser import (
    decode_json_object,
    empty_finding,
    extract_json,
    parse_graph_sub_result,
    parse_sub_finding,
)

CHUNK = make_chunk("doc-1-chunk-3", "contract", "Acme Corp shall pay Beta LLC.")
OVERSIZED_INTEGER_REPLY = '{"relevant": true, "summary": "x", "n": ' + "9" * 5000 + "}"
DEEPLY_NESTED_REPLY = '{"a":' * 100000 + "1" + "}" * 100000


class TestExtractJson:
    def test_strips_surrounding_text(self):
        """The span runs from the first '{' to the last '}'."""
        assert extract_json('Sure! {"a": {"b": 1}} Hope that helps.') == '{"a": {"b": 1}}'

    def test_markdown_fences(self):
        """Fenced JSON is found inside the fence."""
        assert extract_json('```json\n{"relevant": true}\n```') == '{"relevant": true}'

    def test_no_braces(self):
        """Text without braces has no JSON span."""
        assert extract_json("not json") is None

    def test_reversed_braces(self):
        """A closing brace before the opening one is not a span."""
        assert extract_json("} nope {") is None


class TestDecodeJsonObject:
    def test_success(self):
        outcome = decode_json_object('{"relevant": false}')
        assert outcome.ok
        assert outcome.value == {"relevant": False}

    def test_invalid_json_reports_reason(self):
        """Malformed JSON becomes a fallback with a reason, not an exception."""
        outcome = decode_json_object("{relevant: yes}")
        assert not outcome.ok
        assert outcome.value is None
        assert "invalid JSON" in outcome.reason

    def test_oversized_integer_reports_reason(self):
        """Integers past the interpreter's digit limit fall back instead of raising."""
        outcome = decode_json_object(OVERSIZED_INTEGER_REPLY)
        assert not outcome.ok
        assert outcome.reason.startswith("invalid JSON")

    def test_deep_nesting_reports_reason(self):
        outcome = decode_json_object(DEEPLY_NESTED_REPLY)
        assert not outcome.ok
        assert outcome.reason.startswith("invalid JSON")

    def test_missing_object_reports_reason(self):
        outcome = decode_json_object("[1, 2, 3]")
        assert not outcome.ok
        assert outcome.reason == "no JSON object found"


class TestParseSubFinding:
    def test_valid_response(self):
        """A well-formed response maps onto the finding."""
        text = json.dumps({"relevant": True, "summary": "Acme pays Beta.", "citations": ["doc-1-chunk-3"]})
        finding = parse_sub_finding(text, CHUNK)
        assert finding == SubFinding(
            relevant=True,
            summary="Acme pays Beta.",
            citations=["doc-1-chunk-3"],
            chunk_id="doc-1-chunk-3",
            doc_id="contract",
        )

    def test_unparseable_returns_empty_finding(self):
        """Garbage degrades to the zero-value finding."""
        assert parse_sub_finding("not valid json", CHUNK) == SubFinding(
            relevant=False, summary="", citations=[], chunk_id="doc-1-chunk-3", doc_id="contract",
        )

    def test_oversized_integer_returns_empty_finding(self):
        assert parse_sub_finding(OVERSIZED_INTEGER_REPLY, CHUNK) == empty_finding(CHUNK)

    def test_fallback_is_idempotent(self):
        """Parsing the same garbage twice yields equal findings."""
        assert parse_sub_finding("oops", CHUNK) == parse_sub_finding("oops", CHUNK) == empty_finding(CHUNK)

    def test_fenced_response(self):
        """Markdown fences around the JSON are tolerated."""
        finding = parse_sub_finding('```json\n{"relevant": true, "summary": "x"}\n```', CHUNK)
        assert finding.relevant is True
        assert finding.summary == "x"

    def test_missing_citations_default_to_chunk(self):
        """Absent or empty citations fall back to the chunk's own id."""
        assert parse_sub_finding('{"relevant": true}', CHUNK).citations == ["doc-1-chunk-3"]
        assert parse_sub_finding('{"relevant": true, "citations": []}', CHUNK).citations == ["doc-1-chunk-3"]

    def test_string_citation_is_wrapped(self):
        """A single citation string becomes a one-item list."""
        assert parse_sub_finding('{"citations": "doc-1-chunk-2"}', CHUNK).citations == ["doc-1-chunk-2"]

    def test_missing_fields_default(self):
        """Missing relevant/summary default to false/empty."""
        finding = parse_sub_finding("{}", CHUNK)
        assert finding.relevant is False
        assert finding.summary == ""

    def test_relevant_is_truthiness(self):
        """Non-boolean relevant values are coerced by truthiness."""
        assert parse_sub_finding('{"relevant": "yes"}', CHUNK).relevant is True
        assert parse_sub_finding('{"relevant": 0}', CHUNK).relevant is False

    def test_chunk_identity_comes_from_chunk(self):
        """chunkId/docId are never taken from the oracle's output."""
        finding = parse_sub_finding('{"chunkId": "evil", "docId": "evil", "relevant": true}', CHUNK)
        assert finding.chunk_id == "doc-1-chunk-3"
        assert finding.doc_id == "contract"


class TestParseGraphSubResult:
    def _parse(self, payload):
        return parse_graph_sub_result(json.dumps(payload), CHUNK)

    def test_valid_response(self):
        """Finding and extraction are both parsed."""
        result = self._parse({
            "finding": {"relevant": True, "summary": "Acme pays Beta.", "citations": ["doc-1-chunk-3"]},
            "extraction": {
                "entities": [
                    {"type": "party", "name": "Acme Corp", "confidence": 0.95},
                    {"type": "party", "name": "Beta LLC", "properties": {"role": "vendor"}},
                ],
                "relationships": [
                    {"type": "has_obligation", "sourceName": "Acme Corp", "targetName": "Beta LLC", "confidence": 0.9},
                ],
            },
        })
        assert result.finding.relevant is True
        assert [e.name for e in result.extraction.entities] == ["Acme Corp", "Beta LLC"]
        assert result.extraction.entities[0].confidence == 0.95
        assert result.extraction.entities[1].properties == {"role": "vendor"}
        rel = result.extraction.relationships[0]
        assert (rel.type, rel.source_name, rel.target_name, rel.confidence) == (
            "has_obligation", "Acme Corp", "Beta LLC", 0.9,
        )

    def test_unparseable_returns_empty(self):
        """Garbage degrades to an empty finding and an empty extraction."""
        result = parse_graph_sub_result("I could not find anything.", CHUNK)
        assert result.finding == empty_finding(CHUNK)
        assert result.extraction.is_empty

    def test_deep_nesting_returns_empty(self):
        """Nesting deeper than the decoder can recurse degrades like any other garbage."""
        result = parse_graph_sub_result(DEEPLY_NESTED_REPLY, CHUNK)
        assert result.finding == empty_finding(CHUNK)
        assert result.extraction.is_empty

    def test_flat_finding_without_finding_key(self):
        """A response without 'finding' is read as a flat finding."""
        result = self._parse({"relevant": True, "summary": "flat"})
        assert result.finding.relevant is True
        assert result.finding.summary == "flat"
        assert result.extraction.is_empty

    def test_unknown_types_dropped(self):
        """Entities and relationships with undeclared types are dropped."""
        result = self._parse({"extraction": {
            "entities": [{"type": "person", "name": "Alice"}, {"type": "date", "name": "1 May"}],
            "relationships": [{"type": "loves", "sourceName": "a", "targetName": "b"}],
        }})
        assert [e.name for e in result.extraction.entities] == ["1 May"]
        assert result.extraction.relationships == []

    def test_missing_names_dropped(self):
        """Entities without a name and relationships without endpoints are dropped."""
        result = self._parse({"extraction": {
            "entities": [{"type": "party"}, {"type": "party", "name": ""}, "junk"],
            "relationships": [
                {"type": "references", "sourceName": "A"},
                {"type": "references", "targetName": "B"},
                {"type": "references", "source_name": "A", "target_name": "B"},
            ],
        }})
        assert result.extraction.is_empty

    def test_confidence_defaults_and_clamps(self):
        """Missing or non-numeric confidence becomes 0.8; numbers are clamped to [0, 1]."""
        result = self._parse({"extraction": {"entities": [
            {"type": "party", "name": "A"},
            {"type": "party", "name": "B", "confidence": "high"},
            {"type": "party", "name": "C", "confidence": True},
            {"type": "party", "name": "D", "confidence": 1.5},
            {"type": "party", "name": "E", "confidence": -2},
        ]}})
        assert [e.confidence for e in result.extraction.entities] == [0.8, 0.8, 0.8, 1.0, 0.0]

    def test_non_dict_extraction_is_empty(self):
        """A malformed extraction block is treated as empty."""
        result = self._parse({"finding": {"relevant": True}, "extraction": ["nope"]})
        assert result.finding.relevant is True
        assert result.extraction.is_empty
