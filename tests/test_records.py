from delta_brief.extractor import RankedItem, ResolutionStatement
from delta_brief.gates import ValidationError
from delta_brief.orchestrator import PipelineResult
from delta_brief.records import (
    MODE_GENERIC,
    MODE_PERSONALIZED,
    MemoryStore,
    prior_attempt_from_payload,
    result_payload,
    select_prior_brief,
)
from delta_brief.similarity import SimilarityReport

from tests.brief_samples import DEFAULT_MOVES, make_brief


def _record(created_at, mode, moves=("A",)):
    return {"created_at": created_at, "payload": {"mode": mode, "moves": list(moves)}}


def test_select_prior_prefers_latest_personalized_brief():
    records = [
        _record("2025-12-01T10:00:00Z", MODE_PERSONALIZED, ["old personalized"]),
        _record("2025-12-10T10:00:00Z", MODE_GENERIC, ["newest generic"]),
        _record("2025-12-05T10:00:00Z", MODE_PERSONALIZED, ["new personalized"]),
    ]
    chosen = select_prior_brief(records)
    assert chosen["payload"]["moves"] == ["new personalized"]


def test_select_prior_falls_back_to_latest_of_any_mode():
    records = [
        _record("2025-12-01", MODE_GENERIC, ["older"]),
        _record("not a date", MODE_GENERIC, ["undated"]),
        _record("2025-12-08T09:30:00", MODE_GENERIC, ["latest"]),
    ]
    assert select_prior_brief(records)["payload"]["moves"] == ["latest"]


def test_select_prior_compares_offsets_in_utc():
    records = [
        _record("2025-12-01T10:00:00+05:00", MODE_PERSONALIZED, ["A"]),
        _record("2025-12-01T06:00:00Z", MODE_PERSONALIZED, ["B"]),
    ]
    assert select_prior_brief(records)["payload"]["moves"] == ["B"]


def test_select_prior_with_no_records():
    assert select_prior_brief([]) is None


def test_prior_attempt_reextracts_stored_markdown():
    attempt = prior_attempt_from_payload({"markdown": make_brief(), "moves": ["ignored"]})
    assert attempt.titles == [title for title, _ in DEFAULT_MOVES]
    assert attempt.items[0].category == DEFAULT_MOVES[0][1]


def test_prior_attempt_falls_back_to_stored_titles():
    attempt = prior_attempt_from_payload({"markdown": "no ranked lines here", "moves": ["Ship pilot", "  ", "Hire PM"]})
    assert attempt.titles == ["Ship pilot", "Hire PM"]
    assert all(item.category is None for item in attempt.items)


def test_prior_attempt_without_any_titles_is_none():
    assert prior_attempt_from_payload(None) is None
    assert prior_attempt_from_payload({"markdown": "", "moves": []}) is None


def test_result_payload_shape():
    result = PipelineResult(
        final_text="# brief",
        items=(RankedItem(title="Ship pilot", category="OKRs", raw_block="1) Move: Ship pilot (Framework: OKRs)"),),
        similarity_report=SimilarityReport(passed=True, max_score=0.25, pairs=()),
        retry_count=1,
        errors=(ValidationError(code="WRONG_ITEM_COUNT", message="expected exactly 3 ranked entries, found 1"),),
        highlights=("Q3 deadline",),
        resolution=ResolutionStatement(previous_state="May", current_state="legal first", updated_plan="July"),
    )

    payload = result_payload(result)

    assert payload == {
        "markdown": "# brief",
        "highlights": ["Q3 deadline"],
        "moves": ["Ship pilot"],
        "structuredData": {
            "resolver": {"previously": "May", "now": "legal first", "update": "July"},
            "frameworkByMove": ["OKRs"],
        },
        "validation": {
            "retry_count": 1,
            "errors": ["WRONG_ITEM_COUNT: expected exactly 3 ranked entries, found 1"],
            "max_similarity": 0.25,
        },
        "mode": MODE_PERSONALIZED,
    }


def test_memory_store_protocol_is_structural():
    class _Store:
        def add(self, record):
            _ = record
            return "id-1"

        def search(self, query, filters=None, limit=5):
            _ = (query, filters, limit)
            return []

    assert isinstance(_Store(), MemoryStore)
