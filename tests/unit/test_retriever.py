import pytest

from edit_agent.config import RetrievalConfig
from edit_agent.ingest.chunker import chunk
from edit_agent.retrieval.retriever import RelevanceRetriever, looks_like_global_review
from edit_agent.types import Intent, IntentResult


def _intent(
    intent: Intent = Intent.UNKNOWN,
    targets: list[str] | tuple[str, ...] = (),
    reference_targets: list[str] | tuple[str, ...] = (),
) -> IntentResult:
    return IntentResult(intent=intent, targets=tuple(targets), reference_targets=tuple(reference_targets))


def test_explicit_target_selects_only_that_unit(script_source: str) -> None:
    selection = RelevanceRetriever().retrieve(
        chunk(script_source), "fix the footer copyright year", _intent(Intent.LOGIC_FIX, ["Footer"])
    )

    assert selection.chunk_ids == ["Footer"]
    assert selection.reason == "explicit_targets"


def test_callers_of_a_target_are_added(script_source: str) -> None:
    selection = RelevanceRetriever().retrieve(
        chunk(script_source), "double faster", _intent(Intent.PERFORMANCE, ["util"])
    )

    assert selection.chunk_ids == ["App", "Util"]


def test_referrer_expansion_can_be_disabled(script_source: str) -> None:
    retriever = RelevanceRetriever(RetrievalConfig(max_referrer_expansion=0))

    selection = retriever.retrieve(chunk(script_source), "x", _intent(targets=["Util"]))

    assert selection.chunk_ids == ["Util"]


def test_reference_targets_are_selected_in_document_order(script_source: str) -> None:
    selection = RelevanceRetriever().retrieve(
        chunk(script_source), "use the data", _intent(Intent.LOGIC_FIX, ["Footer"], ["Data"])
    )

    assert selection.chunk_ids == ["Data", "Footer"]


def test_keyword_scoring_without_targets(script_source: str) -> None:
    selection = RelevanceRetriever().retrieve(
        chunk(script_source), "change the copyright text", _intent()
    )

    assert selection.reason == "keyword_score"
    assert selection.chunk_ids == ["Footer"]
    assert selection.scores["Footer"] > selection.scores["App"]


@pytest.mark.parametrize("user_text", ["", "zzz qqq", "???", "完全无关"])
def test_selection_is_never_empty(script_source: str, user_text: str) -> None:
    chunks = chunk(script_source)

    selection = RelevanceRetriever().retrieve(chunks, user_text, _intent())

    assert len(selection) > 0
    if selection.reason == "largest_chunk_default":
        largest = max(chunks, key=lambda item: item.size_bytes)
        assert largest.id in selection


def test_global_review_selects_everything(script_source: str) -> None:
    chunks = chunk(script_source)

    selection = RelevanceRetriever().retrieve(
        chunks, "fix Footer", _intent(Intent.GLOBAL_REVIEW, ["Footer"], ["hdr"])
    )

    assert selection.chunk_ids == [item.id for item in chunks]
    assert selection.is_global


def test_global_review_wording_overrides_intent(script_source: str) -> None:
    chunks = chunk(script_source)

    selection = RelevanceRetriever().retrieve(chunks, "review everything for bugs", _intent(Intent.LOGIC_FIX))

    assert len(selection) == len(chunks)
    assert looks_like_global_review("全面检查所有代码")
    assert not looks_like_global_review("review the footer")


def test_empty_chunk_list() -> None:
    selection = RelevanceRetriever().retrieve([], "anything", _intent())

    assert selection.chunk_ids == []
    assert selection.reason == "no_chunks"
