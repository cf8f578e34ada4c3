from edit_agent.agent.fallback import HeuristicIntentClassifier
from edit_agent.ingest.chunker import chunk
from edit_agent.ingest.summarizer import summarize
from edit_agent.types import Intent


def test_style_request_is_ui_modification() -> None:
    result = HeuristicIntentClassifier().classify("change the button color to blue")

    assert result.intent == Intent.UI_MODIFICATION
    assert result.confidence == 1.0
    assert result.source == "heuristic"
    assert "button" in result.reasoning


def test_fix_request_names_known_unit(script_source: str) -> None:
    entries = summarize(chunk(script_source))

    result = HeuristicIntentClassifier().classify(
        "fix the footer copyright year", architecture_summary=entries
    )

    assert result.intent == Intent.LOGIC_FIX
    assert result.targets == ("Footer",)
    assert result.reference_targets == ()


def test_chinese_keywords_are_weighted() -> None:
    result = HeuristicIntentClassifier().classify("修复按钮的错误")

    assert result.intent == Intent.LOGIC_FIX
    assert 0.5 < result.confidence < 1.0


def test_review_of_everything_is_global() -> None:
    result = HeuristicIntentClassifier().classify("please review all of the code")

    assert result.intent == Intent.GLOBAL_REVIEW


def test_plain_words_match_whole_tokens_only() -> None:
    # "addresses" must not count as "add", nor "colorful" as "color".
    result = HeuristicIntentClassifier().classify("addresses look colorful")

    assert result.intent == Intent.UNKNOWN
    assert result.confidence == 0.0
