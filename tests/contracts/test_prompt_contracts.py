from edit_agent.agent.classifier import _SYSTEM_PROMPT
from edit_agent.patch.parser import parse_patch
from edit_agent.patch.protocol import BLOCK_OPEN, CLOSE, DIVIDER, PATCH_FORMAT_INSTRUCTIONS, SEARCH_OPEN
from edit_agent.types import Intent


def test_classifier_prompt_names_every_intent() -> None:
    for intent in Intent:
        if intent is Intent.UNKNOWN:
            continue
        assert f"- {intent.value}:" in _SYSTEM_PROMPT
    assert "reference_targets" in _SYSTEM_PROMPT


def test_patch_instructions_state_the_safety_rules() -> None:
    for sentinel in (SEARCH_OPEN, DIVIDER, CLOSE, BLOCK_OPEN):
        assert sentinel in PATCH_FORMAT_INSTRUCTIONS
    assert "[READ-ONLY]" in PATCH_FORMAT_INSTRUCTIONS
    assert "EXACTLY once" in PATCH_FORMAT_INSTRUCTIONS
    assert "lone closing bracket" in PATCH_FORMAT_INSTRUCTIONS
    assert "stub" in PATCH_FORMAT_INSTRUCTIONS


def test_example_in_instructions_is_itself_parseable() -> None:
    parsed = parse_patch(PATCH_FORMAT_INSTRUCTIONS)

    assert len(parsed.ops) == 2
    assert parsed.ops[1].target_id == "TargetName"
