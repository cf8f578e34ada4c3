import pytest

from edit_agent.config import PatchConfig
from edit_agent.errors import PatchParseError
from edit_agent.patch.parser import PatchParser, parse_patch
from edit_agent.types import BlockReplace, SearchReplace

MODEL_OUTPUT = """Here is the change.
/// SUMMARY: footer year is now dynamic
```
<<<<SEARCH @L18-L20
function Footer() {
  const year = 2023;
====
function Footer() {
  const year = new Date().getFullYear();
>>>>

<<<<BLOCK_REPLACE: Data>>>>
const Data = [];
>>>>
```
/// Only Footer and Data changed.
"""


def test_parses_both_op_kinds_and_notes() -> None:
    parsed = parse_patch(MODEL_OUTPUT)

    assert parsed.notes == ["SUMMARY: footer year is now dynamic", "Only Footer and Data changed."]
    assert len(parsed.ops) == 2

    search, block = parsed.ops
    assert isinstance(search, SearchReplace)
    assert search.anchor == "function Footer() {\n  const year = 2023;"
    assert search.replacement == "function Footer() {\n  const year = new Date().getFullYear();"
    assert search.context_lines == 2
    assert search.line_number == 4

    assert isinstance(block, BlockReplace)
    assert block.target_id == "Data"
    assert block.replacement == "const Data = [];"


def test_blank_edges_of_blocks_are_trimmed() -> None:
    parsed = parse_patch("<<<<SEARCH\n\nlet a = 1;\n\n====\n\nlet a = 2;\n\n>>>>\n")

    assert parsed.ops == [SearchReplace(anchor="let a = 1;", replacement="let a = 2;", context_lines=1, line_number=1)]


def test_empty_replacement_deletes() -> None:
    parsed = parse_patch("<<<<SEARCH\nconsole.log(debug);\n====\n>>>>")

    assert parsed.ops[0].replacement == ""


def test_no_blocks_is_not_an_error() -> None:
    parsed = parse_patch("/// ANALYSIS: nothing to change\nThe code already does this.")

    assert parsed.ops == []
    assert parsed.notes == ["ANALYSIS: nothing to change"]


@pytest.mark.parametrize(
    ("text", "line_number"),
    [
        ("<<<<SEARCH\n}\n====\n}\n}\n>>>>", 1),
        ("intro\n<<<<SEARCH\n  ];\n====\n  ], extra;\n>>>>", 2),
        ("<<<<SEARCH\n</div>\n====\n</div></div>\n>>>>", 1),
        ("<<<<SEARCH\n\n====\nx\n>>>>", 1),
    ],
)
def test_closing_only_or_empty_anchor_is_a_parse_error(text: str, line_number: int) -> None:
    with pytest.raises(PatchParseError) as excinfo:
        parse_patch(text)

    assert excinfo.value.line_number == line_number


@pytest.mark.parametrize(
    ("text", "reason"),
    [
        ("<<<<SEARCH\nlet a = 1;\n====\nlet a = 2;\n", "never closed"),
        ("<<<<BLOCK_REPLACE: App>>>>\nfunction App() {}\n", "never closed"),
        ("<<<<SEARCH\nlet a = 1;\n>>>>", "without a ==== divider"),
        ("<<<<SEARCH\nlet a;\n====\nlet b;\n====\nlet c;\n>>>>", "second ==== divider"),
        ("<<<<SEARCH\nlet a;\n<<<<SEARCH\n====\n>>>>", "new block opened"),
        ("====\n>>>>", "outside of a patch block"),
    ],
)
def test_structural_errors_are_reported(text: str, reason: str) -> None:
    with pytest.raises(PatchParseError, match=reason):
        parse_patch(text)


def test_minimum_anchor_lines_is_configurable() -> None:
    parser = PatchParser(PatchConfig(min_anchor_lines=2))

    with pytest.raises(PatchParseError, match="at least 2"):
        parser.parse("<<<<SEARCH\nlet a = 1;\n====\nlet a = 2;\n>>>>")
