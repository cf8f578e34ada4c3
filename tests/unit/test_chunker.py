import pytest

from edit_agent.config import ChunkingConfig
from edit_agent.ingest.chunker import (
    SourceChunker,
    brackets_balanced,
    chunk,
    reconstruct,
    resolve_chunk_id,
    resolve_chunk_ids,
)
from edit_agent.types import ChunkKind

SCRIPT_SOURCE = """const hdr = { title: "Acme", tagline: "Tools" };

function App() {
  return render(hdr.title, Util(2));
}

function Util(value) {
  return value * 2;
}

const Data = [
  { id: 1, label: "one" },
  { id: 2, label: "two" },
];

function Footer() {
  const year = 2023;
  return "Copyright " + year + " Acme";
}
"""

HTML_SOURCE = """<!DOCTYPE html>
<html>
<head>
<style>
body { margin: 0; }
</style>
</head>
<body>
<div id="root"></div>
<script>
// Page header
function Header() {
  const label = `Hi ${user.name}, it's {late}`;
  return label;
}

const COLORS = ["red", "blue"];

const useToggle = (initial) => {
  return [initial, () => {}];
};

render(Header);
mount("#root");
</script>
</body>
</html>
"""


def test_script_declarations_become_named_chunks() -> None:
    chunks = chunk(SCRIPT_SOURCE)

    assert [item.id for item in chunks] == ["hdr", "App", "Util", "Data", "Footer"]
    kinds = {item.id: item.kind for item in chunks}
    assert kinds["App"] == ChunkKind.COMPONENT
    assert kinds["Util"] == ChunkKind.COMPONENT
    assert kinds["hdr"] == ChunkKind.DECLARATION
    assert chunks[-1].content.startswith("function Footer()")


def test_html_regions_and_script_units() -> None:
    chunks = chunk(HTML_SOURCE)
    by_id = {item.id: item for item in chunks}

    assert [item.id for item in chunks] == [
        "markup",
        "style",
        "markup-2",
        "Header",
        "COLORS",
        "useToggle",
        "script",
        "markup-3",
    ]
    assert by_id["style"].kind == ChunkKind.STYLE
    assert by_id["style"].region == "style"
    assert by_id["COLORS"].kind == ChunkKind.DATA
    assert by_id["useToggle"].kind == ChunkKind.FUNCTION
    assert by_id["script"].kind == ChunkKind.OTHER
    assert "mount(" in by_id["script"].content
    assert "// Page header" in by_id["Header"].content


@pytest.mark.parametrize("source", [SCRIPT_SOURCE, HTML_SOURCE, "x = 1", "\n\n}\n", "const a = `\n}\n"])
def test_chunking_is_deterministic_and_covers_the_source(source: str) -> None:
    first = chunk(source)
    second = chunk(source)

    assert [(c.id, c.start_offset, c.end_offset) for c in first] == [
        (c.id, c.start_offset, c.end_offset) for c in second
    ]
    assert reconstruct(source, first) == source
    assert "".join(item.content for item in first) == source


def test_large_literal_becomes_data_chunk() -> None:
    rows = "\n".join(f'  {{ id: {i}, label: "row {i}" }},' for i in range(30))
    source = f"const rows = [\n{rows}\n];\n\nfunction List() {{\n  return rows;\n}}\n"

    chunks = SourceChunker(ChunkingConfig(data_table_min_bytes=200)).chunk(source)

    assert [(item.id, item.kind) for item in chunks] == [
        ("rows", ChunkKind.DATA),
        ("List", ChunkKind.COMPONENT),
    ]


def test_duplicate_names_get_suffixes() -> None:
    source = "function a() {}\nfunction a() {}\nfunction a() {}\n"

    assert [item.id for item in chunk(source)] == ["a", "a-2", "a-3"]


def test_chunker_degrades_to_whole_document(monkeypatch: pytest.MonkeyPatch) -> None:
    def _explode(self, source):  # type: ignore[no-untyped-def]
        raise ValueError("boom")

    monkeypatch.setattr(SourceChunker, "_chunk", _explode)
    chunks = chunk(SCRIPT_SOURCE)

    assert len(chunks) == 1
    assert chunks[0].id == "document"
    assert chunks[0].content == SCRIPT_SOURCE


def test_empty_source_has_no_chunks() -> None:
    assert chunk("") == []


def test_resolve_chunk_id_tolerates_casing_and_partial_names() -> None:
    ids = ["Header", "FooterLinks", "Footer", "useToggle"]

    assert resolve_chunk_id("Footer", ids) == "Footer"
    assert resolve_chunk_id("footer", ids) == "Footer"
    assert resolve_chunk_id("`usetoggle`", ids) == "useToggle"
    assert resolve_chunk_id("FooterLink", ids) == "FooterLinks"
    assert resolve_chunk_id("zz", ids) is None
    assert resolve_chunk_ids(["header", "HEADER", "missing"], ids) == ["Header"]


CHAINED_SOURCE = """const items = load();

const visible = items
  .filter((item) => item.ok)
  .map((item) => item.id);

function List() {
  return visible;
}
"""

REGEX_SOURCE = """function clean(value) {
  return value.replace(/[{(]/g, "");
}

function Other() {
  return 1;
}
"""

JSX_ONLY_SOURCE = """function Card({ title }) {
  return (
    <div className="card">
      <h2>{title}</h2>
    </div>
  );
}

function App() {
  return <Card title="Hi" />;
}
"""


def test_jsx_text_with_apostrophes_stays_inside_its_component(jsx_document: str) -> None:
    chunks = chunk(jsx_document)
    by_id = {item.id: item for item in chunks}

    assert [item.id for item in chunks] == ["markup", "App", "Footer", "script", "markup-2"]
    assert by_id["App"].content.endswith("    </div>\n  );\n}\n\n")
    assert "Toggle" in by_id["App"].content
    assert by_id["Footer"].kind == ChunkKind.COMPONENT
    assert by_id["script"].content.startswith("ReactDOM.render(<App />")


def test_method_chain_continues_its_declaration() -> None:
    chunks = chunk(CHAINED_SOURCE)
    by_id = {item.id: item for item in chunks}

    assert [item.id for item in chunks] == ["items", "visible", "List"]
    assert by_id["visible"].content == (
        "const visible = items\n  .filter((item) => item.ok)\n  .map((item) => item.id);\n\n"
    )


def test_operator_at_line_end_continues_the_statement() -> None:
    source = "const total =\n  price * count;\n\nfunction show() {\n  return total;\n}\n"

    assert [item.id for item in chunk(source)] == ["total", "show"]


def test_brackets_inside_regex_literals_are_ignored() -> None:
    chunks = chunk(REGEX_SOURCE)

    assert [item.id for item in chunks] == ["clean", "Other"]
    assert chunks[1].content == "function Other() {\n  return 1;\n}\n"


def test_division_is_not_read_as_a_regex() -> None:
    source = "const half = total / 2;\nconst third = (total) / 3;\n\nfunction f() {\n  return half;\n}\n"

    assert [item.id for item in chunk(source)] == ["half", "third", "f"]


def test_jsx_script_without_html_wrapper_is_split_into_components() -> None:
    chunks = chunk(JSX_ONLY_SOURCE)

    assert [(item.id, item.kind, item.region) for item in chunks] == [
        ("Card", ChunkKind.COMPONENT, "script"),
        ("App", ChunkKind.COMPONENT, "script"),
    ]


@pytest.mark.parametrize(
    ("text", "balanced"),
    [
        ("function a() {\n  return 1;\n}\n", True),
        ("const re = /[{(]/;\n", True),
        ("const p = <p>Don't (panic</p>;\n", True),
        ("const s = `a ${b} {`;\n", True),
        ("function a() {\n  return 1;\n", False),
        ("}\n", False),
        ("const p = <p>open\n", False),
    ],
)
def test_brackets_balanced(text: str, balanced: bool) -> None:
    assert brackets_balanced(text) is balanced
