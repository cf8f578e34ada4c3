import pytest

_SCRIPT_SOURCE = """const hdr = { title: "Acme", tagline: "Tools" };

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

_HTML_SOURCE = """<!DOCTYPE html>
<html>
<head>
<style>
body { margin: 0; }
</style>
</head>
<body>
<div id="root"></div>
<script>
function Header() {
  return "Header";
}

function Footer() {
  return "Footer";
}

render(Header, Footer);
</script>
</body>
</html>
"""


@pytest.fixture
def script_source() -> str:
    """Five top-level units: hdr, App, Util, Data, Footer."""
    return _SCRIPT_SOURCE


@pytest.fixture
def html_source() -> str:
    return _HTML_SOURCE


_JSX_DOCUMENT = """<!DOCTYPE html>
<html>
<body>
<div id="root"></div>
<script type="text/babel">
function App() {
  const [open, setOpen] = React.useState(false);
  return (
    <div className="app">
      <p>Don't forget to {open ? "close" : "open"} the panel (soon</p>
      <button onClick={() => setOpen(!open)}>Toggle</button>
    </div>
  );
}

function Footer() {
  return <footer>It's {new Date().getFullYear()} at Acme</footer>;
}

ReactDOM.render(<App />, document.getElementById("root"));
</script>
</body>
</html>
"""


@pytest.fixture
def jsx_document() -> str:
    """Babel page whose JSX text holds apostrophes and an unmatched paren."""
    return _JSX_DOCUMENT
