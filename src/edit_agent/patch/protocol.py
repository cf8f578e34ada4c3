"""Sentinels of the patch protocol and the instructions given to the model."""

from __future__ import annotations

import re

SEARCH_OPEN = "<<<<SEARCH"
DIVIDER = "===="
CLOSE = ">>>>"
BLOCK_OPEN = "<<<<BLOCK_REPLACE"
NOTE_PREFIX = "///"

SEARCH_OPEN_LINE = re.compile(r"^<<<<\s*SEARCH(?:\s*@L\d+\s*-\s*L\d+)?\s*(?:>>>>)?\s*$")
BLOCK_OPEN_LINE = re.compile(r"^<<<<\s*BLOCK_REPLACE\s*:\s*(?P<target>[^<>\s][^<>]*?)\s*>>>>\s*$")
DIVIDER_LINE = re.compile(r"^====(?:\s*REPLACE)?\s*$")
CLOSE_LINE = re.compile(r"^>>>>\s*$")

PATCH_FORMAT_INSTRUCTIONS = f"""
### Output Format (patch mode)
Output ONLY patch blocks. Never output the full file.

1. Notes: optional lines starting with `{NOTE_PREFIX}` (e.g. `{NOTE_PREFIX} SUMMARY: ...`).
2. Search/replace, for local edits:
{SEARCH_OPEN}
[exact original code, including at least 2 lines of surrounding context]
{DIVIDER}
[new code]
{CLOSE}
3. Block replace, PREFERRED for whole functions, components or data tables:
{BLOCK_OPEN}: TargetName{CLOSE}
[complete new content for TargetName]
{CLOSE}

### Rules (strict)
- The search text must match the original EXACTLY once, whitespace included.
- NEVER use a lone closing bracket such as `}}` or `];` as the search text.
- NEVER copy stub comments such as `// [stub: ...]` into a search block; that code is not shown to you.
- Units marked [READ-ONLY] are context only. Do not emit any block that modifies them.
- Replacement code must be complete: no placeholders like `// ... existing code`.
- Blocks are applied in order; a later search block may match text introduced by an earlier one.
""".strip()
