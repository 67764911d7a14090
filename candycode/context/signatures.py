# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Signature extraction: reduce a source file to its structural lines.

Each language family is a row in a table of line-prefix predicates plus the
delimiters of its documentation blocks. Supporting a new language means adding
a LanguageFamily to FAMILIES; the traversal code never changes.
"""

from dataclasses import dataclass
from typing import Callable

# Upper bound on lines kept from documentation blocks, per file
MAX_DOC_LINES = 500


@dataclass(frozen=True)
class LanguageFamily:
    name: str
    extensions: frozenset[str]
    prefixes: tuple[str, ...] = ()
    doc_delimiters: tuple[tuple[str, str], ...] = ()
    extra: Callable[[str], bool] | None = None
    # Keep only the first N lines, regardless of content (config files).
    # A file of at most N lines keeps its first half instead.
    head_lines: int | None = None

    def keeps(self, stripped: str) -> bool:
        if stripped.startswith(self.prefixes):
            return True
        return self.extra is not None and self.extra(stripped)


def _python_marker_comment(stripped: str) -> bool:
    return (
        stripped.startswith("#")
        and len(stripped) > 5
        and any(tag in stripped for tag in ("TODO", "FIXME", "NOTE"))
    )


_JS_BINDINGS = ("const ", "let ", "var ")
_JS_NOTABLE = ("Component", "Hook", "Context", "Provider", "Router")


def _js_binding(stripped: str) -> bool:
    """Bindings are kept only when they look like declarations, not plain values."""
    if not stripped.startswith(_JS_BINDINGS):
        return False
    if "=>" in stripped or "function" in stripped or "=" not in stripped:
        return True
    return any(x in stripped for x in _JS_NOTABLE)


PYTHON = LanguageFamily(
    name="python",
    extensions=frozenset({".py"}),
    prefixes=("def ", "async def ", "class ", "import ", "from ", "@"),
    doc_delimiters=(('"""', '"""'), ("'''", "'''")),
    extra=_python_marker_comment,
)

JAVASCRIPT = LanguageFamily(
    name="javascript",
    extensions=frozenset({".js", ".ts", ".jsx", ".tsx"}),
    prefixes=(
        "import ", "export ", "function ", "async function ", "class ",
        "interface ", "type ", "//",
    ),
    doc_delimiters=(("/*", "*/"),),
    extra=_js_binding,
)

GO = LanguageFamily(
    name="go",
    extensions=frozenset({".go"}),
    prefixes=("package ", "import ", "func ", "type ", "const ", "var ", "//"),
    doc_delimiters=(("/*", "*/"),),
)

RUST = LanguageFamily(
    name="rust",
    extensions=frozenset({".rs"}),
    prefixes=(
        "use ", "mod ", "pub ", "fn ", "async fn ", "struct ", "enum ",
        "impl ", "trait ", "//",
    ),
    doc_delimiters=(("/*", "*/"),),
)

CONFIG = LanguageFamily(
    name="config",
    extensions=frozenset({".json", ".yaml", ".yml", ".toml"}),
    head_lines=50,
)

FAMILIES: list[LanguageFamily] = [PYTHON, JAVASCRIPT, GO, RUST, CONFIG]

_BY_EXTENSION: dict[str, LanguageFamily] = {
    ext: family for family in FAMILIES for ext in family.extensions
}


def family_for(extension: str) -> LanguageFamily | None:
    return _BY_EXTENSION.get(extension.lower())


def extract_signatures(content: str, extension: str) -> str:
    """Keep declaration, import/export and doc-comment lines of a file.

    Returns an empty string for languages without a registered family.
    """
    family = family_for(extension)
    if family is None:
        return ""

    lines = content.split("\n")
    if family.head_lines is not None:
        line_count = len(content.rstrip("\n").split("\n"))
        if line_count <= family.head_lines:
            return "\n".join(lines[: line_count // 2])
        return "\n".join(lines[: family.head_lines])

    kept: list[str] = []
    closer: str | None = None
    doc_lines = 0

    for line in lines:
        stripped = line.strip()

        if closer is not None:
            if doc_lines < MAX_DOC_LINES:
                kept.append(line)
                doc_lines += 1
            if closer in stripped:
                closer = None
            continue

        opened = _doc_opening(stripped, family)
        if opened is not None:
            kept.append(line)
            doc_lines += 1
            opener, close = opened
            rest = stripped[stripped.index(opener) + len(opener):]
            if close not in rest:
                closer = close
            continue

        if family.keeps(stripped):
            kept.append(line)

    return "\n".join(kept)


def _doc_opening(stripped: str, family: LanguageFamily) -> tuple[str, str] | None:
    for opener, close in family.doc_delimiters:
        if opener == "/*":
            # Block comments only count when they start the line
            if stripped.startswith(opener):
                return opener, close
        elif opener in stripped:
            return opener, close
    return None
