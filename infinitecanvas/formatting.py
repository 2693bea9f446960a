"""Line-level Markdown tokenizer used for laying out node text."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Dict, Optional


class LineKind(Enum):
    PARAGRAPH = "paragraph"
    BLANK = "blank"
    HEADING = "heading"
    LIST_ITEM = "list_item"
    QUOTE = "quote"
    CODE = "code"
    FENCE = "fence"
    RULE = "rule"
    TABLE_ROW = "table_row"


@dataclass(frozen=True)
class LineStyle:
    """How a kind of line is drawn."""
    font_size: float = 14.0
    line_height: float = 18.0
    bold: bool = False
    italic: bool = False
    monospace: bool = False
    indent: float = 0.0
    color: Optional[str] = None  # None uses the node's text color


HEADING_SIZES = (24.0, 20.0, 18.0, 16.0, 14.0, 12.0)

BODY_STYLE = LineStyle()

STYLES: Dict[LineKind, LineStyle] = {
    LineKind.PARAGRAPH: BODY_STYLE,
    LineKind.BLANK: LineStyle(line_height=9.0),
    LineKind.LIST_ITEM: LineStyle(indent=16.0),
    LineKind.QUOTE: LineStyle(italic=True, indent=14.0, color="#9a9a9a"),
    LineKind.CODE: LineStyle(font_size=12.0, line_height=16.0, monospace=True,
                             color="#d7ba7d"),
    LineKind.FENCE: LineStyle(line_height=6.0),
    LineKind.RULE: LineStyle(line_height=14.0, color="#555555"),
    LineKind.TABLE_ROW: LineStyle(font_size=12.0, line_height=20.0, monospace=True),
}


@dataclass(frozen=True)
class StyledLine:
    """One source line, classified and stripped of its markup."""
    kind: LineKind
    text: str
    level: int = 0
    indent: int = 0
    marker: str = ""

    @property
    def style(self) -> LineStyle:
        return style_for(self)


def style_for(line: StyledLine) -> LineStyle:
    if line.kind is LineKind.HEADING:
        size = HEADING_SIZES[max(1, min(6, line.level)) - 1]
        return LineStyle(font_size=size, line_height=round(size * 1.3, 1), bold=True)
    style = STYLES.get(line.kind, BODY_STYLE)
    if line.kind is LineKind.LIST_ITEM and line.indent:
        return LineStyle(indent=style.indent + line.indent * 4)
    return style


_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+)$")
_UNORDERED_RE = re.compile(r"^(\s*)([-*+])\s+(.+)$")
_ORDERED_RE = re.compile(r"^(\s*)(\d+\.)\s+(.+)$")
_QUOTE_RE = re.compile(r"^>\s?(.*)$")
_RULE_RE = re.compile(r"^(\*{3,}|-{3,}|_{3,})\s*$")

_INLINE_PATTERNS = (
    (re.compile(r"!\[([^\]]*)\]\([^)]+\)"), r"\1"),
    (re.compile(r"\[([^\]]+)\]\([^)]+\)"), r"\1"),
    (re.compile(r"\*\*(.+?)\*\*"), r"\1"),
    (re.compile(r"__(.+?)__"), r"\1"),
    (re.compile(r"~~(.+?)~~"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"(?<![\w*])\*(?!\s)(.+?)(?<!\s)\*(?![\w*])"), r"\1"),
)


def strip_inline(text: str) -> str:
    """Drop inline emphasis, code and link markup, keeping the visible text."""
    for pattern, replacement in _INLINE_PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _classify(line: str) -> StyledLine:
    if not line.strip():
        return StyledLine(LineKind.BLANK, "")

    match = _HEADING_RE.match(line)
    if match:
        return StyledLine(LineKind.HEADING, strip_inline(match.group(2).strip()),
                          level=len(match.group(1)))

    if _RULE_RE.match(line.strip()):
        return StyledLine(LineKind.RULE, "")

    match = _UNORDERED_RE.match(line)
    if match:
        return StyledLine(LineKind.LIST_ITEM, strip_inline(match.group(3)),
                          indent=len(match.group(1)), marker="•")

    match = _ORDERED_RE.match(line)
    if match:
        return StyledLine(LineKind.LIST_ITEM, strip_inline(match.group(3)),
                          indent=len(match.group(1)), marker=match.group(2))

    match = _QUOTE_RE.match(line)
    if match:
        return StyledLine(LineKind.QUOTE, strip_inline(match.group(1)))

    if "|" in line:
        cells = [c.strip() for c in line.split("|") if c.strip()]
        if len(cells) > 1:
            if all(set(c) <= set("-: ") for c in cells):
                return StyledLine(LineKind.RULE, "")
            return StyledLine(LineKind.TABLE_ROW,
                              "  │  ".join(strip_inline(c) for c in cells))

    return StyledLine(LineKind.PARAGRAPH, strip_inline(line))


def tokenize(text: str) -> List[StyledLine]:
    """Split text into styled lines. Fenced code is kept verbatim."""
    if not text:
        return []

    lines: List[StyledLine] = []
    in_code = False
    for raw in text.split("\n"):
        if raw.strip().startswith("```"):
            in_code = not in_code
            lines.append(StyledLine(LineKind.FENCE, ""))
            continue
        if in_code:
            lines.append(StyledLine(LineKind.CODE, raw.expandtabs(4)))
            continue
        lines.append(_classify(raw))
    return lines


def plain_text(text: str) -> str:
    """Markup-free version of text, for prompts and previews."""
    parts = []
    for line in tokenize(text):
        if line.kind in (LineKind.FENCE, LineKind.RULE):
            continue
        parts.append(f"{line.marker} {line.text}".strip() if line.marker else line.text)
    return "\n".join(parts).strip()
