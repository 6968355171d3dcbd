"""
Pattern-based field recovery from generated brief markdown.

The model output is free-form text with no guaranteed shape, so extraction is
a set of small, independent matchers. Each one looks at the raw text and
either finds its pattern or returns an empty value. Nothing here raises and
nothing here decides whether the brief is acceptable; that is the gate
runner's job (delta_brief.gates).

Expected shapes (labels come from DocumentPatterns):

    1) Move: Renegotiate vendor SLA before Q3 (Framework: Porter's Five Forces)
    - Thread resolved: Previously: pilot in May -> Now: legal review first -> Update: pilot moves to July
    ## Memory highlights used
    - Union pushback on scheduling
"""

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, List, Optional, Sequence, Tuple

from delta_brief.config import DocumentPatterns


logger = logging.getLogger("brief-extractor")

_HEADING_RE = re.compile(r"^\s{0,3}#{1,6}\s+(?P<title>.+?)\s*#*\s*$")
_LIST_MARKER_RE = re.compile(r"^\s*(?:[-*+•]|\d+[.)])\s+")
_ARROW = r"\s*(?:->|→|=>)\s*"


@dataclass(frozen=True)
class RankedItem:
    title: str
    category: Optional[str]
    raw_block: str


@dataclass(frozen=True)
class ResolutionStatement:
    previous_state: str
    current_state: str
    updated_plan: str


@dataclass(frozen=True)
class GenerationAttempt:
    raw_text: str
    items: Tuple[RankedItem, ...] = ()
    resolution: Optional[ResolutionStatement] = None
    highlights: Tuple[str, ...] = ()
    categories: Tuple[str, ...] = ()
    resolution_marker_count: int = 0
    errors: tuple = ()

    @property
    def titles(self) -> List[str]:
        return [item.title for item in self.items]


# ---------------------------------------------------------------------------
# Compiled patterns (cached per DocumentPatterns value)
# ---------------------------------------------------------------------------


@lru_cache(maxsize=32)
def _item_line_re(item_label: str, category_label: str) -> re.Pattern:
    # "1) Move: <title> (Framework: <name>)" with the tag optional and allowed
    # in square brackets. Bold markers around the label and the tag are tolerated.
    return re.compile(
        r"^\s*(?:\*\*)?\d+\)\s*(?:\*\*)?"
        + re.escape(item_label)
        + r"(?:\*\*)?\s*:\s*(?:\*\*)?(?P<title>.+?)(?:\*\*)?"
        + r"(?:\s*(?:\*\*)?[\(\[]\s*(?:\*\*)?"
        + re.escape(category_label)
        + r"(?:\*\*)?\s*:\s*(?:\*\*)?\s*(?P<category>[^\)\]*]+?)\s*(?:\*\*)?\s*[\)\]](?:\*\*)?)?"
        + r"\s*$",
        re.IGNORECASE,
    )


@lru_cache(maxsize=32)
def _resolution_re(marker: str) -> re.Pattern:
    return re.compile(
        r"^\s*(?:[-*+•]\s*)?(?:\*\*)?"
        + re.escape(marker)
        + r"(?:\*\*)?\s*:\s*(?:\*\*)?\s*Previously\s*:\s*(?P<previous>.+?)"
        + _ARROW
        + r"Now\s*:\s*(?P<now>.+?)"
        + _ARROW
        + r"Update\s*:\s*(?P<update>.+?)\s*$",
        re.IGNORECASE | re.MULTILINE,
    )


@lru_cache(maxsize=32)
def _marker_re(marker: str) -> re.Pattern:
    return re.compile(re.escape(marker) + r"(?:\*\*)?\s*:", re.IGNORECASE)


def _lines(text: str | None) -> List[str]:
    return (text or "").splitlines()


def _is_heading(line: str) -> bool:
    return bool(_HEADING_RE.match(line))


# ---------------------------------------------------------------------------
# Matchers. Each is a pure function of (text, patterns).
# ---------------------------------------------------------------------------


def match_items(text: str | None, patterns: DocumentPatterns) -> List[RankedItem]:
    """Every ranked-entry line, in document order, with its following block."""
    rx = _item_line_re(patterns.item_label, patterns.category_label)
    lines = _lines(text)
    items: List[RankedItem] = []
    idx = 0
    while idx < len(lines):
        match = rx.match(lines[idx])
        if not match:
            idx += 1
            continue
        end = idx + 1
        while end < len(lines) and not rx.match(lines[end]) and not _is_heading(lines[end]):
            end += 1
        block = "\n".join(lines[idx:end]).rstrip()
        category = match.group("category")
        items.append(
            RankedItem(
                title=match.group("title").strip(),
                # Verbatim: allow-list validation is exact string match.
                category=category if category else None,
                raw_block=block,
            )
        )
        idx = end
    return items


def match_categories(text: str | None, patterns: DocumentPatterns) -> List[str]:
    """Flat list of category tags on ranked-entry lines, in document order."""
    rx = _item_line_re(patterns.item_label, patterns.category_label)
    categories: List[str] = []
    for line in _lines(text):
        match = rx.match(line)
        if match and match.group("category"):
            categories.append(match.group("category"))
    return categories


def match_resolution(text: str | None, patterns: DocumentPatterns) -> Optional[ResolutionStatement]:
    """The first "Previously -> Now -> Update" line, if any."""
    match = _resolution_re(patterns.resolution_marker).search(text or "")
    if not match:
        return None
    return ResolutionStatement(
        previous_state=match.group("previous").strip(),
        current_state=match.group("now").strip(),
        updated_plan=match.group("update").strip(),
    )


def count_resolution_markers(text: str | None, patterns: DocumentPatterns) -> int:
    return len(_marker_re(patterns.resolution_marker).findall(text or ""))


def match_highlights(text: str | None, patterns: DocumentPatterns) -> List[str]:
    """List lines of the highlights section, markers stripped."""
    wanted = patterns.highlights_heading.strip().lower()
    if not wanted:
        return []
    highlights: List[str] = []
    in_section = False
    for line in _lines(text):
        heading = _HEADING_RE.match(line)
        if heading:
            if in_section:
                break
            in_section = wanted in heading.group("title").lower()
            continue
        if not in_section:
            continue
        if not _LIST_MARKER_RE.match(line):
            continue
        value = _LIST_MARKER_RE.sub("", line, count=1).strip()
        if value:
            highlights.append(value)
    return highlights


def _fold_heading(value: str) -> str:
    return value.replace("\u2019", "'").replace("\u2018", "'").strip().lower()


def count_heading(text: str | None, heading: str) -> int:
    """How many markdown heading lines contain the given heading text (straight and curly apostrophes match)."""
    wanted = _fold_heading(heading or "")
    if not wanted:
        return 0
    count = 0
    for line in _lines(text):
        match = _HEADING_RE.match(line)
        if match and wanted in _fold_heading(match.group("title")):
            count += 1
    return count


Matcher = Callable[[str, DocumentPatterns], object]

# Field name on GenerationAttempt -> matcher. Order is only the evaluation
# order; matchers do not depend on each other.
MATCHERS: Sequence[Tuple[str, Matcher]] = (
    ("items", match_items),
    ("resolution", match_resolution),
    ("resolution_marker_count", count_resolution_markers),
    ("highlights", match_highlights),
    ("categories", match_categories),
)


def extract(
    document_text: str | None,
    expected_item_count: int,
    allowed_categories: Sequence[str] | None,
    patterns: DocumentPatterns | None = None,
) -> GenerationAttempt:
    """
    Run every matcher over the raw text and collect the results.

    expected_item_count and allowed_categories are not enforced here; they are
    only logged so a mismatch is visible next to the extraction line.
    """
    active = patterns or DocumentPatterns()
    text = document_text or ""
    fields = {}
    for name, matcher in MATCHERS:
        value = matcher(text, active)
        fields[name] = tuple(value) if isinstance(value, list) else value

    logger.debug(
        "extract.done items=%s expected=%s categories=%s allowed=%s markers=%s highlights=%s",
        len(fields["items"]),
        expected_item_count,
        len(fields["categories"]),
        "any" if allowed_categories is None else len(allowed_categories),
        fields["resolution_marker_count"],
        len(fields["highlights"]),
    )
    return GenerationAttempt(raw_text=text, **fields)
