"""Conversation assembly and retry feedback for brief generation."""

from __future__ import annotations

from typing import Dict, List, Mapping, Sequence

from delta_brief.config import DocumentPatterns
from delta_brief.gates import NOVELTY_VIOLATION


DEFAULT_SYSTEM_PROMPT = (
    "You are an executive-grade assistant. The reader is time-poor and wants this week's learning "
    "converted into immediate leverage at work.\n"
    "Non-negotiables:\n"
    "- Follow the exact template you are given. Nothing outside it.\n"
    "- Produce exactly {item_count} ranked {item_label_lower}s specific to the reader's organization.\n"
    "- Do not repeat the previous brief's {item_label_lower}s unless something materially changed.\n"
    "- No filler. If information is missing, state a minimal assumption as 'Assumption: ...'."
)

DEFAULT_USER_PROMPT_TEMPLATE = (
    "Write the brief for: {topic}\n"
    "\n"
    "{context}\n"
    "\n"
    "Rank exactly {item_count} entries, one line each, in this shape:\n"
    "1) {item_label}: <7-12 words> ({category_label}: <name>)\n"
    "{category_hint}"
    "If a thread from the previous brief is resolved, add exactly one line:\n"
    "- {resolution_marker}: Previously: <old plan> -> Now: <new plan> -> Update: <resolution>\n"
    "\n"
    "End with a '## {highlights_heading}' section listing the facts you used as short bullets."
)

NO_CONTEXT = "No additional context provided."


def _render_context(context: Mapping[str, str] | None) -> str:
    if not context:
        return NO_CONTEXT
    blocks = []
    for label, body in context.items():
        text = (body or "").strip() or "NOT AVAILABLE"
        blocks.append(f"{label}:\n{text}")
    return "\n\n".join(blocks)


def _template_values(
    topic: str,
    context: Mapping[str, str] | None,
    expected_item_count: int,
    allowed_categories: Sequence[str] | None,
    patterns: DocumentPatterns,
) -> Dict[str, str]:
    category_hint = ""
    if allowed_categories:
        category_hint = f"Allowed {patterns.category_label} values: {', '.join(allowed_categories)}.\n"
    return {
        "topic": topic,
        "context": _render_context(context),
        "item_count": str(expected_item_count),
        "item_label": patterns.item_label,
        "item_label_lower": patterns.item_label.lower(),
        "category_label": patterns.category_label,
        "category_hint": category_hint,
        "resolution_marker": patterns.resolution_marker,
        "highlights_heading": patterns.highlights_heading,
    }


class _KeepMissing(dict):
    # Custom templates may use only some placeholders or contain literal braces
    # for other purposes; unknown keys are left untouched.
    def __missing__(self, key):
        return "{" + key + "}"


def render(template: str, values: Mapping[str, str]) -> str:
    return template.format_map(_KeepMissing(values))


def build_conversation(
    topic: str,
    context: Mapping[str, str] | None,
    expected_item_count: int,
    allowed_categories: Sequence[str] | None,
    patterns: DocumentPatterns,
    system_prompt: str | None = None,
    user_prompt_template: str | None = None,
) -> List[Dict[str, str]]:
    values = _template_values(topic, context, expected_item_count, allowed_categories, patterns)
    return [
        {"role": "system", "content": render(system_prompt or DEFAULT_SYSTEM_PROMPT, values)},
        {"role": "user", "content": render(user_prompt_template or DEFAULT_USER_PROMPT_TEMPLATE, values)},
    ]


def format_feedback(errors: Sequence, prior_titles: Sequence[str] = ()) -> str:
    """
    Human-readable restatement of every gate failure for the next attempt.

    When a novelty failure is present, the previous titles are listed so the
    model knows exactly what it must not paraphrase.
    """
    lines = ["Your previous answer failed validation:"]
    for error in errors:
        lines.append(f"- {error.describe()}")

    if prior_titles and any(getattr(e, "code", "") == NOVELTY_VIOLATION for e in errors):
        lines.append("")
        lines.append("Do NOT reuse or closely paraphrase these previous titles:")
        lines.extend(f"- {title}" for title in prior_titles)
        lines.append("If you return to an earlier theme, change the angle and state what changed.")

    lines.append("")
    lines.append("Rewrite the full brief in the same template, fixing every problem above.")
    return "\n".join(lines)
