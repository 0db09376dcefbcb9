"""Provider output → validated StructuredReview, or a markdown fallback.

parse_review never raises. A response that is not exactly the requested
JSON shape is kept as markdown rather than repaired: guessing at a broken
object would produce scores nobody asked the model for.
"""

from __future__ import annotations

import json
import logging
import math
import re

from codegrade_core.models import CATEGORIES, GRADES, SEVERITIES, ReviewOutcome, StructuredReview

logger = logging.getLogger(__name__)

_COUNT_FIELDS = ("criticalCount", "highCount", "mediumCount", "lowCount", "infoCount")
NO_CONTENT_MARKDOWN = "# Code Review\n\nNo content generated."


def strip_code_fence(raw: str) -> str:
    # Only the outer ```json fence; backticks inside string values stay.
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip(), flags=re.IGNORECASE)
    return re.sub(r"\s*```$", "", cleaned.strip())


def _is_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        # json.loads accepts NaN, Infinity and integers too wide for a float.
        return math.isfinite(value)
    except OverflowError:
        return False


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validation_errors(payload) -> list[str]:
    """Return every structural problem with payload; empty means valid."""
    if not isinstance(payload, dict):
        return ["top level is not an object"]
    errors = []
    summary = payload.get("summary")
    issues = payload.get("issues")
    metrics = payload.get("metrics")

    if not isinstance(summary, dict):
        errors.append("summary missing")
    else:
        if not _is_number(summary.get("overallScore")):
            errors.append("summary.overallScore is not numeric")
        if not isinstance(summary.get("grade"), str):
            errors.append("summary.grade is not a string")
        elif summary["grade"] not in GRADES:
            errors.append(f"summary.grade {summary['grade']!r} is not a known grade")
        if not _is_int(summary.get("totalIssues")):
            errors.append("summary.totalIssues is not an integer")

    if not isinstance(issues, list):
        errors.append("issues is not a list")
    else:
        for n, issue in enumerate(issues):
            if not isinstance(issue, dict):
                errors.append(f"issues[{n}] is not an object")
                continue
            if issue.get("severity") not in SEVERITIES:
                errors.append(f"issues[{n}].severity {issue.get('severity')!r} is invalid")
            if issue.get("category") not in CATEGORIES:
                errors.append(f"issues[{n}].category {issue.get('category')!r} is invalid")
            line = issue.get("lineNumber")
            if line is not None and not (_is_int(line) and line > 0):
                errors.append(f"issues[{n}].lineNumber {line!r} is not a positive integer")

    if not isinstance(metrics, dict) or not _is_number(metrics.get("security")):
        errors.append("metrics.security is not numeric")

    for name in ("strengths", "recommendations"):
        if payload.get(name) is not None and not isinstance(payload.get(name), list):
            errors.append(f"{name} is not a list")

    if errors:
        return errors

    total = summary["totalIssues"]
    if total != len(issues):
        errors.append(f"summary.totalIssues={total} but {len(issues)} issue(s) listed")
    counts = [summary.get(name) or 0 for name in _COUNT_FIELDS]
    if not all(_is_int(c) for c in counts):
        errors.append("severity counts are not integers")
    elif sum(counts) != total:
        errors.append(f"severity counts sum to {sum(counts)}, expected {total}")
    return errors


def render_markdown(review: StructuredReview) -> str:
    """Render the canonical markdown report for a structured review.

    Pure function of its input: the same review always renders to the same text.
    """
    summary, metrics = review.summary, review.metrics
    lines = [
        "# Code Review Summary",
        "",
        f"**Grade:** {summary.grade} ({summary.overall_score}/100)",
        f"**Total Issues:** {summary.total_issues}",
        "",
        "## Metrics",
        "",
        "| Metric | Score |",
        "|--------|-------|",
        f"| Complexity | {metrics.complexity}/10 |",
        f"| Maintainability | {metrics.maintainability}/100 |",
        f"| Readability | {metrics.readability}/100 |",
        f"| Testability | {metrics.testability}/100 |",
        f"| Security | {metrics.security}/100 |",
        "",
    ]

    if review.issues:
        lines += ["## Issues", ""]
        for severity in SEVERITIES:
            group = [i for i in review.issues if i.severity == severity]
            if not group:
                continue
            lines += [f"### {severity.upper()}", ""]
            for issue in group:
                where = f" (line {issue.line_number})" if issue.line_number else ""
                lines.append(f"**{issue.title}** ({issue.category}){where}")
                lines.append(issue.description)
                if issue.suggestion:
                    lines.append(f"> Suggestion: {issue.suggestion}")
                lines.append("")

    if review.strengths:
        lines += ["## Strengths", ""]
        lines += [f"- {s}" for s in review.strengths]
        lines.append("")

    if review.recommendations:
        lines += ["## Recommendations", ""]
        lines += [f"- {r}" for r in review.recommendations]
        lines.append("")

    return "\n".join(lines).rstrip() + "\n"


def _fallback_markdown(text: str) -> str:
    if not text.strip():
        return NO_CONTENT_MARKDOWN
    if text.lstrip().startswith(("{", "[")):
        return f"# Code Review\n\nParse failed. Raw response:\n\n```json\n{text}\n```\n"
    return text


def parse_review(raw: str, provider_name: str, tokens_consumed: int | None = None) -> ReviewOutcome:
    text = strip_code_fence(raw or "")
    try:
        payload = json.loads(text)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError, oversized integer literals and runaway nesting.
        logger.warning("%s: response is not JSON (%s): %s", provider_name, e, text[:200])
        return ReviewOutcome(_fallback_markdown(text), provider_name, None, tokens_consumed)

    errors = validation_errors(payload)
    if errors:
        logger.warning("%s: response failed validation: %s", provider_name, "; ".join(errors[:5]))
        return ReviewOutcome(_fallback_markdown(text), provider_name, None, tokens_consumed)

    structured = StructuredReview.from_dict(payload)
    return ReviewOutcome(render_markdown(structured), provider_name, structured, tokens_consumed)
