"""Token-budgeted review prompt construction.

The prompt asks for one JSON object with an exact field schema. The parser
rejects anything else, so the enum values listed here and the ones in
codegrade_core.models must stay in sync.
"""

from __future__ import annotations

from codegrade_core.models import CATEGORIES, GRADES, SEVERITIES

# Per-family input budget in characters. Hosted OpenAI and local models run
# under tight per-minute token ceilings; Gemini and Anthropic accept far more.
INPUT_CHAR_BUDGETS = {
    "openai": 3500,
    "local": 3500,
    "gemini": 8000,
    "anthropic": 8000,
}
_DEFAULT_BUDGET = 3500


def truncate_source(source_text: str, family: str) -> str:
    """Prefix-cut source_text to the family's budget. Deterministic by construction."""
    budget = INPUT_CHAR_BUDGETS.get(family, _DEFAULT_BUDGET)
    return source_text[:budget]


def build_prompt(source_text: str, filename: str, context: str | None = None, family: str = "openai") -> str:
    code = truncate_source(source_text, family)
    context_line = f"Context: {context}\n" if context else ""
    return f"""Analyze this code. Return ONLY one valid JSON object, no markdown, no prose.

{context_line}File: {filename}

```
{code}
```

Return JSON with exactly this shape:
{{
  "summary": {{
    "overallScore": <0-100>,
    "grade": "<{'|'.join(GRADES)}>",
    "totalIssues": <n, must equal the length of issues>,
    "criticalCount": <n>,
    "highCount": <n>,
    "mediumCount": <n>,
    "lowCount": <n>,
    "infoCount": <n>
  }},
  "issues": [
    {{
      "id": "<unique-id>",
      "severity": "<{'|'.join(SEVERITIES)}>",
      "category": "<{'|'.join(CATEGORIES)}>",
      "title": "<short>",
      "description": "<details>",
      "lineNumber": <line number in the file above, or null>,
      "codeSnippet": "<code or null>",
      "suggestion": "<fix>",
      "impact": "<why it matters>"
    }}
  ],
  "metrics": {{
    "complexity": <1-10>,
    "maintainability": <0-100>,
    "readability": <0-100>,
    "testability": <0-100>,
    "security": <0-100>
  }},
  "strengths": ["<s1>", "<s2>"],
  "recommendations": ["<r1>", "<r2>"]
}}

The five severity counts must add up to totalIssues.
Hardcoded secrets, injection and unsafe deserialization are category "security"."""
