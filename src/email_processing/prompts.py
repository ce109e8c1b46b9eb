"""
Prompt construction for email enrichment.

Prompts carry the owner's configured categories so the model chooses among
valid names only, ask for a strict JSON shape, and forbid prose around it.
"""

from typing import List, Sequence

from src.email_processing.models import CategoryDefinition, DEFAULT_CATEGORY, EmailRecord

_RESULT_SHAPE = """{
  "summary": "2-3 sentence summary of the email",
  "category": "exactly one internal category name from the list",
  "priority": "urgent | high | medium | low",
  "sentiment": "positive | negative | neutral",
  "actionItems": ["action item or next step"]
}"""

_JSON_ONLY_RULES = """OUTPUT RULES:
- Respond with the JSON only. Do not write any text before or after it.
- Do not wrap the JSON in markdown code fences.
- Use double quotes for every key and string value.
- "priority" must be exactly one of: urgent, high, medium, low.
- "sentiment" must be exactly one of: positive, negative, neutral.
- "actionItems" must be an array of strings (use [] when there are none)."""


def _category_section(categories: Sequence[CategoryDefinition]) -> str:
    if not categories:
        return f'Available Categories: none configured, use "{DEFAULT_CATEGORY}".'

    lines = []
    for category in categories:
        details = category.name
        if category.label:
            details += f" ({category.label})"
        if category.description:
            details += f": {category.description}"
        lines.append(f"- {details}")

    names = ", ".join(category.name for category in categories)
    return (
        "Available Categories (choose the most appropriate one):\n"
        + "\n".join(lines)
        + f"\n\nCATEGORIZATION RULES:\n"
        f"- The category must be exactly one of these internal names: {names}.\n"
        "- Use the internal name, not the display label.\n"
        "- Check the sender (From) first: sender-specific categories take priority "
        "over general content-based ones.\n"
        "- If nothing matches clearly, choose the closest category by its description."
    )


def _email_block(email: EmailRecord, content: str) -> str:
    return (
        f"Subject: {email.subject}\n"
        f"From: {email.sender}\n"
        f"To: {email.recipients}\n"
        f"Content: {content or '(no content)'}"
    )


def build_single_prompt(
    email: EmailRecord,
    categories: Sequence[CategoryDefinition],
    content: str,
) -> str:
    """Prompt asking for one JSON object describing one email."""
    return f"""Analyze this email and provide insights.

Email Details:
{_email_block(email, content)}

{_category_section(categories)}

Respond with a single JSON object of this shape:
{_RESULT_SHAPE}

{_JSON_ONLY_RULES}"""


def build_batch_prompt(
    emails: Sequence[EmailRecord],
    categories: Sequence[CategoryDefinition],
    contents: List[str],
) -> str:
    """Prompt asking for a JSON array with one object per email, in input order."""
    blocks = "\n\n".join(
        f"Email {index}:\n{_email_block(email, content)}"
        for index, (email, content) in enumerate(zip(emails, contents), start=1)
    )
    count = len(emails)
    return f"""Analyze these {count} emails and provide insights for each one.

{blocks}

{_category_section(categories)}

Respond with a JSON array containing exactly {count} objects, one per email and in the
same order as the emails above. Each object must include an "index" field holding the
email number (1 to {count}) and otherwise follow this shape:
{_RESULT_SHAPE}

{_JSON_ONLY_RULES}"""
