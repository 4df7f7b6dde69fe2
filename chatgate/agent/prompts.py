"""Prompt composition for the agents and query extraction from their replies."""

import re

QUERY_INSTRUCTION = "\n instructions: generate sql query only for above prompt"
DEFECT_SECTIONS = ("Matching Defect", "Root Cause", "Resolution")

_FENCE_RE = re.compile(r"```sql|```", re.IGNORECASE)


def query_prompt(user_text: str) -> str:
    return user_text + QUERY_INSTRUCTION


def defect_prompt(user_text: str) -> str:
    """Ask the defect agent to answer under fixed section headers."""
    return (
        user_text
        + "\n\nProvide response with following headers each with different paragraphs: "
        + ", ".join(DEFECT_SECTIONS)
    )


def extract_query(agent_reply: str) -> str:
    """
    Pull the query out of a free-text agent reply: drop code fences, start at the
    first SELECT and stop at the first semicolon. Replies without a SELECT are
    returned cleaned but otherwise untouched.
    """
    cleaned = _FENCE_RE.sub("", agent_reply or "").strip()
    start = cleaned.lower().find("select")
    if start == -1:
        return cleaned
    return cleaned[start:].split(";")[0].strip()
