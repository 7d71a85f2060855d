"""Heuristic fact extraction from a single user utterance.

Three fixed patterns, each checked independently. Anything phrased
differently is simply missed; there is no language understanding here.
"""

import re

NAME_PATTERN = re.compile(r"\bmy name is\s+([A-Za-z\-\s]{2,40})", re.IGNORECASE)
LIKE_PATTERN = re.compile(
    r"\bi (?:really )?(?:like|love)\s+([^.!?]+)", re.IGNORECASE
)
DISLIKE_PATTERN = re.compile(r"\bi (?:really )?dislike\s+([^.!?]+)", re.IGNORECASE)

RULES = (
    (NAME_PATTERN, "User name is {}"),
    (LIKE_PATTERN, "User likes {}"),
    (DISLIKE_PATTERN, "User dislikes {}"),
)


def extract_facts(text: str) -> list[str]:
    """Return zero or more fact statements, one per matching rule."""
    facts = []
    for pattern, template in RULES:
        m = pattern.search(text or "")
        if not m:
            continue
        captured = m.group(1).strip()
        if captured:
            facts.append(template.format(captured))
    return facts
