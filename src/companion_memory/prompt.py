"""System prompt assembly: persona, grounding facts, summaries, recall."""

PERSONA = (
    "You are a warm, concise, emotionally intelligent AI companion. "
    "Match tone. Ask short follow-ups occasionally."
)
DELIMITER = " | "


def _section(label: str, texts: list[str]) -> str:
    return f"{label}: {DELIMITER.join(texts)}" if texts else ""


def build_system_prompt(
    facts: list[str],
    summaries: list[str],
    recalled: list[str],
    persona: str = PERSONA,
) -> str:
    """Join the non-empty sections with newlines, persona always first."""
    lines = [
        persona,
        _section("Known user facts", facts),
        _section("Session summaries", summaries),
        _section("Relevant memories", recalled),
    ]
    return "\n".join(line for line in lines if line)
