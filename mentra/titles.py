"""Short human-readable session titles."""

DEFAULT_TITLE = "New Chat"

#: Maximum length of a title derived from free text.
TITLE_LIMIT: int = 40

#: Characters of the deep-dive overview kept in its title.
DEEP_DIVE_PREFIX: int = 30


def should_title(turn_count: int) -> bool:
    """Titles are only assigned on the first exchange of a session."""
    return turn_count <= 2


def make_title(text: str, limit: int = TITLE_LIMIT) -> str:
    """Return the first line of *text*, whitespace-collapsed and truncated."""
    first_line = next((ln for ln in (text or "").splitlines() if ln.strip()), "")
    title = " ".join(first_line.split())
    if not title:
        return DEFAULT_TITLE
    if len(title) > limit:
        title = title[:limit].rstrip() + "…"
    return title


def concept_title(topic: str) -> str:
    return f"Concept: {topic.strip()}"


def deep_dive_title(overview: str) -> str:
    return f"Deep Dive: {(overview or '')[:DEEP_DIVE_PREFIX]}..."
