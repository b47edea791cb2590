"""Short human labels for process command lines."""

import re

# Checked in order; the first pattern that matches wins.
LABEL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(
        r"\b(next|nuxt|vite|webpack|nodemon|ts-node|node|npm|yarn|pnpm|bun|deno"
        r"|python|uvicorn|gunicorn|flask|django)\b",
        re.IGNORECASE,
    ),
    re.compile(r"\b(react|vue|angular|svelte|gatsby|remix|astro)\b", re.IGNORECASE),
    re.compile(r"\b(express|fastify|koa|hapi|nest|strapi)\b", re.IGNORECASE),
    re.compile(r"\b(dev|start|serve|watch|run)\b", re.IGNORECASE),
)

CONTEXT_BEFORE = 20
CONTEXT_AFTER = 30
MAX_LABEL_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")


def extract_label(full_command: str) -> str:
    """
    Reduce a full command line to a short label.

    The first matching keyword pattern yields a window of context around the
    match; otherwise the first three tokens of the command line are used.
    """
    if not full_command:
        return ""

    for pattern in LABEL_PATTERNS:
        match = pattern.search(full_command)
        if match:
            start = max(0, match.start() - CONTEXT_BEFORE)
            end = min(len(full_command), match.end() + CONTEXT_AFTER)
            return _WHITESPACE.sub(" ", full_command[start:end]).strip()

    tokens = full_command.split()
    return " ".join(tokens[:3])[:MAX_LABEL_LENGTH]
