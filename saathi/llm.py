"""Text-generation capability shared by extraction, translation, and open chat.

Every caller talks to a backend through ``complete(messages, temperature)`` and
goes through :func:`safe_complete`, so backend failures are logged and degraded in
one place instead of at every call site.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Protocol, Sequence

logger = logging.getLogger("saathi.llm")

Message = Dict[str, str]


class BackendUnavailableError(RuntimeError):
    """Raised when the text backend is unconfigured, unreachable, or returns nothing usable."""


class TextBackend(Protocol):
    def complete(self, messages: Sequence[Message], temperature: float) -> str:
        ...


def build_messages(system: str, turns: Sequence[Message]) -> List[Message]:
    """Prefix role-tagged turns with a single system message."""
    messages: List[Message] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.extend(dict(turn) for turn in turns)
    return messages


def safe_complete(
    backend: Optional[TextBackend],
    messages: Sequence[Message],
    temperature: float,
    purpose: str,
) -> Optional[str]:
    """Purpose: Call the text backend and convert every failure into None.
    Inputs/Outputs: Inputs are an optional backend, messages, temperature, and a
        purpose label for logs; output is stripped text or None.
    Side Effects / State: Performs a blocking network call; logs failures.
    Dependencies: Any object implementing TextBackend.complete.
    Failure Modes: Missing backend, raised exceptions, and blank output return None.
    If Removed: Backend errors propagate into the dispatcher and break replies.
    Testing Notes: Pass None, a raising fake, and a blank fake; all must return None.
    """
    if backend is None:
        logger.info("llm purpose=%s route=unconfigured", purpose)
        return None
    try:
        text = backend.complete(messages, temperature=temperature)
    except Exception as exc:
        logger.warning("llm purpose=%s route=error error=%s", purpose, exc)
        return None
    text = (text or "").strip()
    if not text:
        logger.warning("llm purpose=%s route=empty", purpose)
        return None
    return text
