"""Static-knowledge library backing the guide, alert, and onboarding intents.

Entries live in resources/guides.json. Each carries a short reply per language,
the steps shown to the client, and a ``kind`` that decides whether the payload is
sent as ``guide`` or ``module``.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass
class Guide:
    """One static-knowledge entry keyed by intent."""
    intent: str
    kind: str
    title: str
    replies: Dict[str, str]
    steps: List[str] = field(default_factory=list)

    def reply(self, lang: str) -> Optional[str]:
        return self.replies.get(lang)

    def payload(self) -> Dict[str, Any]:
        return {"intent": self.intent, "title": self.title, "steps": list(self.steps)}


class GuideLibrary:
    def __init__(self, path: Path) -> None:
        """Purpose: Load guide entries from the JSON resource file.
        Inputs/Outputs: Input is a Path to guides.json; no return value.
        Side Effects / State: Reads and caches every entry keyed by intent.
        Dependencies: Uses json and the Guide dataclass.
        Failure Modes: Missing file or JSON errors raise to the caller at startup;
            malformed entries without intent or English reply are skipped.
        If Removed: Static-knowledge intents have no reply text.
        Testing Notes: Load the packaged file and check every static intent is present.
        """
        # Parse entries once; the library is read-only afterwards.
        self._path = path
        data = json.loads(path.read_bytes().decode("utf-8-sig"))
        entries = data.get("guides", []) if isinstance(data, dict) else data
        self._guides: Dict[str, Guide] = {}
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            intent = str(entry.get("intent") or "").strip()
            replies = entry.get("reply") or {}
            if not intent or not isinstance(replies, dict) or not replies.get("en"):
                continue
            self._guides[intent] = Guide(
                intent=intent,
                kind=str(entry.get("kind") or "guide"),
                title=str(entry.get("title") or intent),
                replies={str(k).lower(): str(v) for k, v in replies.items()},
                steps=[str(step) for step in entry.get("steps") or []],
            )

    def get(self, intent: str) -> Optional[Guide]:
        return self._guides.get(intent)

    def intents(self) -> List[str]:
        return sorted(self._guides)
