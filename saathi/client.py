"""In-process voice client.

Mirrors what the partner app does around the assistant: reminders are caught
before anything reaches the server and kept only for the life of the client,
explicit order edits and deletes go to their dedicated dispatcher operations,
and every reply is spoken after the previous one is cut off.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import List, Optional

from .dispatcher import ActionDispatcher, DispatchResult
from .speech import SpeechRelay
from .utils import normalize_text

logger = logging.getLogger("saathi.client")

REMINDER_RE = re.compile(
    r"(?:remind(?: me)?|reminder|schedule|pickup).*?(\d{1,2}(?::\d{2})?\s?(?:am|pm))",
    re.IGNORECASE,
)
EDIT_RE = re.compile(r"\b(update|modify|change)\b")
DELETE_RE = re.compile(r"\bdelete\b")
ADDRESS_RE = re.compile(r"\baddress\b")


@dataclass(frozen=True)
class Reminder:
    time: str
    text: str


def parse_reminder(text: str) -> Optional[Reminder]:
    match = REMINDER_RE.search(text)
    if not match:
        return None
    return Reminder(time=match.group(1).strip(), text=text)


class VoiceClient:
    """One partner's client session: reminders, routing shortcuts, and speech."""

    def __init__(
        self,
        dispatcher: ActionDispatcher,
        user_id: str = "demo-user",
        speech: Optional[SpeechRelay] = None,
        lang: Optional[str] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._user_id = user_id
        self._speech = speech
        self._lang = lang
        self._reminders: List[Reminder] = []

    @property
    def reminders(self) -> List[Reminder]:
        return list(self._reminders)

    def send(self, text: str) -> Optional[DispatchResult]:
        """Purpose: Route one utterance the way the partner app does and speak the reply.
        Inputs/Outputs: Input is the utterance; output is the DispatchResult, or None
            for blank input.
        Side Effects / State: May add a reminder; calls the dispatcher; speaks the reply.
        Dependencies: ActionDispatcher.handle/edit_order/delete_order and SpeechRelay.
        Failure Modes: Dispatcher errors propagate after nothing has been spoken.
        If Removed: Reminders and the edit/delete shortcuts are unreachable.
        Testing Notes: "remind me at 5 pm" never reaches the dispatcher.
        """
        # Address changes stay with the classifier so update_address can parse them.
        text = (text or "").strip()
        if not text:
            return None
        reminder = parse_reminder(text)
        if reminder is not None:
            self._reminders.append(reminder)
            logger.info("client user=%s op=reminder time=%s", self._user_id, reminder.time)
            result = DispatchResult(reply=f"I'll remind you at {reminder.time}.", action="reminder_set")
        else:
            normalized = normalize_text(text)
            if DELETE_RE.search(normalized):
                result = self._dispatcher.delete_order(self._user_id, text, lang=self._lang)
            elif EDIT_RE.search(normalized) and not ADDRESS_RE.search(normalized):
                result = self._dispatcher.edit_order(self._user_id, text, lang=self._lang)
            else:
                result = self._dispatcher.handle(self._user_id, text, lang=self._lang)
        if self._speech is not None:
            self._speech.speak(result.reply)
        return result
