from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol

logger = logging.getLogger("saathi.speech")

SPEAK_DELAY_SEC = 0.1


@dataclass(frozen=True)
class UtteranceConfig:
    """Voice settings handed to the synthesizer with every reply."""
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0
    locale: str = "en-IN"


class SpeechSynthesizer(Protocol):
    def cancel(self) -> None:
        ...

    def speak(self, text: str, config: UtteranceConfig) -> None:
        ...


class SpeechRelay:
    """Speaks replies one at a time on top of an external synthesizer."""

    def __init__(
        self,
        synthesizer: SpeechSynthesizer,
        config: UtteranceConfig = UtteranceConfig(),
        delay_sec: float = SPEAK_DELAY_SEC,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._synthesizer = synthesizer
        self._config = config
        self._delay = delay_sec
        self._sleep = sleep

    def speak(self, text: str) -> None:
        """Purpose: Speak a reply without overlapping the previous one.
        Inputs/Outputs: Input is the reply text; no return value.
        Side Effects / State: Cancels in-flight audio, waits, then starts new audio.
        Dependencies: SpeechSynthesizer.cancel/speak.
        Failure Modes: Blank text is skipped; synthesizer errors propagate.
        If Removed: Replies are shown but never heard.
        Testing Notes: A recording fake must see cancel before speak, every time.
        """
        # Engines that are stopped and restarted immediately can drop the new utterance.
        if not text or not text.strip():
            return
        self._synthesizer.cancel()
        if self._delay > 0:
            self._sleep(self._delay)
        logger.debug("speech op=speak chars=%s locale=%s", len(text), self._config.locale)
        self._synthesizer.speak(text, self._config)
