from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import google.generativeai as genai

try:  # Prefer typed enums when available
    from google.generativeai import types as genai_types

    DEFAULT_SAFETY_SETTINGS = [
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
        {
            "category": genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
            "threshold": genai_types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
        },
    ]
except Exception:  # pragma: no cover - fallback for older SDKs
    DEFAULT_SAFETY_SETTINGS = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_ONLY_HIGH"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_ONLY_HIGH"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_ONLY_HIGH"},
    ]

from .config import Settings
from .llm import BackendUnavailableError, Message

ROLE_MAP = {"user": "user", "assistant": "model", "function": "user"}


class GeminiClient:
    """Gemini adapter implementing the ``complete(messages, temperature)`` capability."""

    def __init__(self, settings: Settings) -> None:
        """Configure the SDK with the API key; raises ValueError when the key or model is unset."""
        if not settings.gemini_api_key:
            raise ValueError("GEMINI_API_KEY is required")
        genai.configure(api_key=settings.gemini_api_key)
        self._timeout = settings.llm_timeout_sec
        self._models: Dict[Tuple[str, str], genai.GenerativeModel] = {}
        self._default_model = _normalize_model_name(settings.gemini_model)
        if not self._default_model:
            raise ValueError("Gemini model name is required")

    def complete(
        self,
        messages: Sequence[Message],
        temperature: float = 0.2,
        model: Optional[str] = None,
        max_output_tokens: int = 1024,
    ) -> str:
        """Purpose: Generate a reply for an ordered list of role-tagged messages.
        Inputs/Outputs: Input is messages [{role, content}] and temperature; returns text.
        Side Effects / State: Blocking network call; may add a model to the cache.
        Dependencies: Uses genai.GenerativeModel.generate_content with request timeout.
        Failure Modes: SDK and network errors are re-raised as BackendUnavailableError;
            blocked or empty candidates also raise it.
        If Removed: No caller can reach the generative backend.
        Testing Notes: Check role mapping with _to_contents; live calls need a key.
        """
        # System turns become the system instruction; the rest become chat contents.
        system_instruction, contents = _to_contents(messages)
        if not contents:
            raise BackendUnavailableError("no user content to send")
        model_name = _normalize_model_name(model) if model else self._default_model
        try:
            response = self._model(model_name, system_instruction).generate_content(
                contents,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_output_tokens,
                },
                safety_settings=DEFAULT_SAFETY_SETTINGS,
                request_options={"timeout": self._timeout},
            )
            text: Optional[str] = response.text
        except Exception as exc:
            raise BackendUnavailableError(str(exc)) from exc
        return (text or "").strip()

    def _model(self, model_name: str, system_instruction: str) -> genai.GenerativeModel:
        key = (model_name, system_instruction)
        if key not in self._models:
            self._models[key] = genai.GenerativeModel(
                model_name,
                system_instruction=system_instruction or None,
            )
        return self._models[key]


def _normalize_model_name(name: Optional[str]) -> str:
    """Accept both "gemini-x" and the SDK's "models/gemini-x" spelling; falsy input gives ""."""
    if not name:
        return ""
    cleaned = name.strip()
    if cleaned.startswith("models/"):
        return cleaned.split("/", 1)[1]
    return cleaned


def _to_contents(messages: Sequence[Message]) -> Tuple[str, List[dict]]:
    """Purpose: Convert role-tagged messages into Gemini system text and contents.
    Inputs/Outputs: Input is a message list; output is (system_instruction, contents).
    Side Effects / State: None.
    Dependencies: Uses ROLE_MAP; called by GeminiClient.complete.
    Failure Modes: Blank messages are skipped; unknown roles are sent as user turns.
    If Removed: Chat history cannot be forwarded with the right speaker roles.
    Testing Notes: Verify assistant maps to model and function turns carry their name.
    """
    # Gemini has no system or function role, so fold them into instruction and user text.
    system_parts: List[str] = []
    contents: List[dict] = []
    for message in messages:
        role = message.get("role", "user")
        text = (message.get("content") or "").strip()
        if not text:
            continue
        if role == "system":
            system_parts.append(text)
            continue
        if role == "function":
            text = f"[{message.get('name') or 'fn'}] {text}"
        contents.append({"role": ROLE_MAP.get(role, "user"), "parts": [{"text": text}]})
    return "\n\n".join(system_parts), contents
