from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

BASE_DIR = Path(__file__).resolve().parent


@dataclass(frozen=True)
class Settings:
    """Configuration container for the text backend, stores, and session limits."""
    gemini_api_key: str
    gemini_model: str
    llm_timeout_sec: float
    orders_path: Optional[Path]
    prompts_dir: Path
    guides_path: Path
    history_window: int
    max_session_turns: int
    session_ttl_sec: float
    session_reap_interval_sec: float
    order_amount: float
    order_expense: float
    late_penalty: float
    default_lang: str


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Non-numeric values for numeric keys raise ValueError.
    If Removed: App cannot configure the backend, stores, or limits and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # An empty ORDERS_PATH keeps orders in memory only.
    orders_path = os.getenv("ORDERS_PATH", str(BASE_DIR / "data" / "orders.json"))

    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        llm_timeout_sec=float(os.getenv("LLM_TIMEOUT_SEC", "20")),
        orders_path=Path(orders_path) if orders_path else None,
        prompts_dir=(BASE_DIR / "prompts").resolve(),
        guides_path=Path(os.getenv("GUIDES_PATH") or (BASE_DIR / "resources" / "guides.json")),
        history_window=int(os.getenv("HISTORY_WINDOW", "8")),
        max_session_turns=int(os.getenv("MAX_SESSION_TURNS", "50")),
        session_ttl_sec=float(os.getenv("SESSION_TTL_SEC", str(60 * 60))),
        session_reap_interval_sec=float(os.getenv("SESSION_REAP_INTERVAL_SEC", "300")),
        order_amount=float(os.getenv("ORDER_AMOUNT", "200")),
        order_expense=float(os.getenv("ORDER_EXPENSE", "50")),
        late_penalty=float(os.getenv("LATE_PENALTY", "50")),
        default_lang=os.getenv("DEFAULT_LANG", "en").strip().lower() or "en",
    )
