from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

PLACEHOLDER_RE = re.compile(r"<<([A-Z_]+)>>")


@dataclass(frozen=True)
class PromptSet:
    """The prompt texts the assistant needs, read once at startup."""
    system_preamble: str
    order_extraction: str
    translation: str


def load_prompt(prompt_path: Path) -> str:
    """Read one prompt file as UTF-8, dropping a BOM and surrounding whitespace.

    Undecodable bytes are ignored rather than failing startup; a missing file
    raises FileNotFoundError.
    """
    try:
        text = prompt_path.read_text(encoding="utf-8")
    except UnicodeDecodeError:
        text = prompt_path.read_bytes().decode("utf-8", errors="ignore")
    return text.lstrip("\ufeff").strip()


def load_prompts(prompts_dir: Path) -> PromptSet:
    """Purpose: Load every prompt the dispatcher and extractor use.
    Inputs/Outputs: Input is the prompts directory; output is a PromptSet.
    Side Effects / State: Reads three files from disk.
    Dependencies: load_prompt.
    Failure Modes: Any missing prompt file raises FileNotFoundError at startup.
    If Removed: The preamble, extraction and translation prompts must be wired by hand.
    Testing Notes: The packaged directory must load with non-empty texts.
    """
    return PromptSet(
        system_preamble=load_prompt(prompts_dir / "system_preamble.txt"),
        order_extraction=load_prompt(prompts_dir / "order_extraction.txt"),
        translation=load_prompt(prompts_dir / "translation.txt"),
    )


def render_prompt(template: str, **values: str) -> str:
    """Fill ``<<NAME>>`` placeholders from keyword arguments; unknown names are left as is."""
    return PLACEHOLDER_RE.sub(lambda match: values.get(match.group(1).lower(), match.group(0)), template)
