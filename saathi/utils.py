import json
import re
import unicodedata
from typing import Any, Dict, Optional

_QUOTE_MAP = str.maketrans({"\u2019": "'", "\u2018": "'", "\u201c": '"', "\u201d": '"'})


def normalize_text(text: str) -> str:
    """Purpose: Normalize an utterance for stable, case-insensitive matching.
    Inputs/Outputs: Input is a raw string; output is NFC-normalized lowercase text with
        curly quotes straightened and whitespace collapsed.
    Side Effects / State: None; pure function.
    Dependencies: Uses unicodedata and regex; called by intent classification.
    Failure Modes: Returns an empty string when input is falsy.
    If Removed: Rules miss transcripts that differ only in case, quotes, or spacing.
    Testing Notes: Devanagari input must survive unchanged apart from spacing.
    """
    # Devanagari vowel signs are combining marks, so compose instead of stripping them.
    if not text:
        return ""
    composed = unicodedata.normalize("NFC", text).translate(_QUOTE_MAP)
    return re.sub(r"\s+", " ", composed.lower()).strip()


def extract_json_block(text: str) -> Optional[str]:
    """Purpose: Extract the first JSON object block from an arbitrary string.
    Inputs/Outputs: Input is a raw string; output is JSON substring or None.
    Side Effects / State: None; pure function.
    Dependencies: None beyond built-ins; used by safe_json_loads.
    Failure Modes: Returns None if braces are missing or inverted.
    If Removed: Model outputs wrapped in prose or code fences cannot be parsed.
    Testing Notes: Provide strings with extra text before/after JSON and ensure extraction.
    """
    # Locate the outermost JSON braces to extract a parseable block.
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def safe_json_loads(text: str) -> Optional[Dict[str, Any]]:
    """Purpose: Parse a JSON object from a model output string safely.
    Inputs/Outputs: Input is raw text; output is a dict or None if parsing fails.
    Side Effects / State: None; pure function.
    Dependencies: Uses extract_json_block and json.loads; called by order extraction.
    Failure Modes: Returns None on JSONDecodeError, missing block, or non-object JSON.
    If Removed: Extraction crashes on malformed model output instead of falling back.
    Testing Notes: Validate valid JSON parses and malformed JSON returns None.
    """
    # Parse only the extracted JSON block to avoid non-JSON prefixes/suffixes.
    block = extract_json_block(text)
    if not block:
        return None
    try:
        data = json.loads(block)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None


def to_base36(value: int) -> str:
    """Render a non-negative integer in lowercase base 36."""
    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    if value == 0:
        return "0"
    out = []
    while value:
        value, rem = divmod(value, 36)
        out.append(digits[rem])
    return "".join(reversed(out))
