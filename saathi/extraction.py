"""Entity extraction for order utterances.

Pattern rules cover tracking codes, address updates, and item/status edits. Order
creation fields come from the text backend when one is configured and fall back to
the verbatim utterance otherwise.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from .llm import TextBackend, safe_complete
from .models import OrderFields
from .utils import safe_json_loads

logger = logging.getLogger("saathi.extraction")

TRACKING_ID_RE = re.compile(r"ORD-([A-Za-z0-9]+)", re.IGNORECASE)
ADDRESS_CONNECTORS = ("to ", "is ", ":")
ITEM_KEYWORD_RE = re.compile(r"\b(add|remove)\b", re.IGNORECASE)
ITEM_SPLIT_RE = re.compile(r"\s*(?:,|\band\b)\s*", re.IGNORECASE)
ORDER_TAIL_RE = re.compile(r"\s+(?:to|from|in|of) (?:the |my )?order\b.*$", re.IGNORECASE)
ASSIGNEE_RE = re.compile(
    r"\bassign(?:ed)?\s+(?:it\s+)?to\s+([A-Za-z]+(?:\s+(?!and\b|add\b|remove\b)[A-Za-z]+)?)",
    re.IGNORECASE,
)
STATUS_KEYWORDS = {
    "delivered": "delivered",
    "processing": "processing",
    "shipped": "shipped",
    "late": "late",
}
STATUS_RE = re.compile(r"\b(" + "|".join(STATUS_KEYWORDS) + r")\b", re.IGNORECASE)
PICKUP_RE = re.compile(r"\bpick ?up\b", re.IGNORECASE)
ASSIGN_RE = re.compile(r"\bassign", re.IGNORECASE)


def extract_tracking_id(text: str) -> Optional[str]:
    """Return the first tracking code in ``text``; the code body is kept as written."""
    match = TRACKING_ID_RE.search(text or "")
    if not match:
        return None
    return f"ORD-{match.group(1)}"


def default_order_fields(text: str) -> OrderFields:
    return OrderFields(item=text, qty=1)


class OrderFieldExtractor:
    """Extract order creation fields, prompting the text backend when available."""

    def __init__(self, backend: Optional[TextBackend], system_prompt: str) -> None:
        self._backend = backend
        self._system_prompt = system_prompt

    def extract(self, text: str) -> OrderFields:
        """Purpose: Produce customer, address, item, qty, and pickup time for an order.
        Inputs/Outputs: Input is the utterance; output is OrderFields.
        Side Effects / State: One blocking backend request at temperature 0 when configured.
        Dependencies: Uses safe_complete and safe_json_loads.
        Failure Modes: Backend errors and unparseable replies fall back to the defaults
            (item = utterance, qty = 1, everything else null).
        If Removed: Created orders carry no structured customer/address details.
        Testing Notes: Feed a fake backend returning prose-wrapped JSON and garbage.
        """
        if self._backend is None:
            return default_order_fields(text)
        messages = [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": f'Extract order details from this user message: """{text}"""'},
        ]
        raw = safe_complete(self._backend, messages, temperature=0, purpose="order_extraction")
        parsed = safe_json_loads(raw or "")
        if parsed is None:
            if raw is not None:
                logger.warning("extraction route=unparseable raw=%s", raw[:200])
            return default_order_fields(text)
        return fields_from_payload(parsed, text)


def fields_from_payload(payload: Dict[str, Any], text: str) -> OrderFields:
    """Coerce a loosely typed model payload into OrderFields."""
    return OrderFields(
        customer_name=_clean_str(payload.get("customerName")),
        address=_clean_str(payload.get("address")),
        item=_clean_str(payload.get("item")) or text,
        qty=_parse_qty(payload.get("qty")),
        pickup_time=parse_datetime(payload.get("pickupTime")),
    )


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    cleaned = str(value).strip()
    if not cleaned or cleaned.lower() in {"null", "none", "unknown"}:
        return None
    return cleaned


def _parse_qty(value: Any) -> int:
    try:
        qty = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return 1
    return qty if qty > 0 else 1


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp, accepting a trailing ``Z``; anything else is None."""
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    cleaned = value.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(cleaned)
    except ValueError:
        return None


def parse_address_update(text: str, tracking_id: str) -> Optional[str]:
    """Purpose: Pull the new address that follows the tracking code in an utterance.
    Inputs/Outputs: Inputs are the utterance and its tracking code; output is the
        address or None when nothing follows the code.
    Side Effects / State: None; pure function.
    Dependencies: None beyond str operations.
    Failure Modes: A code absent from the text yields None.
    If Removed: update_address cannot tell an address from a bare request.
    Testing Notes: "ORD-x to Pune", "ORD-x is Pune", "ORD-x: Pune" all give "Pune".
    """
    # Connectors are stripped once each, in declaration order.
    index = text.lower().find(tracking_id.lower())
    if index == -1:
        return None
    remainder = text[index + len(tracking_id):].strip()
    for connector in ADDRESS_CONNECTORS:
        if remainder.lower().startswith(connector):
            remainder = remainder[len(connector):].strip()
    return remainder or None


def split_items(fragment: str) -> List[str]:
    fragment = TRACKING_ID_RE.sub("", fragment)
    fragment = ORDER_TAIL_RE.sub("", fragment).strip().rstrip(".!?")
    return [part.strip() for part in ITEM_SPLIT_RE.split(fragment) if part.strip()]


def parse_item_edits(text: str, existing: Sequence[str]) -> Optional[List[str]]:
    """Purpose: Apply "add ..." / "remove ..." item phrases to an item list.
    Inputs/Outputs: Inputs are the utterance and current items; output is the new
        list, or None when the utterance has no add/remove keyword.
    Side Effects / State: None; the input list is not mutated.
    Dependencies: Uses ITEM_KEYWORD_RE and split_items.
    Failure Modes: Remove only drops exact string matches.
    If Removed: Order edits cannot change the item list.
    Testing Notes: "add rice, dal and oil" appends three items; remove filters exact names.
    """
    # Each keyword owns the text up to the next keyword.
    matches = list(ITEM_KEYWORD_RE.finditer(text))
    if not matches:
        return None
    items = list(existing)
    for position, match in enumerate(matches):
        end = matches[position + 1].start() if position + 1 < len(matches) else len(text)
        names = split_items(text[match.end():end])
        if match.group(1).lower() == "add":
            items.extend(names)
        else:
            items = [item for item in items if item not in names]
    return items


def parse_order_patch(
    text: str,
    existing_items: Sequence[str],
    now: datetime,
    default_assignee: Optional[str] = None,
) -> Dict[str, Any]:
    """Purpose: Turn a free-form edit request into an order patch.
    Inputs/Outputs: Inputs are the utterance, current items, the current time, and
        the assignee used when "assign" has no name; output is a patch dict that
        may be empty.
    Side Effects / State: None; pure function.
    Dependencies: STATUS_RE, PICKUP_RE, ASSIGNEE_RE, parse_item_edits.
    Failure Modes: Unrecognized requests produce an empty patch.
    If Removed: The voice client's update flow has nothing to apply.
    Testing Notes: The last status keyword wins; "pickup" stamps the given time.
    """
    patch: Dict[str, Any] = {}
    statuses = STATUS_RE.findall(text)
    if statuses:
        patch["status"] = STATUS_KEYWORDS[statuses[-1].lower()]
    if PICKUP_RE.search(text):
        patch["pickup_time"] = now
    if ASSIGN_RE.search(text):
        match = ASSIGNEE_RE.search(text)
        assignee = match.group(1).strip() if match else default_assignee
        if assignee:
            patch["assigned_to"] = assignee
    items = parse_item_edits(text, existing_items)
    if items is not None:
        patch["items"] = items
    return patch
