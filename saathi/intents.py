"""Rule-based intent classification.

Rules are an ordered table of ``IntentRule`` entries. ``classify`` walks the table
top to bottom and returns the first intent with a matching pattern, so priority is
the table order: order creation, tracking, pickup query, listing, cancellation,
address update, then the domain topics. Nothing matching means ``general``.

A tracking code anywhere in the utterance is attached to the result whichever
intent wins.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, List, Optional, Pattern, Sequence, Tuple

from .extraction import extract_tracking_id
from .utils import normalize_text

CREATE_ORDER = "create_order"
TRACK_ORDER = "track_order"
NEXT_PICKUP = "next_pickup"
LIST_ORDERS = "list_orders"
CANCEL_ORDER = "cancel_order"
UPDATE_ADDRESS = "update_address"
ROAD_ALERT = "road_alert"
EARNINGS = "earnings"
PENALTY = "penalty"
BUSINESS_GROWTH = "business_growth"
ONBOARDING_HELP = "onboarding_help"
EMERGENCY = "emergency"
GUIDE_CHALLAN = "guide_challan"
GUIDE_DIGILOCKER = "guide_digilocker"
INSURANCE = "insurance"
CUSTOMER_SERVICE = "customer_service"
GENERAL = "general"

METRIC_INTENTS = frozenset({EARNINGS, PENALTY, BUSINESS_GROWTH})
STATIC_INTENTS = frozenset(
    {
        ROAD_ALERT,
        ONBOARDING_HELP,
        EMERGENCY,
        GUIDE_CHALLAN,
        GUIDE_DIGILOCKER,
        INSURANCE,
        CUSTOMER_SERVICE,
    }
)


@dataclass(frozen=True)
class IntentRule:
    """One row of the priority table: an intent and the patterns that trigger it."""
    intent: str
    patterns: Tuple[Pattern[str], ...]

    def matches(self, normalized: str) -> bool:
        return any(pattern.search(normalized) for pattern in self.patterns)


@dataclass(frozen=True)
class IntentResult:
    intent: str
    tracking_id: Optional[str] = None


def rule(intent: str, *patterns: str) -> IntentRule:
    """Build an IntentRule from case-insensitive regex sources, NFC-normalized like the input."""
    return IntentRule(
        intent,
        tuple(re.compile(unicodedata.normalize("NFC", p), re.IGNORECASE) for p in patterns),
    )


DEFAULT_RULES: Tuple[IntentRule, ...] = (
    rule(
        CREATE_ORDER,
        r"\bcreate (an |a |new )?order\b",
        r"\bplace (an |a )?order\b",
        r"\bi want to order\b",
        r"\bnew order\b",
        r"\badd order\b",
        r"\border (banao|bana do|create karo)\b",
    ),
    rule(
        TRACK_ORDER,
        r"\btrack(ing)?\b",
        r"\bwhere is (my )?order\b",
        r"\border status\b",
        r"\bstatus of (my )?order\b",
        r"\border kahan hai\b",
    ),
    rule(
        NEXT_PICKUP,
        r"\bnext (pickup|delivery|order)\b",
        r"\bwhat(?:'s| is) my next pickup\b",
        r"\bagla pickup\b",
    ),
    rule(
        LIST_ORDERS,
        r"\blist (my )?orders\b",
        r"\bshow (me )?(my )?orders\b",
        r"\brecent orders\b",
        r"\bsabhi orders\b",
    ),
    rule(
        CANCEL_ORDER,
        r"\bcancel (the |my )?order\b",
        r"\bdelete order\b",
        r"\bcancel\b.*ord-[a-z0-9]",
        r"\border cancel\b",
    ),
    rule(
        UPDATE_ADDRESS,
        r"\b(add|update|change) (the |delivery )?address\b",
        r"\baddress (badlo|update karo)\b",
    ),
    rule(
        ROAD_ALERT,
        r"\bsadak\b",
        r"\broad (alert|block|blocked|closed|condition)\b",
        r"\btraffic jam\b",
        r"सड़क",
    ),
    rule(
        EARNINGS,
        r"\bkamaya\b",
        r"\bkamai\b",
        r"\bkharcha\b",
        r"\bearn(ed|ing|ings)?\b",
        r"\bincome\b",
        r"कमाई|कमाया",
    ),
    rule(
        PENALTY,
        r"\bpenalt(y|ies)\b",
        r"\bjurmana\b",
        r"\bdeduction\b",
    ),
    rule(
        BUSINESS_GROWTH,
        r"\bbusiness\b.*\b(behtar|better|grow|growth|badha)\b",
        r"\bpichle hafte\b",
        r"\blast week\b",
        r"\bgrowth\b",
    ),
    rule(
        ONBOARDING_HELP,
        r"\bonboarding\b",
        r"\bsign ?up\b",
        r"\bregister(ation)?\b",
    ),
    rule(
        EMERGENCY,
        r"\bsahayata\b",
        r"\bemergency\b",
        r"\baccident\b",
        r"\bsos\b",
        r"\bmadad chahiye\b",
        r"सहायता|मदद",
    ),
    rule(
        GUIDE_CHALLAN,
        r"\bchallan\b",
        r"\btraffic fine\b",
        r"चालान",
    ),
    rule(
        GUIDE_DIGILOCKER,
        r"\bdigi ?locker\b",
    ),
    rule(
        INSURANCE,
        r"\binsurance\b",
        r"\bbima\b",
        r"बीमा",
    ),
    rule(
        CUSTOMER_SERVICE,
        r"\bcustomer (care|service|support)\b",
        r"\bhelpline\b",
        r"\bcomplaint\b",
        r"\bsupport\b",
    ),
)


class IntentClassifier:
    """Ordered first-match classifier over a rule table."""

    def __init__(self, rules: Optional[Iterable[IntentRule]] = None) -> None:
        self._rules: Tuple[IntentRule, ...] = tuple(rules) if rules is not None else DEFAULT_RULES

    @property
    def rules(self) -> Sequence[IntentRule]:
        return self._rules

    def classify(self, text: str) -> IntentResult:
        """Purpose: Map an utterance to exactly one intent and attach any tracking code.
        Inputs/Outputs: Input is raw utterance text; output is an IntentResult.
        Side Effects / State: None; the result depends only on the text and rule table.
        Dependencies: Uses normalize_text and extract_tracking_id.
        Failure Modes: None; unmatched text yields the general intent.
        If Removed: The dispatcher cannot route utterances to actions.
        Testing Notes: Check priority with utterances that match several rules.
        """
        normalized = normalize_text(text)
        tracking_id = extract_tracking_id(text)
        for entry in self._rules:
            if entry.matches(normalized):
                return IntentResult(entry.intent, tracking_id)
        return IntentResult(GENERAL, tracking_id)


def intent_names(rules: Sequence[IntentRule] = DEFAULT_RULES) -> List[str]:
    """Intent tags in priority order, ending with the general fallback."""
    return [entry.intent for entry in rules] + [GENERAL]


def classify(text: str) -> IntentResult:
    return _DEFAULT_CLASSIFIER.classify(text)


_DEFAULT_CLASSIFIER = IntentClassifier()
