"""Action dispatch for classified utterances.

Role:
    Turns one utterance into one reply. The utterance is classified, the matching
    branch reads or writes the order store, and both the utterance and the reply
    are appended to the user's session so the open-chat fallback sees the whole
    conversation.

Branch contract:
    Every branch returns a DispatchResult whose ``action`` names the route taken
    (``created_order``, ``order_not_found``, ``ask_for_address``, ``llm_reply``,
    ``fallback``...). Clients key their behaviour on these names, so they are
    stable. Missing identifiers produce a clarifying question and unknown codes
    an apology; neither is an error.
"""

from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from .extraction import OrderFieldExtractor, extract_tracking_id, parse_address_update, parse_order_patch
from .guides import GuideLibrary
from .intents import (
    BUSINESS_GROWTH,
    CANCEL_ORDER,
    CREATE_ORDER,
    EARNINGS,
    GENERAL,
    LIST_ORDERS,
    NEXT_PICKUP,
    ONBOARDING_HELP,
    PENALTY,
    STATIC_INTENTS,
    TRACK_ORDER,
    UPDATE_ADDRESS,
    IntentClassifier,
    IntentResult,
)
from .llm import TextBackend, build_messages, safe_complete
from .metrics import (
    compute_earnings,
    compute_growth,
    compute_penalty,
    earnings_reply,
    growth_reply,
    penalty_reply,
)
from .models import Order, Turn
from .order_store import DuplicateTrackingIdError, OrderStore
from .prompt_loader import render_prompt
from .session_store import SessionStore
from .utils import to_base36

logger = logging.getLogger("saathi.dispatcher")

RECENT_ORDERS_LIMIT = 10
TRACKING_SUFFIX_ALPHABET = string.digits + string.ascii_uppercase
TRACKING_SUFFIX_LEN = 6
MAX_MINT_ATTEMPTS = 5

FALLBACK_REPLY = {
    "en": "Sorry, I couldn't process that right now.",
    "hi": "Maaf kijiye, abhi main yeh samajh nahi paaya. Thodi der baad phir koshish kijiye.",
}


def local_now() -> datetime:
    return datetime.now().astimezone()


@dataclass
class DispatchResult:
    """Reply plus the route taken and any payload for the client."""
    reply: str
    action: str
    order: Optional[Order] = None
    orders: Optional[List[Order]] = None
    module: Optional[Dict[str, object]] = None
    guide: Optional[Dict[str, object]] = None
    tracking_id: Optional[str] = None


@dataclass
class TurnContext:
    """Per-utterance state shared by the branch handlers."""
    user_id: str
    text: str
    lang: str
    intent: IntentResult
    now: datetime


def mint_tracking_id(now_ms: Optional[int] = None) -> str:
    """``ORD-`` + base36 millisecond timestamp + six random uppercase alphanumerics."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(TRACKING_SUFFIX_ALPHABET) for _ in range(TRACKING_SUFFIX_LEN))
    return f"ORD-{to_base36(now_ms)}{suffix}"


class ActionDispatcher:
    def __init__(
        self,
        orders: OrderStore,
        sessions: SessionStore,
        extractor: OrderFieldExtractor,
        guides: GuideLibrary,
        backend: Optional[TextBackend],
        system_preamble: str,
        translation_prompt: str,
        classifier: Optional[IntentClassifier] = None,
        history_window: int = 8,
        order_amount: float = 200,
        order_expense: float = 50,
        late_penalty: float = 50,
        default_lang: str = "en",
        clock: Callable[[], datetime] = local_now,
    ) -> None:
        """Purpose: Wire the dispatcher to its stores, extractor, guides, and backend.
        Inputs/Outputs: Inputs are collaborators, prompts, and business constants; no return.
        Side Effects / State: Builds the intent-to-handler table.
        Dependencies: OrderStore, SessionStore, OrderFieldExtractor, GuideLibrary,
            an optional TextBackend, and IntentClassifier.
        Failure Modes: None at init.
        If Removed: The chat endpoint and voice client have nothing to call.
        Testing Notes: Build with in-memory stores, a fake backend, and a fixed clock.
        """
        self._orders = orders
        self._sessions = sessions
        self._extractor = extractor
        self._guides = guides
        self._backend = backend
        self._system_preamble = system_preamble
        self._translation_prompt = translation_prompt
        self._classifier = classifier or IntentClassifier()
        self._history_window = history_window
        self._order_amount = order_amount
        self._order_expense = order_expense
        self._late_penalty = late_penalty
        self._default_lang = default_lang
        self._clock = clock
        self._handlers: Dict[str, Callable[[TurnContext], DispatchResult]] = {
            CREATE_ORDER: self._create_order,
            TRACK_ORDER: self._track_order,
            NEXT_PICKUP: self._next_pickup,
            LIST_ORDERS: self._list_orders,
            CANCEL_ORDER: self._cancel_order,
            UPDATE_ADDRESS: self._update_address,
            EARNINGS: self._earnings,
            PENALTY: self._penalty,
            BUSINESS_GROWTH: self._business_growth,
            GENERAL: self._general,
        }
        for intent in STATIC_INTENTS:
            self._handlers[intent] = self._static_knowledge

    def handle(self, user_id: str, text: str, lang: Optional[str] = None) -> DispatchResult:
        """Purpose: Classify an utterance, run its branch, and record the exchange.
        Inputs/Outputs: Inputs are user id, utterance, and optional reply language;
            output is a DispatchResult.
        Side Effects / State: Appends user and assistant turns; may mutate orders.
        Dependencies: IntentClassifier and the handler table.
        Failure Modes: Not-found, missing-parameter, and backend failures become
            replies; anything else propagates to the caller.
        If Removed: Utterances cannot be acted on.
        Testing Notes: Assert on action names and session contents per branch.
        """
        intent = self._classifier.classify(text)
        context = self._context(user_id, text, lang, intent)
        logger.info(
            "user=%s intent=%s tracking_id=%s lang=%s",
            user_id,
            intent.intent,
            intent.tracking_id,
            context.lang,
        )
        return self._respond(context, self._handlers.get(intent.intent, self._general))

    def edit_order(self, user_id: str, text: str, lang: Optional[str] = None) -> DispatchResult:
        """Apply a free-form status/pickup/assignee/item edit to the order named in ``text``."""
        context = self._context(user_id, text, lang, IntentResult("update_order", extract_tracking_id(text)))
        return self._respond(context, self._edit_order)

    def delete_order(self, user_id: str, text: str, lang: Optional[str] = None) -> DispatchResult:
        """Hard-delete the order named in ``text``; distinct from cancelling it."""
        context = self._context(user_id, text, lang, IntentResult("delete_order", extract_tracking_id(text)))
        return self._respond(context, self._delete_order)

    def _context(self, user_id: str, text: str, lang: Optional[str], intent: IntentResult) -> TurnContext:
        resolved = (lang or self._default_lang).strip().lower() or "en"
        return TurnContext(user_id=user_id, text=text, lang=resolved, intent=intent, now=self._clock())

    def _respond(self, context: TurnContext, handler: Callable[[TurnContext], DispatchResult]) -> DispatchResult:
        # The user turn goes in first so the chat fallback sees it in its window.
        self._sessions.append(context.user_id, Turn(role="user", content=context.text))
        result = handler(context)
        self._sessions.append(context.user_id, Turn(role="assistant", content=result.reply))
        logger.info("user=%s action=%s", context.user_id, result.action)
        return result

    def _ask_for_order_id(self, example: str) -> DispatchResult:
        return DispatchResult(
            reply=f"Please provide the order ID (e.g., '{example} ORD-abc123').",
            action="ask_for_order_id",
        )

    def _not_found(self, tracking_id: str) -> DispatchResult:
        return DispatchResult(
            reply=f"Sorry, I couldn't find order {tracking_id}.",
            action="order_not_found",
            tracking_id=tracking_id,
        )

    def place_order(self, fields: Dict[str, object], created_by: str, created_via: str) -> Order:
        """Purpose: Persist a new order under a freshly minted tracking code.
        Inputs/Outputs: Inputs are order fields, creator id, and channel; output is the Order.
        Side Effects / State: Writes one order to the store.
        Dependencies: mint_tracking_id and OrderStore.create.
        Failure Modes: Re-mints on collision; raises RuntimeError after MAX_MINT_ATTEMPTS.
        If Removed: Neither the voice flow nor the REST API can create orders.
        Testing Notes: Many creations in one store must all get distinct codes.
        """
        data = dict(fields)
        data.update(
            {
                "status": "created",
                "metadata": {"created_by": created_by, "created_via": created_via},
                "amount": self._order_amount,
                "expenses": self._order_expense,
            }
        )
        for _ in range(MAX_MINT_ATTEMPTS):
            tracking_id = mint_tracking_id()
            if self._orders.exists(tracking_id):
                continue
            try:
                return self._orders.create({**data, "tracking_id": tracking_id})
            except DuplicateTrackingIdError:
                continue
        raise RuntimeError("could not mint a unique tracking id")

    def _create_order(self, context: TurnContext) -> DispatchResult:
        fields = self._extractor.extract(context.text)
        order = self.place_order(fields.model_dump(), created_by=context.user_id, created_via="voice")
        return DispatchResult(
            reply=f"Order created. Tracking ID {order.tracking_id}.",
            action="created_order",
            order=order,
            tracking_id=order.tracking_id,
        )

    def _track_order(self, context: TurnContext) -> DispatchResult:
        tracking_id = context.intent.tracking_id
        if not tracking_id:
            return self._ask_for_order_id("Track order")
        order = self._orders.find_by_tracking_code(tracking_id)
        if order is None:
            return self._not_found(tracking_id)
        reply = "\n".join(
            [
                f"Here are the details for {order.tracking_id}:",
                f"- Customer: {order.customer_name or 'N/A'}",
                f"- Items: {describe_items(order)}",
                f"- Address: {order.address or 'N/A'}",
                f"- Status: {order.status}",
            ]
        )
        return DispatchResult(reply=reply, action="track_order", order=order, tracking_id=order.tracking_id)

    def _next_pickup(self, context: TurnContext) -> DispatchResult:
        order = self._orders.find_earliest_pending()
        if order is None:
            return DispatchResult(reply="You have no upcoming pickups.", action="no_pickups")
        reply = f"Next pickup: {order.item} ({order.qty}) at {order.address or 'address not set'}."
        if order.pickup_time:
            reply += f" Pickup time {order.pickup_time:%d %b %H:%M}."
        reply += f" Tracking ID {order.tracking_id}."
        return DispatchResult(reply=reply, action="next_pickup", order=order, tracking_id=order.tracking_id)

    def _list_orders(self, context: TurnContext) -> DispatchResult:
        orders = self._orders.find_recent(RECENT_ORDERS_LIMIT)
        reply = f"Showing your {len(orders)} most recent orders." if orders else "No orders found."
        return DispatchResult(reply=reply, action="list_orders", orders=orders)

    def _cancel_order(self, context: TurnContext) -> DispatchResult:
        # Cancelling an already-cancelled order just sets the status again.
        tracking_id = context.intent.tracking_id
        if not tracking_id:
            return self._ask_for_order_id("Cancel order")
        order = self._orders.update_by_tracking_code(tracking_id, {"status": "cancelled"})
        if order is None:
            return self._not_found(tracking_id)
        return DispatchResult(
            reply=f"Order {order.tracking_id} cancelled.",
            action="cancel_order",
            order=order,
            tracking_id=order.tracking_id,
        )

    def _update_address(self, context: TurnContext) -> DispatchResult:
        tracking_id = context.intent.tracking_id
        if not tracking_id:
            return self._ask_for_order_id("Update address of order")
        address = parse_address_update(context.text, tracking_id)
        if not address:
            return DispatchResult(
                reply=(
                    "Please provide the new address after the order ID "
                    f"(e.g., 'Update address of order {tracking_id} Pune, Maharashtra')."
                ),
                action="ask_for_address",
                tracking_id=tracking_id,
            )
        order = self._orders.update_by_tracking_code(tracking_id, {"address": address})
        if order is None:
            return self._not_found(tracking_id)
        return DispatchResult(
            reply=f"The address for order {order.tracking_id} has been updated to: {order.address}",
            action="update_address",
            order=order,
            tracking_id=order.tracking_id,
        )

    def _earnings(self, context: TurnContext) -> DispatchResult:
        earnings = compute_earnings(self._orders, context.now)
        return DispatchResult(reply=self._localized(context, earnings_reply, earnings), action=EARNINGS)

    def _penalty(self, context: TurnContext) -> DispatchResult:
        penalty = compute_penalty(self._orders, context.now, self._late_penalty)
        return DispatchResult(reply=self._localized(context, penalty_reply, penalty), action=PENALTY)

    def _business_growth(self, context: TurnContext) -> DispatchResult:
        growth = compute_growth(self._orders, context.now)
        return DispatchResult(reply=self._localized(context, growth_reply, growth), action=BUSINESS_GROWTH)

    def _localized(self, context: TurnContext, render: Callable[..., str], value: object) -> str:
        if context.lang in ("en", "hi"):
            return render(value, context.lang)
        return self._translate(render(value, "en"), context.lang)

    def _static_knowledge(self, context: TurnContext) -> DispatchResult:
        intent = context.intent.intent
        guide = self._guides.get(intent)
        if guide is None:
            logger.warning("user=%s intent=%s route=missing_guide", context.user_id, intent)
            return DispatchResult(reply=self._fallback_text(context), action="fallback")
        reply = guide.reply(context.lang) or self._translate(guide.reply("en") or "", context.lang)
        result = DispatchResult(reply=reply, action=intent)
        if intent == ONBOARDING_HELP or guide.kind == "module":
            result.module = guide.payload()
        else:
            result.guide = guide.payload()
        return result

    def _translate(self, text: str, lang: str) -> str:
        """Translate a reply with the backend; the English text is kept on any failure."""
        if lang == "en" or not text:
            return text
        messages = [
            {"role": "system", "content": render_prompt(self._translation_prompt, lang=lang)},
            {"role": "user", "content": text},
        ]
        translated = safe_complete(self._backend, messages, temperature=0, purpose="translation")
        return translated or text

    def _fallback_text(self, context: TurnContext) -> str:
        return FALLBACK_REPLY.get(context.lang) or FALLBACK_REPLY["en"]

    def _general(self, context: TurnContext) -> DispatchResult:
        """Purpose: Answer open-ended utterances from the generative backend.
        Inputs/Outputs: Input is the TurnContext; output is llm_reply or fallback.
        Side Effects / State: One blocking backend request; reads the session window.
        Dependencies: SessionStore.window, build_messages, safe_complete.
        Failure Modes: Unconfigured or failing backend yields the static apology.
        If Removed: Anything outside the rule table goes unanswered.
        Testing Notes: Check the preamble leads the messages and only the last
            history_window turns follow it.
        """
        # The stored preamble may have been trimmed out of the window, so always lead with it.
        window = self._sessions.window(context.user_id, self._history_window)
        turns = [turn_to_message(turn) for turn in window if turn.role != "system"]
        messages = build_messages(self._system_preamble, turns)
        reply = safe_complete(self._backend, messages, temperature=0.2, purpose="chat")
        if reply is None:
            return DispatchResult(reply=self._fallback_text(context), action="fallback")
        return DispatchResult(reply=reply, action="llm_reply")

    def _edit_order(self, context: TurnContext) -> DispatchResult:
        tracking_id = context.intent.tracking_id
        if not tracking_id:
            return self._ask_for_order_id("Update order")
        order = self._orders.find_by_tracking_code(tracking_id)
        if order is None:
            return self._not_found(tracking_id)
        patch = parse_order_patch(context.text, order.items, context.now, default_assignee=context.user_id)
        if not patch:
            return DispatchResult(
                reply="What would you like to update? (status, items, pickup time, assignee)",
                action="ask_for_update",
                tracking_id=order.tracking_id,
            )
        updated = self._orders.update_by_id(order.id, patch)
        if updated is None:
            return self._not_found(tracking_id)
        pickup = f"{updated.pickup_time:%d %b %H:%M}" if updated.pickup_time else "not set"
        reply = "\n".join(
            [
                f"Order {updated.tracking_id} updated successfully.",
                f"- Status: {updated.status}",
                f"- Pickup time: {pickup}",
                f"- Assigned to: {updated.assigned_to or 'not set'}",
                f"- Items: {', '.join(updated.items) or 'no items'}",
            ]
        )
        return DispatchResult(reply=reply, action="update_order", order=updated, tracking_id=updated.tracking_id)

    def _delete_order(self, context: TurnContext) -> DispatchResult:
        tracking_id = context.intent.tracking_id
        if not tracking_id:
            return self._ask_for_order_id("Delete order")
        order = self._orders.find_by_tracking_code(tracking_id)
        if order is None:
            return self._not_found(tracking_id)
        if self._orders.delete_by_id(order.id).get("success"):
            return DispatchResult(
                reply=f"Order {order.tracking_id} has been deleted successfully.",
                action="delete_order",
                tracking_id=order.tracking_id,
            )
        return DispatchResult(
            reply=f"Failed to delete order {order.tracking_id}.",
            action="delete_failed",
            tracking_id=order.tracking_id,
        )


def describe_items(order: Order) -> str:
    if order.items:
        return ", ".join(order.items)
    return order.item or "N/A"


def turn_to_message(turn: Turn) -> Dict[str, str]:
    message = {"role": turn.role, "content": turn.content}
    if turn.role == "function":
        message["name"] = turn.name or "fn"
    return message
