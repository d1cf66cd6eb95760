"""Tests for order field extraction and the narrow pattern extractors."""

from datetime import datetime, timezone

from saathi.extraction import (
    OrderFieldExtractor,
    extract_tracking_id,
    parse_address_update,
    parse_item_edits,
    parse_order_patch,
)
from saathi.llm import BackendUnavailableError

from conftest import FakeBackend

NOW = datetime(2024, 5, 15, 12, 0, tzinfo=timezone.utc)


class TestOrderFieldExtractor:
    def test_default_strategy_without_backend(self):
        fields = OrderFieldExtractor(None, "prompt").extract("create an order for 2 mangoes")
        assert fields.item == "create an order for 2 mangoes"
        assert fields.qty == 1
        assert fields.customer_name is None
        assert fields.address is None
        assert fields.pickup_time is None

    def test_structured_prompt_parses_first_json_object(self):
        backend = FakeBackend(
            replies=[
                'Sure! Here you go:\n```json\n{"customerName": "Asha", "address": "MG Road, Pune", '
                '"item": "mangoes", "qty": "2", "pickupTime": "2024-05-16T09:30:00Z"}\n```'
            ]
        )
        fields = OrderFieldExtractor(backend, "extract please").extract("order 2 mangoes for Asha")
        assert fields.customer_name == "Asha"
        assert fields.address == "MG Road, Pune"
        assert fields.item == "mangoes"
        assert fields.qty == 2
        assert fields.pickup_time == datetime(2024, 5, 16, 9, 30, tzinfo=timezone.utc)

    def test_request_uses_temperature_zero_and_system_prompt(self):
        backend = FakeBackend(replies=['{"item": "rice"}'])
        OrderFieldExtractor(backend, "extract please").extract("order rice")
        call = backend.calls[0]
        assert call["temperature"] == 0
        assert call["messages"][0] == {"role": "system", "content": "extract please"}
        assert "order rice" in call["messages"][1]["content"]

    def test_null_fields_fall_back_per_field(self):
        backend = FakeBackend(replies=['{"customerName": null, "item": null, "qty": 0, "pickupTime": "soon"}'])
        fields = OrderFieldExtractor(backend, "p").extract("order bread")
        assert fields.item == "order bread"
        assert fields.qty == 1
        assert fields.pickup_time is None

    def test_unparseable_reply_uses_default(self):
        backend = FakeBackend(replies=["I cannot help with that."])
        fields = OrderFieldExtractor(backend, "p").extract("order bread")
        assert fields.item == "order bread"
        assert fields.qty == 1

    def test_backend_error_uses_default(self):
        backend = FakeBackend(error=BackendUnavailableError("timeout"))
        fields = OrderFieldExtractor(backend, "p").extract("order bread")
        assert fields.item == "order bread"

    def test_overflowing_qty_uses_default(self):
        backend = FakeBackend(replies=['{"item": "rice", "qty": 1e400}'])
        fields = OrderFieldExtractor(backend, "p").extract("order rice")
        assert fields.item == "rice"
        assert fields.qty == 1


class TestTrackingId:
    def test_extracts_exact_code(self):
        assert extract_tracking_id("status of ORD-lq2x9ABC, please") == "ORD-lq2x9ABC"

    def test_none_without_code(self):
        assert extract_tracking_id("order status please") is None

    def test_first_code_wins(self):
        assert extract_tracking_id("ORD-A1 or ORD-B2") == "ORD-A1"

    def test_code_glued_to_surrounding_text(self):
        assert extract_tracking_id("statusORD-ABC123") == "ORD-ABC123"
        assert extract_tracking_id("order_ORD-ABC123?") == "ORD-ABC123"
        assert extract_tracking_id("42ORD-x9") == "ORD-x9"


class TestAddressUpdate:
    def test_connectors_are_stripped(self):
        for text in [
            "update address of order ORD-abc12 to Pune, Maharashtra",
            "update address of order ORD-abc12 is Pune, Maharashtra",
            "update address of order ORD-abc12: Pune, Maharashtra",
            "update address of order ORD-abc12 Pune, Maharashtra",
        ]:
            assert parse_address_update(text, "ORD-abc12") == "Pune, Maharashtra"

    def test_missing_remainder(self):
        assert parse_address_update("update address of order ORD-abc12", "ORD-abc12") is None

    def test_code_matched_case_insensitively(self):
        assert parse_address_update("update address ord-abc12 to Nashik", "ORD-abc12") == "Nashik"


class TestItemEdits:
    def test_add_splits_on_commas_and_and(self):
        items = parse_item_edits("update ORD-a1 add rice, dal and oil", ["sugar"])
        assert items == ["sugar", "rice", "dal", "oil"]

    def test_remove_filters_exact_matches(self):
        items = parse_item_edits("update ORD-a1 remove dal and oil", ["rice", "dal", "oil", "dal chawal"])
        assert items == ["rice", "dal chawal"]

    def test_words_containing_and_are_not_split(self):
        assert parse_item_edits("add sandwich", []) == ["sandwich"]

    def test_trailing_order_clause_dropped(self):
        assert parse_item_edits("add 2 bananas to the order ORD-a1", []) == ["2 bananas"]

    def test_no_keyword(self):
        assert parse_item_edits("update ORD-a1 to delivered", ["rice"]) is None

    def test_address_is_not_an_add_keyword(self):
        assert parse_item_edits("change address of ORD-a1", ["rice"]) is None

    def test_input_not_mutated(self):
        existing = ["rice"]
        parse_item_edits("add dal", existing)
        assert existing == ["rice"]


class TestOrderPatch:
    def test_status_last_keyword_wins(self):
        patch = parse_order_patch("change ORD-a1 from processing to delivered", [], NOW)
        assert patch == {"status": "delivered"}

    def test_pickup_stamps_now(self):
        assert parse_order_patch("update ORD-a1 pickup done", [], NOW) == {"pickup_time": NOW}

    def test_assign_with_name(self):
        patch = parse_order_patch("update ORD-a1 assign to Ravi Kumar", [], NOW)
        assert patch == {"assigned_to": "Ravi Kumar"}

    def test_assign_stops_before_next_clause(self):
        patch = parse_order_patch("update ORD-a1 assign to Ravi and add rice", [], NOW)
        assert patch["assigned_to"] == "Ravi"
        assert patch["items"] == ["rice"]

    def test_assign_without_name_uses_default(self):
        patch = parse_order_patch("update ORD-a1 assign it", [], NOW, default_assignee="rider-7")
        assert patch == {"assigned_to": "rider-7"}

    def test_nothing_recognized(self):
        assert parse_order_patch("update ORD-a1 please", ["rice"], NOW) == {}
