"""Tests for the in-process voice client and the speech relay."""

from saathi.client import VoiceClient, parse_reminder
from saathi.speech import SpeechRelay, UtteranceConfig


class RecordingSynth:
    def __init__(self):
        self.events = []

    def cancel(self):
        self.events.append(("cancel",))

    def speak(self, text, config):
        self.events.append(("speak", text, config))


class TestSpeechRelay:
    def test_cancel_then_wait_then_speak(self):
        synth = RecordingSynth()
        sleeps = []
        relay = SpeechRelay(synth, sleep=lambda seconds: (sleeps.append(seconds), synth.events.append(("sleep",))))
        relay.speak("Order created.")
        assert [event[0] for event in synth.events] == ["cancel", "sleep", "speak"]
        assert sleeps == [0.1]
        assert synth.events[-1][2] == UtteranceConfig(rate=1.0, pitch=1.0, volume=1.0, locale="en-IN")

    def test_blank_text_is_not_spoken(self):
        synth = RecordingSynth()
        SpeechRelay(synth, delay_sec=0).speak("  ")
        assert synth.events == []


class TestReminders:
    def test_parse(self):
        reminder = parse_reminder("Remind me to call the customer at 5 pm")
        assert reminder.time == "5 pm"

    def test_no_time(self):
        assert parse_reminder("remind me later") is None

    def test_reminder_never_reaches_dispatcher(self, dispatcher, session_store):
        client = VoiceClient(dispatcher, user_id="u1")
        result = client.send("schedule pickup at 10:30am")
        assert result.action == "reminder_set"
        assert client.reminders[0].time == "10:30am"
        assert session_store.window("u1", 5) == []


class TestRouting:
    def make_client(self, dispatcher):
        synth = RecordingSynth()
        return VoiceClient(dispatcher, user_id="u1", speech=SpeechRelay(synth, delay_sec=0)), synth

    def test_reply_is_spoken(self, dispatcher):
        client, synth = self.make_client(dispatcher)
        result = client.send("create an order for rice")
        assert result.action == "created_order"
        assert synth.events[-1][1] == result.reply
        assert synth.events[-2] == ("cancel",)

    def test_delete_goes_to_hard_delete(self, dispatcher, order_store):
        client, _ = self.make_client(dispatcher)
        order = client.send("create an order for rice").order
        result = client.send(f"delete order {order.tracking_id}")
        assert result.action == "delete_order"
        assert order_store.find_by_id(order.id) is None

    def test_update_goes_to_edit(self, dispatcher):
        client, _ = self.make_client(dispatcher)
        order = client.send("create an order for rice").order
        result = client.send(f"change {order.tracking_id} to shipped")
        assert result.action == "update_order"
        assert result.order.status == "shipped"

    def test_address_change_stays_with_classifier(self, dispatcher):
        client, _ = self.make_client(dispatcher)
        order = client.send("create an order for rice").order
        result = client.send(f"Update address of order {order.tracking_id} to Nashik")
        assert result.action == "update_address"
        assert result.order.address == "Nashik"

    def test_blank_input(self, dispatcher):
        client, synth = self.make_client(dispatcher)
        assert client.send("   ") is None
        assert synth.events == []
