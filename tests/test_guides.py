"""Tests for the packaged static-knowledge library."""

import json

from saathi.config import load_settings
from saathi.guides import GuideLibrary
from saathi.intents import STATIC_INTENTS


def test_packaged_library_covers_static_intents():
    library = GuideLibrary(load_settings().guides_path)
    assert set(library.intents()) == set(STATIC_INTENTS)
    for intent in STATIC_INTENTS:
        guide = library.get(intent)
        assert guide.reply("en")
        assert guide.reply("hi")
        assert guide.payload()["steps"]


def test_entries_without_english_reply_are_skipped(tmp_path):
    path = tmp_path / "guides.json"
    path.write_text(
        json.dumps(
            {
                "guides": [
                    {"intent": "insurance", "reply": {"hi": "sirf hindi"}},
                    {"intent": "emergency", "kind": "alert", "reply": {"EN": "Call 112."}},
                    "not an entry",
                ]
            }
        ),
        encoding="utf-8",
    )
    library = GuideLibrary(path)
    assert library.intents() == []
