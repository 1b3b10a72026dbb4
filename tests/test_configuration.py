from types import SimpleNamespace

import pytest

from linemend.configuration import (
    CONFIG_KEY,
    JsonConfigStore,
    clamp_threshold,
    config_from_blob,
    default_processing_config,
    format_soft_break,
    load_processing_config,
    parse_detections,
    parse_soft_break,
    parse_soft_break_chars,
    save_processing_config,
)
from linemend.structures import DEFAULT_SOFT_BREAK_CHARS, DetectionType, ProcessingConfig


def test_parse_soft_break_notations():
    assert parse_soft_break("U+2028") == "\u2028"
    assert parse_soft_break("u+200b") == "\u200b"
    assert parse_soft_break("\\u2028") == "\u2028"
    assert parse_soft_break("\\v") == "\v"
    assert parse_soft_break("|") == "|"


def test_parse_soft_break_list_drops_duplicates():
    assert parse_soft_break_chars("U+2028, U+200B,U+2028,") == ("\u2028", "\u200b")


def test_default_soft_breaks_round_trip_through_notation():
    notation = ",".join(format_soft_break(char) for char in DEFAULT_SOFT_BREAK_CHARS)
    assert notation == "U+200B,U+2028,U+000B"
    assert parse_soft_break_chars(notation) == DEFAULT_SOFT_BREAK_CHARS


def test_parse_detections_normalises_names():
    kinds = parse_detections(["Edge_Break", "soft", "bogus"])
    assert kinds == frozenset({DetectionType.EDGE_BREAK, DetectionType.SOFT_BREAK})


def test_clamp_threshold():
    assert clamp_threshold(1.5) == 1.0
    assert clamp_threshold(0.4) == 0.4
    with pytest.raises(ValueError):
        clamp_threshold(0)


def test_store_get_and_set(tmp_path):
    store = JsonConfigStore(tmp_path / "nested" / "config.json")
    assert store.get("missing") is None
    store.set("key", {"value": 1})
    store.set("other", [1, 2])
    assert JsonConfigStore(store.path).get("key") == {"value": 1}
    assert store.get("other") == [1, 2]


def test_unreadable_store_is_treated_as_empty(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{not json", encoding="utf-8")
    assert JsonConfigStore(path).get(CONFIG_KEY) is None


def test_invalid_fields_fall_back_to_defaults():
    defaults = ProcessingConfig()
    blob = {
        "min_characters": "ten",
        "line_break_threshold": 2,
        "soft_break_chars": ["|"],
        "exclude_patterns": ["("],
        "strict_join": "yes",
        "unknown": 1,
    }
    config = config_from_blob(blob, defaults)
    assert config.min_characters == defaults.min_characters
    assert config.line_break_threshold == 1.0
    assert config.soft_break_chars == ("|",)
    assert config.exclude_patterns == ()
    assert config.strict_join is False


def test_non_mapping_blob_gives_defaults():
    defaults = ProcessingConfig(min_characters=3)
    assert config_from_blob(["nope"], defaults) is defaults
    assert config_from_blob(None, defaults) is defaults


def test_save_then_load(tmp_path):
    store = JsonConfigStore(tmp_path / "config.json")
    config = ProcessingConfig(
        min_characters=5,
        line_break_threshold=0.7,
        soft_break_chars=("\u2028",),
        enabled_detections=frozenset({DetectionType.EDGE_BREAK}),
        exclude_patterns=("^#",),
        strict_join=True,
    )
    save_processing_config(store, config)
    assert load_processing_config(store, ProcessingConfig()) == config


def test_default_processing_config_from_settings():
    settings = SimpleNamespace(
        LINEMEND_MIN_CHARACTERS=12,
        LINEMEND_LINE_BREAK_THRESHOLD=0.6,
        LINEMEND_SOFT_BREAK_CHARS="U+2028",
        LINEMEND_FONT_WIDTH_MULTIPLIER=1.1,
        LINEMEND_DETECTIONS="edge-break,auto-width",
        LINEMEND_STRICT_JOIN=True,
    )
    config = default_processing_config(settings)
    assert config.min_characters == 12
    assert config.line_break_threshold == 0.6
    assert config.soft_break_chars == ("\u2028",)
    assert config.font_width_multiplier == 1.1
    assert config.enabled_detections == frozenset(
        {DetectionType.EDGE_BREAK, DetectionType.AUTO_WIDTH}
    )
    assert config.strict_join is True
