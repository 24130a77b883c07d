import json

import pytest

from data_designer_cache_analyzer.sources import (
    PresetLoadError,
    coerce_preset,
    detect_provider,
    load_preset,
    resolve_provider,
)


class TestLoadPreset:
    def test_reads_json_object(self, tmp_path):
        path = tmp_path / "preset.json"
        path.write_text(json.dumps({"prompts": [], "prompt_order": []}))
        assert load_preset(path) == {"prompts": [], "prompt_order": []}

    def test_missing_file(self, tmp_path):
        with pytest.raises(PresetLoadError, match="cannot read"):
            load_preset(tmp_path / "nope.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        with pytest.raises(PresetLoadError, match="not valid JSON"):
            load_preset(path)

    def test_not_utf8(self, tmp_path):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"prompts": "\xff\xfe"}')
        with pytest.raises(PresetLoadError, match="not UTF-8 text"):
            load_preset(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(PresetLoadError, match="JSON object"):
            load_preset(path)


class TestCoercePreset:
    def test_mapping_passthrough(self):
        preset = {"prompts": []}
        assert coerce_preset(preset) is preset

    def test_json_string(self):
        assert coerce_preset('{"prompts": []}') == {"prompts": []}

    def test_unusable_values(self):
        assert coerce_preset(None) is None
        assert coerce_preset(float("nan")) is None
        assert coerce_preset("{broken") is None
        assert coerce_preset("[1, 2]") is None
        assert coerce_preset(b'{"prompts": "\xff"}') is None
        assert coerce_preset(42) is None


class TestProvider:
    def test_detect(self):
        assert detect_provider("claude") == "anthropic"
        assert detect_provider("openai") == "openai"
        assert detect_provider("google") == "google"
        assert detect_provider("makersuite") == "google"
        assert detect_provider("openrouter") == "anthropic"
        assert detect_provider(None) == "anthropic"

    def test_resolve(self):
        assert resolve_provider("openai", {"chat_completion_source": "claude"}) == "openai"
        assert resolve_provider("auto", {"chat_completion_source": "google"}) == "google"
        assert resolve_provider(None, {}) == "anthropic"
        assert resolve_provider("auto", None) == "anthropic"
