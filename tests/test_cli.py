import json
import logging

from conftest import make_preset

from data_designer_cache_analyzer.cli import main


def _write(tmp_path, preset):
    path = tmp_path / "preset.json"
    path.write_text(json.dumps(preset))
    return str(path)


def _preset(source="claude"):
    preset = make_preset(
        {"identifier": "main", "content": "Time: {{time}}"},
        {"identifier": "chatHistory"},
        {"identifier": "a", "content": "A"},
        {"identifier": "b", "content": "B"},
        squash=False,
    )
    preset["chat_completion_source"] = source
    return preset


class TestScoreCommand:
    def test_prints_one_line_report(self, tmp_path, capsys):
        assert main(["score", _write(tmp_path, _preset())]) == 0
        out = capsys.readouterr().out.strip()
        # critical macro, two ordering warnings, threshold info, unsquashed system prompts
        assert out == "Cache Efficiency Score: 47/100 (1 critical, 3 warnings, 1 info)"

    def test_not_utf8_preset(self, tmp_path, capsys, caplog):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"prompts": "\xff\xfe"}')
        assert main(["score", str(path)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err.count("No preset loaded") == 1
        assert "not UTF-8 text" in captured.err
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    def test_missing_preset(self, tmp_path, capsys):
        assert main(["score", str(tmp_path / "missing.json")]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "No preset loaded" in captured.err


class TestAnalyzeCommand:
    def test_json_output(self, tmp_path, capsys):
        assert main(["analyze", _write(tmp_path, _preset("openai")), "--format", "json"]) == 0
        result = json.loads(capsys.readouterr().out)
        assert set(result) == {"findings", "score", "summary", "band"}
        assert any(f["id"] == "provider-specific-openai-alignment" for f in result["findings"])

    def test_explicit_provider_overrides_source(self, tmp_path, capsys):
        path = _write(tmp_path, _preset("claude"))
        assert main(["analyze", path, "--format", "json", "--provider", "google"]) == 0
        ids = {f["id"] for f in json.loads(capsys.readouterr().out)["findings"]}
        assert "provider-specific-google-threshold" in ids
        assert "provider-specific-anthropic-squash-off" not in ids
        assert "token-thresholds-google" in ids

    def test_html_to_file(self, tmp_path, capsys):
        output = tmp_path / "report.html"
        assert main(["analyze", _write(tmp_path, _preset()), "--format", "html", "-o", str(output)]) == 0
        assert "Report written to" in capsys.readouterr().out
        assert "ca-score-bar" in output.read_text()

    def test_text_output(self, tmp_path, capsys):
        assert main(["analyze", _write(tmp_path, _preset())]) == 0
        assert "[CRITICAL]" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 1
