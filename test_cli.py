import pytest
from rich.console import Console

from model_selector import config as cfg
from model_selector.cli import main, parse_args

CONFIG = """
[aliases]
fast = "speed >= 8"

[models.haiku]
provider = "anthropic"
model_id = "claude-haiku"

[models.haiku.attributes]
speed = 9

[models.gpt]
provider = "openai"
model_id = "gpt-4o"

[models.gpt.attributes]
speed = 5
"""


@pytest.fixture(autouse=True)
def _isolated(tmp_path, monkeypatch):
    monkeypatch.setattr(cfg.Path, "home", lambda: tmp_path / "home")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(cfg.ENV_CONFIG, raising=False)


def _run(*argv):
    console = Console(record=True, width=200)
    code = main(list(argv), console=console)
    return code, console.export_text()


def test_parse_shows_conditions():
    code, out = _run("parse", "vision, cost <= 3:5, !local")

    assert code == 0
    assert "vision" in out
    assert "<=" in out
    assert "yes" in out  # negated column


def test_parse_expands_inline_alias():
    code, out = _run("parse", "fast", "--alias", "fast=speed >= 8")

    assert code == 0
    assert "speed >= 8" in out


def test_rank_reads_config(tmp_path):
    path = tmp_path / "models.toml"
    path.write_text(CONFIG)

    code, out = _run("rank", "fast", "--config", str(path))

    assert code == 0
    assert out.index("haiku") < out.index("gpt")
    assert "1/1" in out


def test_classify_message_and_status():
    code, out = _run("classify", "request failed", "--status", "429")

    assert code == 0
    assert "RATE_LIMIT" in out


def test_query_error_returns_one():
    code, out = _run("parse", "   ")

    assert code == 1
    assert "error:" in out


def test_bad_alias_is_rejected_by_argparse():
    with pytest.raises(SystemExit):
        parse_args(["parse", "x", "--alias", "nonsense"])
