import json
import logging

import pytest

from stockfunnel.main import _settings, main, parse_args


@pytest.fixture(autouse=True)
def _reset_cli_logging():
    yield
    logger = logging.getLogger("stockfunnel")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


class TestParseArgs:
    def test_defaults(self):
        args = parse_args([])
        assert args.config == "config/default.yaml"
        assert args.screener_type == "swing"
        assert args.run_id is None
        assert args.universe is None
        assert args.db is None

    def test_overrides(self):
        args = parse_args(["--type", "longterm", "--run-id", "r7", "--universe", "u.csv", "--db", "x.db"])
        assert (args.screener_type, args.run_id, args.universe, args.db) == ("longterm", "r7", "u.csv", "x.db")

    def test_rejects_unknown_type(self):
        with pytest.raises(SystemExit):
            parse_args(["--type", "intraday"])


def test_missing_config_falls_back_to_defaults(tmp_path):
    settings = _settings(str(tmp_path / "absent.yaml"))
    assert settings.ai.max_calls_per_day == 50


def test_exits_without_universe(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as exc:
        main(["--config", "absent.yaml"])
    assert exc.value.code == 1


def test_end_to_end_with_empty_history(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "instruments.csv").write_text("id,symbol,ltp\n1,TCS,3500\n2,INFY,1500\n")

    main(["--config", "absent.yaml", "--universe", "instruments.csv", "--db", "out/funnel.db", "--run-id", "cli"])

    # no candles stored, so nothing survives the screener
    out = capsys.readouterr().out
    assert json.loads(out[out.index("{\n"):]) == {"rejected": []}
    assert (tmp_path / "out" / "funnel.db").exists()
