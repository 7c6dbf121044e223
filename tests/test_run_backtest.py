"""Tests for the run_backtest command line script."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest
import yaml

from scripts.run_backtest import build_config, main, parse_args, resolve_data_path

D = Decimal


def write_candles(path, count=30):
    path.parent.mkdir(parents=True, exist_ok=True)
    start = datetime(2024, 1, 2)
    rows = ["time,open,high,low,close"]
    for i in range(count):
        price = 100 + i % 5
        moment = start + timedelta(hours=i)
        rows.append(f"{moment:%Y-%m-%d %H:%M:%S},{price},{price + 1},{price - 1},{price + 0.5}")
    path.write_text("\n".join(rows) + "\n")
    return path


def write_config(directory, content):
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / "run.yml"
    path.write_text(yaml.dump(content))
    return path


def test_cli_overrides_win_over_defaults():
    config = build_config(parse_args(["--capital", "2500", "--risk", "0.5", "--start", "2024-01-02"]))

    assert config.account.initial_capital == D("2500")
    assert config.account.max_loss_per_trade_percent == D("0.5")
    assert config.data.start_date == date(2024, 1, 2)
    assert config.strategy.strategy_name == "PinBar"


def test_cli_overrides_win_over_config_file(tmp_path):
    config_path = write_config(tmp_path, {
        "account": {"initial_capital": 5000, "max_loss_per_trade_percent": 2},
        "strategy": {"symbol": "TESTSYM", "base_ema": 50},
    })
    config = build_config(parse_args(["--config", str(config_path), "--capital", "2500"]))

    assert config.account.initial_capital == D("2500")
    assert config.account.max_loss_per_trade_percent == D("2")
    assert config.strategy.base_ema == 50
    assert config.strategy.contract_size == D("100")


def test_data_directory_relative_to_config_file(workdir):
    config_dir = workdir / "configs"
    csv_path = write_candles(config_dir / "candles" / "TESTSYM_H1.csv")
    config_path = write_config(config_dir, {
        "strategy": {"symbol": "TESTSYM"},
        "data": {"directory": "candles"},
    })

    args = parse_args(["--config", str(config_path)])
    assert resolve_data_path(args, build_config(args)) == csv_path.resolve()


def test_main_runs_and_exports(workdir, capsys):
    config_dir = workdir / "configs"
    write_candles(config_dir / "candles" / "TESTSYM_H1.csv")
    config_path = write_config(config_dir, {
        "strategy": {"symbol": "TESTSYM", "ema_list": [3], "base_ema": 5},
        "data": {"directory": "candles"},
    })

    exit_code = main([
        "--config", str(config_path),
        "--capital", "2500",
        "--risk", "2",
        "--output", "out",
    ])

    assert exit_code == 0
    out = capsys.readouterr().out
    assert "BACKTEST RESULTS" in out
    assert "Initial Capital: $2,500.00" in out
    for name in ("trades", "equity_curve", "weekly", "monthly", "yearly"):
        assert (workdir / "out" / f"{name}.csv").exists()
    assert list((workdir / "data" / "logs").glob("backtest_*.log"))


@pytest.mark.parametrize("argv", [
    ["--data", "missing.csv"],
    ["--risk", "0", "--data", "candles.csv"],
    ["--config-profile", "tuned"],
    ["--data", "candles.csv", "--start", "2030-01-01"],
])
def test_main_reports_errors_with_exit_code(workdir, capsys, argv):
    write_candles(workdir / "candles.csv")

    assert main(argv) == 1
    assert "Error:" in capsys.readouterr().err
