"""Tests for the hf-sim command line entry point."""

import json

from hf_sim import build_parser, main, run_simulation
from hflab.config import SimulatorConfig
from hflab.risk.liquidation import SolverConfig
from tests.conftest import make_payload


def _write(tmp_path, payload, name="snapshot.json"):
    path = tmp_path / name
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestRunSimulation:
    def test_baseline_only(self):
        output = run_simulation(make_payload())
        assert output.startswith("Baseline:")
        assert "health_factor: 1.17 (yellow)" in output
        assert "cbBTC" in output
        assert "liquidation_price_usd" in output
        assert "After actions:" not in output

    def test_with_actions(self):
        payload = make_payload(actions=[{"type": "borrow", "symbol": "DAI", "amount": 10000}])
        output = run_simulation(payload)
        baseline, after = output.split("After actions:")
        assert "1.17" in baseline
        # 46800 / 50000
        assert "health_factor: 0.94 (red)" in after
        assert "DAI" in after

    def test_no_scenario(self):
        output = run_simulation(make_payload(), show_scenario=False)
        assert "liquidation_price_usd" not in output
        assert "no liquidation scenario" not in output

    def test_no_scenario_message(self):
        payload = make_payload(borrows=[])
        output = run_simulation(payload)
        assert "health_factor: ∞ (green)" in output
        assert "no liquidation scenario" in output

    def test_solver_config_is_used(self):
        config = SimulatorConfig(solver=SolverConfig(max_iterations=1))
        output = run_simulation(make_payload(), config=config)
        assert "no liquidation scenario" in output


class TestMain:
    def test_parser_defaults(self, monkeypatch):
        monkeypatch.delenv("HFLAB_CONFIG", raising=False)
        args = build_parser().parse_args(["--input", "x.json"])
        assert args.log_level == "WARNING"
        assert args.config is None
        assert args.live_slippage is False
        assert args.no_scenario is False

    def test_prints_report(self, tmp_path, capsys):
        path = _write(tmp_path, make_payload())
        assert main(["--input", str(path), "--no-scenario"]) == 0
        assert "Baseline:" in capsys.readouterr().out

    def test_config_file(self, tmp_path, capsys):
        path = _write(tmp_path, make_payload())
        config = _write(tmp_path, {"solver": {"max_iterations": 1}}, "config.json")
        assert main(["--input", str(path), "--config", str(config)]) == 0
        assert "no liquidation scenario" in capsys.readouterr().out

    def test_config_from_environment(self, tmp_path, capsys, monkeypatch):
        path = _write(tmp_path, make_payload())
        config = _write(tmp_path, {"solver": {"max_iterations": 1}}, "config.json")
        monkeypatch.setenv("HFLAB_CONFIG", str(config))
        assert main(["--input", str(path)]) == 0
        assert "no liquidation scenario" in capsys.readouterr().out

    def test_missing_input(self, tmp_path, capsys):
        assert main(["--input", str(tmp_path / "missing.json")]) == 1
        assert "error:" in capsys.readouterr().err

    def test_invalid_config(self, tmp_path, capsys):
        path = _write(tmp_path, make_payload())
        config = _write(tmp_path, {"solver": {"max_iterations": 0}}, "config.json")
        assert main(["--input", str(path), "--config", str(config)]) == 1
        assert "max_iterations" in capsys.readouterr().err

    def test_malformed_snapshot(self, tmp_path, capsys):
        path = _write(tmp_path, make_payload(borrows=[{"symbol": "WETH", "amount": 1}]))
        assert main(["--input", str(path)]) == 1
        assert "invalid snapshot" in capsys.readouterr().err

    def test_invalid_number_in_snapshot(self, tmp_path, capsys):
        path = _write(tmp_path, make_payload(borrows=[{"symbol": "USDC", "amount": "n/a"}]))
        assert main(["--input", str(path)]) == 1
        assert "Invalid number 'n/a'" in capsys.readouterr().err
