import io

from rich.console import Console

from devops_agent import cli
from devops_agent.domain.exceptions import ApiError


class FakeOrchestrator:
    def __init__(self, error=None):
        self.inputs = []
        self._error = error

    def handle_user_turn(self, text):
        self.inputs.append(text)
        if self._error is not None:
            raise self._error


def _run(lines, orchestrator):
    out = io.StringIO()
    cli.run_repl(orchestrator, Console(file=out), stdin=io.StringIO(lines))
    return out.getvalue()


def test_repl_exit_command():
    orch = FakeOrchestrator()
    output = _run("get pods\n\n   \nQuit\nnever sent\n", orch)
    assert orch.inputs == ["get pods"]
    assert "Exiting application" in output


def test_repl_eof():
    orch = FakeOrchestrator()
    output = _run("helm list\n", orch)
    assert orch.inputs == ["helm list"]
    assert "Exiting due to EOF (CTRL+D)" in output


def test_repl_reports_turn_errors_and_continues():
    orch = FakeOrchestrator(error=ApiError(status=500, body="boom"))
    output = _run("first\nsecond\nexit\n", orch)
    assert orch.inputs == ["first", "second"]
    assert output.count(cli.GENERIC_ERROR_MESSAGE) == 2


def test_build_parser():
    args = cli.build_parser().parse_args(["--config", "c.yaml", "--unsafe", "--log-level", "debug"])
    assert args.config == "c.yaml"
    assert args.unsafe is True
    assert args.log_level == "debug"
    assert cli.build_parser().parse_args([]).log_level is None


def test_main_without_api_key_exits_1(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("AGENT_CONFIG_FILE", raising=False)
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(f"llm:\n  apiKey: YOUR_API_KEY_HERE\nlog_dir: {tmp_path / 'logs'}\n", encoding="utf-8")
    assert cli.main(["--config", str(cfg_file)]) == 1
    assert (tmp_path / "logs" / "agent.log").exists()


def test_main_missing_config_exits_1(tmp_path):
    assert cli.main(["--config", str(tmp_path / "nope.yaml")]) == 1


def test_main_reports_invalid_discovered_config(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("AGENT_CONFIG_FILE", raising=False)
    (tmp_path / "config.yaml").write_text("log_level: verbose\n", encoding="utf-8")
    assert cli.main([]) == 1
    assert "Error loading configuration" in capsys.readouterr().out
