import pytest
from typer.testing import CliRunner

from codeswarm import __version__
from codeswarm.llm.router import AgentTier
from codeswarm.main import _run_in_background, _spawn_configs, app
from codeswarm.multi_agent.models import ExecutorOptions

runner = CliRunner()


def test_version():
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"codeswarm v{__version__}" in result.output


def test_config_shows_effective_settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "codeswarm.toml").write_text("[multi_agent]\nmax_concurrent = 7\n")

    result = runner.invoke(app, ["config"])

    assert result.exit_code == 0
    assert "Loading config from" in result.output
    assert '"max_concurrent": 7' in result.output


def test_multi_without_agents_is_a_usage_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("CHUTES_API_KEY", "test-key")

    result = runner.invoke(app, ["multi", "--json"])

    assert result.exit_code == 2


def test_multi_rejects_a_broken_batch_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    batch = tmp_path / "batch.json"
    batch.write_text('{"tasks": []}')

    result = runner.invoke(app, ["multi", "--batch", str(batch)])

    assert result.exit_code == 2
    assert "agents" in result.output


def test_spawn_configs_from_flags_and_batch():
    batch = {"agents": [{"task": "from file", "tier": "thorough", "name": "filed"}]}

    configs = _spawn_configs(["one", "two"], [AgentTier.FAST], batch)

    assert [c.task for c in configs] == ["from file", "one", "two"]
    assert configs[0].tier == "thorough"
    assert configs[0].name == "filed"
    assert configs[1].tier == configs[2].tier == AgentTier.FAST


def test_spawn_configs_pairs_tiers_with_tasks():
    configs = _spawn_configs(["a", "b", "c"], [AgentTier.FAST, AgentTier.THOROUGH], None)

    assert [c.tier for c in configs] == [AgentTier.FAST, AgentTier.THOROUGH, AgentTier.BALANCED]


def test_background_run_reraises_batch_errors():
    class ExplodingExecutor:
        def execute(self, request, options):
            raise RuntimeError("batch crashed")

    with pytest.raises(RuntimeError, match="batch crashed"):
        _run_in_background(ExplodingExecutor(), None, ExecutorOptions())
