"""
Tests for CLI commands — list, detect, install, and global options.

The host is faked: probes return canned states, preconditions pass, and
every adapter action goes to a MockAdapter.
"""

import json
import logging
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from provisioner.core.config.loader import CONFIG_ENV_VAR
from provisioner.core.models.state import ProbeDegraded
from provisioner.core.use_cases import detect as detect_uc
from provisioner.core.use_cases import reconcile as reconcile_uc
from provisioner.main import cli


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def recipes_dir(tmp_path: Path, recipe) -> Path:
    path = tmp_path / "recipes"
    path.mkdir()
    (path / "demo.yml").write_text(yaml.safe_dump(recipe.model_dump(mode="json")))
    return path


@pytest.fixture
def host(monkeypatch, mock_registry, home, fresh_state):
    """Route the use cases through canned states and the mock registry."""
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    registry, mock = mock_registry
    current = {"state": fresh_state, "queue": []}

    real_reconcile = reconcile_uc.run_reconcile
    real_detect = detect_uc.run_detect

    def prober(recipe, config):
        if current["queue"]:
            return current["queue"].pop(0)
        return current["state"]

    def fake_reconcile(name, operator, **kwargs):
        return real_reconcile(
            name, operator,
            registry=registry,
            sleep=lambda s: None,
            prober=prober,
            precheck=lambda spec, config, skip_network=False: [],
            **kwargs,
        )

    def fake_detect(name, **kwargs):
        return real_detect(name, prober=lambda recipe, config: current["state"], **kwargs)

    monkeypatch.setattr(reconcile_uc, "run_reconcile", fake_reconcile)
    monkeypatch.setattr(detect_uc, "run_detect", fake_detect)
    return current, mock


def invoke(recipes_dir, *args, input=None):
    return CliRunner().invoke(cli, ["-q", "--recipes-dir", str(recipes_dir), *args], input=input)


# ── Global ───────────────────────────────────────────────────────────


class TestCLIGlobal:
    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "idempotent developer-environment installs" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_missing_config_file(self, tmp_path: Path):
        result = CliRunner().invoke(cli, ["--config", str(tmp_path / "none.yml"), "list"])
        assert result.exit_code == 1
        assert "Config file not found" in result.output


class TestListCommand:
    def test_json(self, host, recipes_dir):
        result = invoke(recipes_dir, "list", "--json")
        assert result.exit_code == 0
        names = [r["name"] for r in json.loads(result.stdout)]
        assert {"demo", "pyenv", "nodejs", "docker", "android-studio"} <= set(names)

    def test_human(self, host, recipes_dir):
        result = invoke(recipes_dir, "list")
        assert result.exit_code == 0
        assert "demo  — Demo tool" in result.output


class TestDetectCommand:
    def test_json(self, host, recipes_dir, intact_state):
        current, _ = host
        current["state"] = intact_state
        result = invoke(recipes_dir, "detect", "demo", "--json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["state"]["condition"] == "detected_intact"
        assert data["state"]["reported_version"] == "1.2.3"

    def test_human(self, host, recipes_dir, intact_state):
        current, _ = host
        current["state"] = intact_state
        result = invoke(recipes_dir, "detect", "demo")
        assert result.exit_code == 0
        assert "demo is installed (complete)" in result.output
        assert "configured in /home/u/.bashrc" in result.output

    def test_unknown_package(self, host, recipes_dir):
        result = invoke(recipes_dir, "detect", "nope")
        assert result.exit_code == 1
        assert "Unknown package 'nope'" in result.output


# ── Install ──────────────────────────────────────────────────────────


class TestInstallFresh:
    def test_installs(self, host, recipes_dir, home):
        _, mock = host
        result = invoke(recipes_dir, "install", "demo", "--yes")
        assert result.exit_code == 0, result.output
        assert "✅ demo is ready" in result.output
        assert [c.action.id for c in mock.call_log] == ["install:deps", "install:core"]
        assert "DEMO_ROOT" in (home / ".bashrc").read_text()

    def test_declined(self, host, recipes_dir, home):
        _, mock = host
        result = invoke(recipes_dir, "install", "demo", input="n\n")
        assert result.exit_code == 0
        assert "⊘ cancelled" in result.output
        assert mock.call_count == 0
        assert not (home / ".bashrc").exists()

    def test_confirmed_interactively(self, host, recipes_dir):
        result = invoke(recipes_dir, "install", "demo", input="yes\n")
        assert result.exit_code == 0
        assert "Do you want to continue?" in result.output

    def test_dry_run(self, host, recipes_dir, home):
        _, mock = host
        result = invoke(recipes_dir, "install", "demo", "--yes", "--dry-run")
        assert result.exit_code == 0
        assert "Dry run complete, nothing changed" in result.output
        assert mock.call_count == 0
        assert list(home.iterdir()) == []

    def test_install_failure(self, host, recipes_dir):
        _, mock = host
        mock.set_failure("install:deps", error="E: Unable to locate package libdemo-dev", exit_status=100)
        result = invoke(recipes_dir, "install", "demo", "--yes")
        assert result.exit_code == 1
        assert "exit status: 100" in result.output
        assert mock.calls_for("install:core") == []

    def test_required_postcondition_unmet(self, host, recipes_dir, recipe):
        data = recipe.model_dump(mode="json")
        data["postconditions"][0]["required"] = True
        (recipes_dir / "demo.yml").write_text(yaml.safe_dump(data))

        result = invoke(recipes_dir, "install", "demo", "--yes")

        assert result.exit_code == 1
        assert "❌ demo verification failed" in result.output
        assert "• path:~/.demo/bin/demo" in result.output
        assert "is ready" not in result.output

    def test_post_check_degraded_is_printed(self, host, recipes_dir, fresh_state, intact_state):
        current, _ = host
        after = intact_state.model_copy(update={
            "degraded": [ProbeDegraded(signal="version", target="demo", detail="timed out")],
        })
        current["queue"] = [fresh_state, after]

        result = invoke(recipes_dir, "install", "demo", "--yes")

        assert result.exit_code == 0
        assert "• Probe degraded: version demo: timed out" in result.output

class TestInstallDetected:
    @pytest.fixture(autouse=True)
    def _intact(self, host, intact_state):
        host[0]["state"] = intact_state

    def test_invalid_then_cancel(self, host, recipes_dir):
        _, mock = host
        result = invoke(recipes_dir, "install", "demo", "--yes", input="9\n\n4\n")
        assert result.exit_code == 0
        assert "Invalid option '9'" in result.output
        assert "⊘ cancelled" in result.output
        assert mock.call_count == 0

    def test_keep(self, host, recipes_dir):
        result = invoke(recipes_dir, "install", "demo", "--yes", "--choice", "keep")
        assert result.exit_code == 0
        assert "demo left as is" in result.output

    def test_reinstall_wrong_phrase_json(self, host, recipes_dir):
        _, mock = host
        result = invoke(
            recipes_dir, "install", "demo", "--yes",
            "--choice", "reinstall", "--phrase", "confirm", "--json",
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["cancelled"] is True
        assert "plan" not in data
        assert mock.call_count == 0

    def test_reinstall_prompted_phrase(self, host, recipes_dir):
        _, mock = host
        result = invoke(recipes_dir, "install", "demo", "--yes", input="3\nCONFIRM\n")
        assert result.exit_code == 0, result.output
        assert "Type 'CONFIRM' to proceed" in result.output
        ids = [c.action.id for c in mock.call_log]
        assert ids[0] == "purge:system_package:demo"
        assert "install:core" in ids

    def test_json_exit_code_on_failure(self, host, recipes_dir):
        _, mock = host
        mock.set_failure("install:core", exit_status=128)
        result = invoke(
            recipes_dir, "install", "demo", "--yes",
            "--choice", "reinstall", "--phrase", "CONFIRM", "--json",
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["report"]["exit_status"] == 128
