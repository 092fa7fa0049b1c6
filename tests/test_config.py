"""
Tests for the config loader and recipe discovery.
"""

from pathlib import Path

import pytest

from provisioner.core.config.loader import (
    CONFIG_ENV_VAR,
    ConfigError,
    ProvisionerConfig,
    find_config_file,
    load_config,
)
from provisioner.core.config.recipe_loader import (
    BUILTIN_RECIPES_DIR,
    discover_recipes,
    get_recipe,
    load_recipe,
)


@pytest.fixture(autouse=True)
def _no_user_config(monkeypatch, tmp_path):
    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "nohome"))


# ── Config loader ────────────────────────────────────────────────────


class TestLoadConfig:
    def test_defaults_without_file(self):
        config = load_config()
        assert config == ProvisionerConfig()
        assert config.confirmation_phrase == "CONFIRM"
        assert "~/.bashrc" in config.shell_config_files

    def test_explicit_file(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("confirmation_phrase: PURGE\ncommand_timeout: 60\n")
        config = load_config(path)
        assert config.confirmation_phrase == "PURGE"
        assert config.command_timeout == 60

    def test_wrapped_in_provisioner_key(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("provisioner:\n  shell_config_files: [~/.zshrc]\n")
        assert load_config(path).shell_config_files == ["~/.zshrc"]

    def test_env_var(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "env.yml"
        path.write_text("network_timeout: 3\n")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert find_config_file() == path
        assert load_config().network_timeout == 3

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("")
        assert load_config(path) == ProvisionerConfig()

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="Config file not found"):
            load_config(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("confirmation_phrase: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(path)

    def test_schema_error(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("command_timeout: soon\n")
        with pytest.raises(ConfigError, match="Invalid configuration"):
            load_config(path)

    def test_blank_phrase_rejected(self, tmp_path: Path):
        path = tmp_path / "config.yml"
        path.write_text("confirmation_phrase: '   '\n")
        with pytest.raises(ConfigError, match="confirmation_phrase"):
            load_config(path)


# ── Recipe loader ────────────────────────────────────────────────────


class TestRecipeLoader:
    def test_load_recipe_defaults_name_to_stem(self, tmp_path: Path):
        path = tmp_path / "tool.yml"
        path.write_text("description: A tool\nbinary: tool\n")
        recipe = load_recipe(path)
        assert recipe is not None
        assert recipe.name == "tool"

    def test_invalid_recipe_is_skipped(self, tmp_path: Path):
        path = tmp_path / "bad.yml"
        path.write_text("components:\n  - name: a\n    adapter: brew\n")
        assert load_recipe(path) is None

    def test_non_mapping_is_skipped(self, tmp_path: Path):
        path = tmp_path / "list.yml"
        path.write_text("- 1\n")
        assert load_recipe(path) is None

    def test_user_recipe_overrides_builtin(self, tmp_path: Path):
        (tmp_path / "pyenv.yml").write_text("name: pyenv\ndescription: my own pyenv\n")
        (tmp_path / "extra.yaml").write_text("description: extra tool\n")
        (tmp_path / "notes.txt").write_text("ignored")
        recipes = discover_recipes(tmp_path)
        assert recipes["pyenv"].description == "my own pyenv"
        assert "extra" in recipes
        assert "notes" not in recipes

    def test_missing_user_dir_is_fine(self, tmp_path: Path):
        recipes = discover_recipes(tmp_path / "missing")
        assert "docker" in recipes

    def test_unknown_package(self):
        with pytest.raises(ConfigError, match="Unknown package 'nope'. Available: "):
            get_recipe("nope")


# ── Built-in recipes ─────────────────────────────────────────────────


class TestBuiltinRecipes:
    def test_all_builtins_load(self):
        files = sorted(p.stem for p in BUILTIN_RECIPES_DIR.glob("*.yml"))
        recipes = discover_recipes()
        assert files == ["android-studio", "docker", "nodejs", "pyenv"]
        assert sorted(recipes) == files

    def test_pyenv(self):
        recipe = get_recipe("pyenv")
        assert recipe.binary == "pyenv"
        assert [b.marker for b in recipe.config_blocks] == ["PYENV_ROOT"]
        core = recipe.get_component("pyenv")
        assert core.adapter == "git"
        assert core.params["dest"] == "~/.pyenv"

    def test_nodejs_configures_two_profiles(self):
        recipe = get_recipe("nodejs")
        assert [b.key for b in recipe.config_blocks] == ["NVM_DIR@~/.bashrc", "NVM_DIR@~/.profile"]
        assert recipe.system_packages == ["nodejs", "npm"]

    def test_docker_purges_service_first(self):
        recipe = get_recipe("docker")
        assert recipe.purge.commands == ["systemctl stop docker"]
        assert "/var/lib/docker" in recipe.purge.system_paths
        assert not recipe.config_blocks

    def test_android_studio_retry_policy(self):
        recipe = get_recipe("android-studio")
        studio = recipe.get_component("studio")
        assert studio.retry.max_attempts == 3
        assert len(studio.retry.fallback_sources) == 3
        assert all("url" in src for src in studio.retry.fallback_sources)
        assert recipe.preconditions.architectures == ["x86_64"]
        assert recipe.preconditions.min_disk_gb == 16
        assert recipe.candidate_requires["/opt/android-studio"] == "bin/studio.sh"

    @pytest.mark.parametrize("name, label", [
        ("pyenv", "pyenv executable present"),
        ("nodejs", "nvm installed"),
        ("docker", "docker CLI on PATH"),
        ("android-studio", "Android Studio installed"),
    ])
    def test_one_required_postcondition(self, name, label):
        required = [pc.label for pc in get_recipe(name).postconditions if pc.required]
        assert required == [label]
