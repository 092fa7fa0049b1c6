"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry
from provisioner.core.models.recipe import PackageRecipe
from provisioner.core.models.state import BinaryProbe, DirectoryProbe, InstallState


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """A throwaway $HOME so ``~`` in recipes points into tmp_path."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def recipe() -> PackageRecipe:
    """A small two-component package with one profile block."""
    return PackageRecipe.model_validate({
        "name": "demo",
        "description": "Demo tool",
        "binary": "demo",
        "candidate_paths": ["~/.demo"],
        "markers": ["DEMO_ROOT"],
        "components": [
            {
                "name": "deps",
                "adapter": "apt",
                "params": {"operation": "install", "packages": ["libdemo-dev"]},
                "check": {"system_packages": ["libdemo-dev"]},
            },
            {
                "name": "core",
                "adapter": "git",
                "params": {"url": "https://example.invalid/demo.git", "dest": "~/.demo"},
                "check": {"paths": ["~/.demo/bin/demo"]},
            },
        ],
        "config_blocks": [
            {
                "file": "~/.bashrc",
                "marker": "DEMO_ROOT",
                "title": "demo",
                "body": 'export DEMO_ROOT="$HOME/.demo"\nexport PATH="$DEMO_ROOT/bin:$PATH"\n',
            },
        ],
        "purge": {"paths": ["~/.demo"], "system_packages": ["demo"]},
        "postconditions": [{"kind": "path", "value": "~/.demo/bin/demo"}],
        "usage": ["demo --help"],
    })


@pytest.fixture
def fresh_state() -> InstallState:
    """Nothing of the package on the host."""
    return InstallState(
        package_name="demo",
        binary=BinaryProbe(name="demo"),
        directories=[DirectoryProbe(path="/home/u/.demo")],
        shell_config_markers={"/home/u/.bashrc": False},
        components={"deps": False, "core": False},
        config_blocks={"DEMO_ROOT@~/.bashrc": False},
    )


@pytest.fixture
def intact_state() -> InstallState:
    """A complete install: binary, directory, profile block all present."""
    return InstallState(
        package_name="demo",
        binary=BinaryProbe(name="demo", found=True, path="/home/u/.demo/bin/demo"),
        directories=[DirectoryProbe(path="/home/u/.demo", exists=True)],
        shell_config_markers={"/home/u/.bashrc": True, "/home/u/.profile": False},
        components={"deps": True, "core": True},
        config_blocks={"DEMO_ROOT@~/.bashrc": True},
        reported_version="1.2.3",
    )


@pytest.fixture
def mock_registry() -> tuple[AdapterRegistry, MockAdapter]:
    """A registry that routes every action to one MockAdapter."""
    mock = MockAdapter()
    registry = AdapterRegistry()
    registry.set_mock_mode(True, mock)
    return registry, mock
