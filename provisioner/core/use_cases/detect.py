"""
Detect use case — probe one package without changing anything.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from provisioner.core.config.loader import ConfigError, ProvisionerConfig
from provisioner.core.config.recipe_loader import get_recipe
from provisioner.core.models.recipe import PackageRecipe
from provisioner.core.models.state import InstallState
from provisioner.core.services.prober import probe_recipe

logger = logging.getLogger(__name__)


@dataclass
class DetectResult:
    """Result of the detect use case."""

    package: str
    recipe: PackageRecipe | None = None
    state: InstallState | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        result: dict = {"package": self.package}
        if self.error:
            result["error"] = self.error
            return result
        if self.state:
            result["state"] = self.state.to_dict()
        return result


def run_detect(
    name: str,
    *,
    config: ProvisionerConfig | None = None,
    recipes_dir: Path | None = None,
    prober: Callable[[PackageRecipe, ProvisionerConfig], InstallState] = probe_recipe,
) -> DetectResult:
    """Probe the host for ``name``.

    Returns:
        DetectResult carrying the InstallState, or an error for an
        unknown package or invalid recipe.
    """
    config = config or ProvisionerConfig()
    result = DetectResult(package=name)

    if recipes_dir is None and config.recipes_dir:
        recipes_dir = Path(config.recipes_dir).expanduser()
    try:
        result.recipe = get_recipe(name, recipes_dir)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.state = prober(result.recipe, config)
    return result
