"""
Recipe loader — loads package recipes from YAML files.

Built-in recipes ship in ``provisioner/recipes/<name>.yml``. A user
recipes directory may add new packages or replace built-ins by name.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from provisioner.core.config.loader import ConfigError
from provisioner.core.models.recipe import PackageRecipe

logger = logging.getLogger(__name__)

BUILTIN_RECIPES_DIR = Path(__file__).resolve().parent.parent.parent / "recipes"


def load_recipe(path: Path) -> PackageRecipe | None:
    """Load a single recipe from a YAML file.

    Args:
        path: Path to a ``<name>.yml`` file.

    Returns:
        PackageRecipe, or None if loading fails.
    """
    try:
        raw = path.read_text(encoding="utf-8")
        data = yaml.safe_load(raw)
        if not isinstance(data, dict):
            logger.warning("Recipe file %s is not a mapping, skipping", path)
            return None
        data.setdefault("name", path.stem)
        recipe = PackageRecipe.model_validate(data)
        logger.debug("Loaded recipe: %s from %s", recipe.name, path)
        return recipe
    except Exception as e:
        logger.warning("Failed to load recipe from %s: %s", path, e)
        return None


def _load_dir(recipes_dir: Path) -> dict[str, PackageRecipe]:
    recipes: dict[str, PackageRecipe] = {}

    if not recipes_dir.is_dir():
        logger.debug("Recipes directory not found: %s", recipes_dir)
        return recipes

    for child in sorted(recipes_dir.iterdir()):
        if not child.is_file() or child.suffix not in (".yml", ".yaml"):
            continue
        recipe = load_recipe(child)
        if recipe:
            recipes[recipe.name] = recipe

    return recipes


def discover_recipes(extra_dir: Path | None = None) -> dict[str, PackageRecipe]:
    """Load built-in recipes, then overlay a user directory.

    A user recipe with the same name as a built-in replaces it entirely.
    """
    recipes = _load_dir(BUILTIN_RECIPES_DIR)
    if extra_dir is not None:
        overrides = _load_dir(extra_dir.expanduser())
        for name in overrides:
            if name in recipes:
                logger.info("User recipe '%s' overrides built-in", name)
        recipes.update(overrides)
    logger.info("Discovered %d recipes: %s", len(recipes), sorted(recipes))
    return recipes


def get_recipe(name: str, extra_dir: Path | None = None) -> PackageRecipe:
    """Resolve one recipe by name.

    Raises:
        ConfigError: If no recipe has that name.
    """
    recipes = discover_recipes(extra_dir)
    recipe = recipes.get(name)
    if recipe is None:
        available = ", ".join(sorted(recipes)) or "none"
        raise ConfigError(f"Unknown package '{name}'. Available: {available}")
    return recipe
