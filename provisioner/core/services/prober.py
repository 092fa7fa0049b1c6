"""
State prober — read-only inspection of the host for one package.

Every signal is independent and optional. A signal that cannot be read
(permission denied, a hung query) counts as "not found" and is recorded
as a ``ProbeDegraded`` entry so the final report can show it.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import stat
import subprocess
from pathlib import Path

from provisioner.adapters.packages.apt import is_package_installed
from provisioner.core.config.loader import ProvisionerConfig
from provisioner.core.models.recipe import (
    CheckRule,
    ComponentSpec,
    ConfigBlockSpec,
    PackageRecipe,
    Postcondition,
    expand_path,
)
from provisioner.core.models.state import (
    BinaryProbe,
    DirectoryProbe,
    InstallState,
    ProbeDegraded,
)
from provisioner.core.services.profile import read_profile

logger = logging.getLogger(__name__)

_QUERY_TIMEOUT = 10


# ── Signal helpers ──────────────────────────────────────────────


def _stat_path(path: str) -> tuple[os.stat_result | None, str | None]:
    """``(stat, problem)``. Absent paths are ``(None, None)``."""
    try:
        return os.stat(path), None
    except (FileNotFoundError, NotADirectoryError):
        return None, None
    except OSError as e:
        return None, e.strerror or str(e)


def _command_succeeds(command: str, timeout: int = _QUERY_TIMEOUT) -> tuple[bool, str | None]:
    """Run a read-only shell test. ``(exit == 0, problem)``."""
    try:
        r = subprocess.run(
            ["sh", "-c", command],
            capture_output=True, text=True, timeout=timeout,
        )
        return r.returncode == 0, None
    except subprocess.TimeoutExpired:
        return False, f"timed out after {timeout}s"
    except OSError as e:
        return False, str(e)


def read_version(command: list[str], pattern: str) -> str | None:
    """Best-effort version string from a tool's version flag.

    Some tools print their version on stderr, so both streams are
    searched. Any failure yields None.
    """
    if not command or not shutil.which(command[0]):
        return None
    try:
        result = subprocess.run(
            command, capture_output=True, text=True, timeout=_QUERY_TIMEOUT,
        )
    except (subprocess.TimeoutExpired, OSError) as e:
        logger.debug("Version command %s failed: %s", command, e)
        return None
    output = (result.stdout or "") + (result.stderr or "")
    match = re.search(pattern, output)
    if match:
        return match.group(1) if match.groups() else match.group(0)
    return None


def _probe_directory(
    path: str,
    required_child: str | None,
    degraded: list[ProbeDegraded],
) -> DirectoryProbe:
    expanded = expand_path(path)
    st, problem = _stat_path(expanded)
    if problem:
        degraded.append(ProbeDegraded(signal="directory", target=expanded, detail=problem))
    exists = st is not None and stat.S_ISDIR(st.st_mode)
    if exists and required_child:
        child = os.path.join(expanded, required_child)
        child_st, problem = _stat_path(child)
        if problem:
            degraded.append(ProbeDegraded(signal="directory", target=child, detail=problem))
        exists = child_st is not None
    return DirectoryProbe(path=expanded, exists=exists)


def _read_profile_text(path: str, degraded: list[ProbeDegraded]) -> str | None:
    try:
        return read_profile(Path(path))
    except OSError as e:
        degraded.append(
            ProbeDegraded(signal="shell_config", target=path, detail=e.strerror or str(e))
        )
        return None


def _package_installed(pkg: str, degraded: list[ProbeDegraded]) -> bool:
    installed, problem = is_package_installed(pkg, timeout=_QUERY_TIMEOUT)
    if problem:
        degraded.append(ProbeDegraded(signal="system_package", target=pkg, detail=problem))
    return installed


def check_component(
    rule: CheckRule,
    package_detected: bool,
    degraded: list[ProbeDegraded] | None = None,
) -> bool:
    """Whether a component is present according to its check rule.

    Every declared check must pass. An empty rule follows the package:
    present exactly when the package is detected.
    """
    degraded = degraded if degraded is not None else []
    if rule.empty:
        return package_detected

    if rule.binary and not shutil.which(rule.binary):
        return False
    for path in rule.paths:
        st, problem = _stat_path(expand_path(path))
        if problem:
            degraded.append(ProbeDegraded(signal="component", target=path, detail=problem))
        if st is None:
            return False
    for pkg in rule.system_packages:
        if not _package_installed(pkg, degraded):
            return False
    if rule.command:
        ok, problem = _command_succeeds(rule.command)
        if problem:
            degraded.append(ProbeDegraded(signal="component", target=rule.command, detail=problem))
        if not ok:
            return False
    return True


# ── Probe ───────────────────────────────────────────────────────


def probe(
    package_name: str,
    candidate_paths: list[str],
    shell_config_files: list[str],
    markers: list[str],
    *,
    binary: str | None = None,
    system_packages: list[str] | None = None,
    candidate_requires: dict[str, str] | None = None,
    components: list[ComponentSpec] | None = None,
    config_blocks: list[ConfigBlockSpec] | None = None,
    version_command: list[str] | None = None,
    version_pattern: str = r"(\d+\.\d+(?:\.\d+)?)",
) -> InstallState:
    """Inspect the host for evidence of ``package_name``.

    Never mutates anything. The package counts as detected when any of
    binary in PATH, a candidate directory, or a package-manager record
    is present.
    """
    degraded: list[ProbeDegraded] = []
    candidate_requires = candidate_requires or {}

    # Binary
    binary_probe = BinaryProbe(name=binary)
    if binary:
        resolved = shutil.which(binary)
        binary_probe = BinaryProbe(name=binary, found=resolved is not None, path=resolved)

    # Candidate directories
    directories = [
        _probe_directory(p, candidate_requires.get(p), degraded)
        for p in candidate_paths
    ]

    # Shell profiles
    profile_text: dict[str, str | None] = {}
    shell_markers: dict[str, bool] = {}
    for f in shell_config_files:
        path = expand_path(f)
        if path not in profile_text:
            profile_text[path] = _read_profile_text(path, degraded)
        text = profile_text[path]
        shell_markers[path] = bool(text) and any(m in text for m in markers)

    # Package-manager records
    packages = {pkg: _package_installed(pkg, degraded) for pkg in (system_packages or [])}

    detected = bool(
        binary_probe.found
        or any(d.exists for d in directories)
        or any(packages.values())
    )

    # Per-block presence, for repair planning
    blocks: dict[str, bool] = {}
    for spec in config_blocks or []:
        path = expand_path(spec.file)
        if path not in profile_text:
            profile_text[path] = _read_profile_text(path, degraded)
        text = profile_text[path]
        blocks[spec.key] = bool(text) and spec.marker in text

    component_state = {
        comp.name: check_component(comp.check, detected, degraded)
        for comp in components or []
    }

    version = None
    if binary_probe.found and version_command:
        version = read_version(version_command, version_pattern)

    state = InstallState(
        package_name=package_name,
        binary=binary_probe,
        directories=directories,
        shell_config_markers=shell_markers,
        system_packages=packages,
        components=component_state,
        config_blocks=blocks,
        reported_version=version,
        degraded=degraded,
    )
    logger.info(
        "Probed %s: detected=%s condition=%s degraded=%d",
        package_name, state.detected, state.condition.value, len(degraded),
    )
    return state


def probe_recipe(recipe: PackageRecipe, config: ProvisionerConfig | None = None) -> InstallState:
    """Probe using everything a recipe declares."""
    config = config or ProvisionerConfig()
    files = list(recipe.shell_config_files or config.shell_config_files)
    for block in recipe.config_blocks:
        if block.file not in files:
            files.append(block.file)

    return probe(
        recipe.name,
        recipe.candidate_paths,
        files,
        recipe.all_markers,
        binary=recipe.binary,
        system_packages=recipe.system_packages,
        candidate_requires=recipe.candidate_requires,
        components=recipe.components,
        config_blocks=recipe.config_blocks,
        version_command=recipe.version_command,
        version_pattern=recipe.version_pattern,
    )


def check_postconditions(postconditions: list[Postcondition]) -> list[Postcondition]:
    """Evaluate postconditions read-only.

    Returns:
        The unmet ones, in declaration order (empty when all hold).
    """
    unmet: list[Postcondition] = []
    for pc in postconditions:
        if pc.kind == "binary":
            ok = shutil.which(pc.value) is not None
        elif pc.kind == "path":
            st, problem = _stat_path(expand_path(pc.value))
            ok = st is not None
            if problem:
                logger.warning("Cannot check %s: %s", pc.value, problem)
        else:
            ok, problem = _command_succeeds(pc.value, timeout=30)
            if problem:
                logger.warning("Postcondition command %r: %s", pc.value, problem)
        if not ok:
            unmet.append(pc)
    return unmet
