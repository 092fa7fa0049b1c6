"""
Host preconditions — checked before any mutation.

Hard requirements (OS family, architecture, privilege, network, disk)
raise ``PreconditionError``. Advisory ones (RAM, CPU virtualization
flags) come back as warnings.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
import urllib.request

import distro

from provisioner.core.config.loader import ProvisionerConfig
from provisioner.core.errors import PreconditionError
from provisioner.core.models.recipe import PreconditionSpec
from provisioner.core.observability.logging_config import REPORTED

logger = logging.getLogger(__name__)

_ARCH_ALIASES = {"amd64": "x86_64", "arm64": "aarch64"}


# ── Host facts ──────────────────────────────────────────────────


def is_debian_family() -> bool:
    """Debian, Ubuntu and derivatives."""
    return distro.id() == "debian" or "debian" in distro.like().split()


def is_root() -> bool:
    return os.geteuid() == 0


def machine_arch() -> str:
    arch = platform.machine().lower()
    return _ARCH_ALIASES.get(arch, arch)


def network_reachable(url: str, timeout: int = 10) -> tuple[bool, str]:
    """HEAD request to ``url``. Returns ``(reachable, detail)``."""
    try:
        req = urllib.request.Request(
            url,
            method="HEAD",
            headers={"User-Agent": "provisioner/1.0"},
        )
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return True, f"HTTP {resp.getcode()}"
    except Exception as exc:
        return False, str(exc)[:200]


def free_disk_gb(path: str = "~") -> float:
    usage = shutil.disk_usage(os.path.expanduser(path))
    return usage.free / (1024 ** 3)


def total_ram_gb() -> float | None:
    """MemTotal from /proc/meminfo, None if unreadable."""
    try:
        with open("/proc/meminfo") as f:
            for line in f:
                if line.startswith("MemTotal:"):
                    return int(line.split()[1]) / (1024 ** 2)
    except (OSError, ValueError, IndexError):
        pass
    return None


def cpu_flags() -> set[str]:
    """CPU feature flags from /proc/cpuinfo."""
    try:
        with open("/proc/cpuinfo") as f:
            for line in f:
                if line.startswith("flags"):
                    return set(line.split(":", 1)[1].split())
    except OSError:
        pass
    return set()


# ── Checks ──────────────────────────────────────────────────────


def check_preconditions(
    spec: PreconditionSpec,
    config: ProvisionerConfig | None = None,
    *,
    skip_network: bool = False,
) -> list[str]:
    """Verify the host can be provisioned.

    Returns:
        Advisory warnings (possibly empty).

    Raises:
        PreconditionError: A hard requirement is not met.
    """
    config = config or ProvisionerConfig()
    warnings: list[str] = []

    if spec.requires_apt:
        if not is_debian_family():
            raise PreconditionError(
                "os",
                f"This installer supports Debian-based systems only (found {distro.name() or platform.system()})",
            )
        if not shutil.which("apt-get"):
            raise PreconditionError("os", "apt-get not found in PATH")

    if spec.forbid_root and is_root():
        raise PreconditionError(
            "privilege",
            "Do not run as root; run as a regular user with sudo privileges",
        )

    if spec.architectures:
        arch = machine_arch()
        if arch not in spec.architectures:
            raise PreconditionError(
                "architecture",
                f"Unsupported architecture {arch}; requires {', '.join(spec.architectures)}",
            )

    if spec.min_disk_gb:
        free = free_disk_gb()
        if free < spec.min_disk_gb:
            raise PreconditionError(
                "disk",
                f"Insufficient disk space: {free:.1f}GB free, {spec.min_disk_gb}GB required",
            )

    if spec.network and not skip_network:
        ok, detail = network_reachable(config.network_check_url, config.network_timeout)
        if not ok:
            raise PreconditionError(
                "network",
                f"No network connectivity ({config.network_check_url}): {detail}",
            )

    if spec.min_ram_gb:
        ram = total_ram_gb()
        if ram is None:
            warnings.append("Could not determine installed RAM")
        elif ram < spec.min_ram_gb:
            warnings.append(
                f"Only {ram:.1f}GB RAM; at least {spec.min_ram_gb}GB recommended"
            )

    if spec.cpu_flags_any and not (cpu_flags() & set(spec.cpu_flags_any)):
        warnings.append(
            f"CPU virtualization flags ({', '.join(spec.cpu_flags_any)}) not found; "
            "hardware acceleration will be unavailable"
        )

    for w in warnings:
        logger.warning(w, extra=REPORTED)
    return warnings
