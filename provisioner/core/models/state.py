"""
InstallState — what exists on the host for one package, at one instant.

The prober builds it; nobody mutates it. To see the effect of a run,
probe again and compare.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Condition(str, Enum):
    """Planner entry state derived from an InstallState."""

    FRESH = "fresh"
    DETECTED_INTACT = "detected_intact"
    DETECTED_PARTIAL = "detected_partial"


class BinaryProbe(BaseModel):
    """PATH lookup result."""

    model_config = ConfigDict(frozen=True)

    name: str | None = None
    found: bool = False
    path: str | None = None


class DirectoryProbe(BaseModel):
    """One candidate install directory."""

    model_config = ConfigDict(frozen=True)

    path: str
    exists: bool = False


class ProbeDegraded(BaseModel):
    """A detection signal that could not be read; counted as not found."""

    model_config = ConfigDict(frozen=True)

    signal: str        # e.g. "directory", "shell_config", "system_package", "version"
    target: str
    detail: str

    def __str__(self) -> str:
        return f"{self.signal} {self.target}: {self.detail}"


class InstallState(BaseModel):
    """Immutable snapshot of one package's footprint on the host."""

    model_config = ConfigDict(frozen=True)

    package_name: str
    binary: BinaryProbe = Field(default_factory=BinaryProbe)
    directories: list[DirectoryProbe] = Field(default_factory=list)
    shell_config_markers: dict[str, bool] = Field(default_factory=dict)
    system_packages: dict[str, bool] = Field(default_factory=dict)
    components: dict[str, bool] = Field(default_factory=dict)
    config_blocks: dict[str, bool] = Field(default_factory=dict)  # block key -> marker present in its file
    reported_version: str | None = None
    degraded: list[ProbeDegraded] = Field(default_factory=list)

    # ── Derived ──────────────────────────────────────────────────

    @property
    def binary_found(self) -> bool:
        return self.binary.found

    @property
    def directories_found(self) -> list[str]:
        return [d.path for d in self.directories if d.exists]

    @property
    def packages_found(self) -> list[str]:
        return [name for name, installed in self.system_packages.items() if installed]

    @property
    def detected(self) -> bool:
        """OR across independent signals; any one is enough."""
        return bool(self.binary.found or self.directories_found or self.packages_found)

    @property
    def configured(self) -> bool:
        """Whether any probed profile carries a marker."""
        return any(self.shell_config_markers.values())

    @property
    def missing_components(self) -> list[str]:
        return [name for name, present in self.components.items() if not present]

    @property
    def missing_config_blocks(self) -> list[str]:
        return [marker for marker, present in self.config_blocks.items() if not present]

    @property
    def condition(self) -> Condition:
        if not self.detected:
            return Condition.FRESH
        if self.missing_components or self.missing_config_blocks:
            return Condition.DETECTED_PARTIAL
        return Condition.DETECTED_INTACT

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["detected"] = self.detected
        data["configured"] = self.configured
        data["condition"] = self.condition.value
        data["degraded"] = [str(d) for d in self.degraded]
        return data
