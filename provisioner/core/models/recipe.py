"""
Recipe model — package knowledge.

A recipe describes one provisionable package: where evidence of an
existing install lives, which components make up a full install, which
shell-profile block it needs, what a purge removes, and what must hold
afterwards. Recipes are loaded from ``recipes/<name>.yml``.
"""

from __future__ import annotations

import os
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


def expand_path(value: str) -> str:
    """Expand ``~`` and ``$VARS`` in a recipe path."""
    return os.path.expanduser(os.path.expandvars(value))


class RetryPolicy(BaseModel):
    """Retry policy attached to an Install step.

    Each source (the component's own params, then every entry of
    ``fallback_sources`` merged over them) gets ``max_attempts`` tries
    with exponential backoff between tries.
    """

    max_attempts: int = Field(default=1, ge=1)
    backoff_seconds: float = Field(default=0.0, ge=0)
    backoff_factor: float = Field(default=2.0, ge=1)
    fallback_sources: list[dict[str, Any]] = Field(default_factory=list)

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based, after a failure)."""
        if self.backoff_seconds <= 0:
            return 0.0
        return self.backoff_seconds * (self.backoff_factor ** (attempt - 1))


class CheckRule(BaseModel):
    """How the prober decides a component is present.

    Every declared check must pass. A rule with no checks cannot tell,
    and the component is assumed present whenever the package is.
    """

    binary: str | None = None
    paths: list[str] = Field(default_factory=list)
    system_packages: list[str] = Field(default_factory=list)
    command: str | None = None      # read-only shell test, exit 0 = present

    @property
    def empty(self) -> bool:
        return not (self.binary or self.paths or self.system_packages or self.command)


class ComponentSpec(BaseModel):
    """One installable piece of a package (apt deps, a git clone, a download)."""

    name: str
    adapter: Literal["apt", "git", "download", "shell"]
    description: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    sudo: bool = False
    check: CheckRule = Field(default_factory=CheckRule)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class ConfigBlockSpec(BaseModel):
    """A marked block the package needs in a shell profile."""

    file: str = "~/.bashrc"
    marker: str
    title: str = ""
    body: str

    @field_validator("marker")
    @classmethod
    def _marker_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("marker must not be blank")
        return v

    @property
    def key(self) -> str:
        """Identity of this block on the host: marker plus target file."""
        return f"{self.marker}@{self.file}"


class PurgeSpec(BaseModel):
    """What a purge removes. Profile blocks are derived from ``markers``."""

    paths: list[str] = Field(default_factory=list)
    system_paths: list[str] = Field(default_factory=list)   # removed with sudo
    system_packages: list[str] = Field(default_factory=list)
    commands: list[str] = Field(default_factory=list)       # e.g. stop a service first


class Postcondition(BaseModel):
    """A read-only check evaluated after execution."""

    kind: Literal["binary", "path", "command"]
    value: str
    description: str = ""
    required: bool = False       # unmet → run fails (exit 1)

    @property
    def label(self) -> str:
        return self.description or f"{self.kind}:{self.value}"


class PreconditionSpec(BaseModel):
    """Host requirements checked before any mutation."""

    requires_apt: bool = True
    forbid_root: bool = True
    network: bool = True
    architectures: list[str] = Field(default_factory=list)  # empty = any
    min_disk_gb: int = 0
    # advisory only, reported as warnings
    min_ram_gb: int = 0
    cpu_flags_any: list[str] = Field(default_factory=list)


class PackageRecipe(BaseModel):
    """Everything the reconciler knows about one package."""

    name: str
    description: str = ""

    # ── Detection ────────────────────────────────────────────────
    binary: str | None = None
    version_command: list[str] = Field(default_factory=list)
    version_pattern: str = r"(\d+\.\d+(?:\.\d+)?)"
    candidate_paths: list[str] = Field(default_factory=list)
    # candidate path -> child that must exist too (e.g. "bin/studio.sh")
    candidate_requires: dict[str, str] = Field(default_factory=dict)
    shell_config_files: list[str] = Field(default_factory=list)  # empty = config default
    markers: list[str] = Field(default_factory=list)
    system_packages: list[str] = Field(default_factory=list)

    # ── Target state ─────────────────────────────────────────────
    preconditions: PreconditionSpec = Field(default_factory=PreconditionSpec)
    components: list[ComponentSpec] = Field(default_factory=list)
    config_blocks: list[ConfigBlockSpec] = Field(default_factory=list)
    purge: PurgeSpec = Field(default_factory=PurgeSpec)
    postconditions: list[Postcondition] = Field(default_factory=list)
    usage: list[str] = Field(default_factory=list)

    @field_validator("components")
    @classmethod
    def _unique_component_names(cls, v: list[ComponentSpec]) -> list[ComponentSpec]:
        names = [c.name for c in v]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Duplicate component names: {', '.join(dupes)}")
        return v

    def get_component(self, name: str) -> ComponentSpec | None:
        """Look up a component by name."""
        for comp in self.components:
            if comp.name == name:
                return comp
        return None

    @property
    def all_markers(self) -> list[str]:
        """Detection markers plus every config block marker, deduplicated."""
        return list(dict.fromkeys(self.markers + [b.marker for b in self.config_blocks]))
