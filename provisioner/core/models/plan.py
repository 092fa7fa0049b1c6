"""
Plan model — the ordered steps a run will execute.

Steps form a tagged union on ``kind``. A plan is built once from one
InstallState and one operator decision, executed, and discarded.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, model_validator

from provisioner.core.models.recipe import ComponentSpec, Postcondition, RetryPolicy
from provisioner.core.models.state import Condition


class Choice(str, Enum):
    """Operator decision for an already-detected package."""

    KEEP_EXIT = "keep"
    REPAIR_UPDATE = "repair"
    PURGE_REINSTALL = "reinstall"
    CANCEL = "cancel"

    @property
    def menu_key(self) -> str:
        return str(list(Choice).index(self) + 1)

    @classmethod
    def from_menu(cls, answer: str) -> Choice | None:
        """Map a ``[1-4]`` menu answer to a Choice; None if invalid."""
        answer = answer.strip()
        for choice in cls:
            if choice.menu_key == answer:
                return choice
        return None


class ConfigBlock(BaseModel):
    """A delimited, idempotent block appended to a shell profile."""

    marker: str
    body: str
    title: str = ""

    @property
    def begin_line(self) -> str:
        return f"# >>> provisioner: {self.marker} >>>"

    @property
    def end_line(self) -> str:
        return f"# <<< provisioner: {self.marker} <<<"

    def render(self) -> str:
        lines = [self.begin_line]
        if self.title:
            lines.append(f"# {self.title}")
        lines.extend(self.body.rstrip("\n").splitlines())
        lines.append(self.end_line)
        return "\n".join(lines) + "\n"


class PurgeTarget(BaseModel):
    """One thing a purge removes. ``file`` is set for profile blocks only."""

    kind: Literal["path", "system_package", "profile_block", "command"]
    value: str
    sudo: bool = False
    file: str | None = None

    @property
    def label(self) -> str:
        if self.kind == "profile_block":
            return f"{self.value} block in {self.file}"
        return f"{self.kind.replace('_', ' ')} {self.value}"


class PurgeStep(BaseModel):
    kind: Literal["purge"] = "purge"
    targets: list[PurgeTarget] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return f"purge ({len(self.targets)} targets)"


class BackupStep(BaseModel):
    kind: Literal["backup"] = "backup"
    file: str

    @property
    def name(self) -> str:
        return f"backup {self.file}"


class InstallStep(BaseModel):
    kind: Literal["install"] = "install"
    component: ComponentSpec
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @property
    def name(self) -> str:
        return f"install {self.component.name}"


class ConfigureEnvStep(BaseModel):
    kind: Literal["configure_env"] = "configure_env"
    file: str
    block: ConfigBlock

    @property
    def name(self) -> str:
        return f"configure {self.block.marker} in {self.file}"


class VerifyStep(BaseModel):
    kind: Literal["verify"] = "verify"
    postconditions: list[Postcondition] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return "verify postconditions"


Step = Annotated[
    Union[PurgeStep, BackupStep, InstallStep, ConfigureEnvStep, VerifyStep],
    Field(discriminator="kind"),
]

MUTATING_KINDS = frozenset({"purge", "backup", "install", "configure_env"})


class ReconciliationPlan(BaseModel):
    """Ordered steps for one run.

    Validation refuses any plan where a purge follows an install, so a
    host is never left half purged on top of a fresh install.
    """

    package_name: str
    condition: Condition
    choice: Choice | None = None
    steps: list[Step] = Field(default_factory=list)

    @model_validator(mode="after")
    def _purge_before_install(self) -> ReconciliationPlan:
        seen_install = False
        for step in self.steps:
            if step.kind == "install":
                seen_install = True
            elif step.kind == "purge" and seen_install:
                raise ValueError("Purge step must precede every Install step")
        return self

    def indices_of(self, kind: str) -> list[int]:
        return [i for i, s in enumerate(self.steps) if s.kind == kind]

    @property
    def kinds(self) -> list[str]:
        return [s.kind for s in self.steps]

    @property
    def mutating_steps(self) -> int:
        return sum(1 for s in self.steps if s.kind in MUTATING_KINDS)

    @property
    def empty(self) -> bool:
        return not self.steps

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package_name,
            "condition": self.condition.value,
            "choice": self.choice.value if self.choice else None,
            "steps": [{"kind": s.kind, "name": s.name} for s in self.steps],
        }
