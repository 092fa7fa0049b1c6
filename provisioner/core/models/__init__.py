"""
Domain models — Pydantic types for the provisioner.

All models are re-exported here for convenient access:

    from provisioner.core.models import InstallState, PackageRecipe, ReconciliationPlan
"""

from provisioner.core.models.action import Action, Receipt
from provisioner.core.models.plan import (
    BackupStep,
    Choice,
    ConfigBlock,
    ConfigureEnvStep,
    InstallStep,
    PurgeStep,
    PurgeTarget,
    ReconciliationPlan,
    Step,
    VerifyStep,
)
from provisioner.core.models.recipe import (
    CheckRule,
    ComponentSpec,
    ConfigBlockSpec,
    PackageRecipe,
    Postcondition,
    PreconditionSpec,
    PurgeSpec,
    RetryPolicy,
)
from provisioner.core.models.state import (
    BinaryProbe,
    Condition,
    DirectoryProbe,
    InstallState,
    ProbeDegraded,
)

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # plan.py
    "BackupStep",
    "Choice",
    "ConfigBlock",
    "ConfigureEnvStep",
    "InstallStep",
    "PurgeStep",
    "PurgeTarget",
    "ReconciliationPlan",
    "Step",
    "VerifyStep",
    # recipe.py
    "CheckRule",
    "ComponentSpec",
    "ConfigBlockSpec",
    "PackageRecipe",
    "Postcondition",
    "PreconditionSpec",
    "PurgeSpec",
    "RetryPolicy",
    # state.py
    "BinaryProbe",
    "Condition",
    "DirectoryProbe",
    "InstallState",
    "ProbeDegraded",
]
