"""
Mock adapter — test double for any adapter name.

Used by ``--dry-run``-style tests and the executor tests to simulate
apt, git or download outcomes without touching the host. Responses can
be scripted per action ID, including a sequence of receipts so retry
behavior can be exercised.
"""

from __future__ import annotations

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, list[Receipt]] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, *receipts: Receipt) -> None:
        """Script the receipts returned for an action ID, in order.

        The last receipt repeats once the sequence is exhausted.
        """
        self._responses[action_id] = list(receipts)

    def set_failure(
        self,
        action_id: str,
        error: str = "Mock failure",
        exit_status: int | None = 1,
    ) -> None:
        """Configure a specific action to fail every time."""
        self._responses[action_id] = [
            Receipt.failure(
                adapter=self._name,
                action_id=action_id,
                error=error,
                exit_status=exit_status,
            )
        ]

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        scripted = self._responses.get(context.action.id)
        if scripted:
            if len(scripted) > 1:
                return scripted.pop(0)
            return scripted[0]

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            exit_status=0,
            metadata={"mock": True},
        )

    def calls_for(self, action_id: str) -> list[ExecutionContext]:
        """Contexts received for one action ID."""
        return [c for c in self._call_log if c.action.id == action_id]

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._responses.clear()
