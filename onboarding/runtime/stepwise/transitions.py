"""
transitions.py - Declarative per-flow transition table

Wraps a validated FlowDefinition and answers (step, action, outcome) -> step.
Lookups are pure: the answer depends only on the arguments.
"""

from __future__ import annotations

import logging
from typing import FrozenSet, Iterable, Optional, Tuple, Union

from onboarding.config.flow_registry import FlowDefinition, FlowRegistry, StepDefinition
from onboarding.runtime.errors import FlowConfigError
from onboarding.runtime.types import ACTION_ENUMS, FlowKind, Outcome

from .action_tracker import ActionKey, action_key

logger = logging.getLogger(__name__)


class TransitionTable:
    """Transition lookups for one flow."""

    def __init__(self, definition: FlowDefinition):
        self._definition = definition
        self._steps = {step.id: step for step in definition.steps}
        self.kind = FlowKind(definition.key)

    @classmethod
    def for_flow(cls, kind: Union[FlowKind, str], registry: Optional[FlowRegistry] = None) -> "TransitionTable":
        """Build the table for a flow kind from the (shared) flow registry."""
        kind = FlowKind(kind)
        registry = registry or FlowRegistry.get_instance()
        definition = registry.get_flow(kind.value)
        if definition is None:
            raise FlowConfigError(kind.value, ["flow is not registered"])
        return cls(definition)

    @property
    def definition(self) -> FlowDefinition:
        return self._definition

    @property
    def initial_step(self) -> str:
        return self._definition.initial_step

    @property
    def non_reversible_steps(self) -> FrozenSet[str]:
        return self._definition.non_reversible_steps

    def step(self, step_id: str) -> StepDefinition:
        try:
            return self._steps[step_id]
        except KeyError:
            raise FlowConfigError(self.kind.value, [f"unknown step '{step_id}'"])

    def has_step(self, step_id: str) -> bool:
        return step_id in self._steps

    def actions_for(self, step_id: str) -> Tuple[str, ...]:
        return self.step(step_id).actions

    def offers(self, step_id: str, action: ActionKey) -> bool:
        return action_key(action) in self.step(step_id).transitions

    def lookup(self, step_id: str, action: ActionKey, outcome: Union[Outcome, str]) -> Optional[str]:
        """Return the next step, or None when the table has no entry."""
        branches = self.step(step_id).transitions.get(action_key(action), {})
        return branches.get(action_key(outcome))

    def is_terminal(self, step_id: str) -> bool:
        return self.step(step_id).terminal

    def auto_action(self, step_id: str) -> Optional[str]:
        return self.step(step_id).auto_action

    def check_handlers(self, handler_names: Iterable[str]) -> None:
        """Require exactly one handler per action of the flow.

        Raises:
            FlowConfigError: On missing or unexpected handlers.
        """
        expected = {a.value for a in ACTION_ENUMS[self.kind]}
        bound = {action_key(name) for name in handler_names}
        problems = [f"no handler for action '{name}'" for name in sorted(expected - bound)]
        problems += [f"handler for unknown action '{name}'" for name in sorted(bound - expected)]
        if problems:
            raise FlowConfigError(self.kind.value, problems)
