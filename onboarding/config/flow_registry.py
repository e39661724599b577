"""
flow_registry.py - Load onboarding flow definitions from flows.yaml

This module is the single source of truth for flow ordering, step metadata
and the per-flow transition tables. Definitions are validated against the
flow vocabulary enums at load time.

Usage:
    from onboarding.config.flow_registry import get_flow, get_flow_keys, get_flow_steps
    from onboarding.config.flow_registry import FlowRegistry
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Optional, Tuple

import yaml

from onboarding.runtime.errors import FlowConfigError
from onboarding.runtime.types.flows import ACTION_ENUMS, STEP_ENUMS, FlowKind, Outcome

logger = logging.getLogger(__name__)

_CONFIG_FILE = Path(__file__).parent / "flows.yaml"
_FLOWS_DIR = Path(__file__).parent / "flows"


@dataclass
class StepDefinition:
    """A single step within a flow.

    Attributes:
        id: Step identifier, unique within the flow
        index: 1-based position in the flow file
        title: Short heading shown to the user
        description: One-line explanation of the step
        reversible: False if back navigation must be refused while on this step
        terminal: True for the step that ends the session
        auto_action: Action invoked as soon as the step is entered going forward
        transitions: action -> outcome -> next step id
    """
    id: str
    index: int
    title: str
    description: str = ""
    reversible: bool = True
    terminal: bool = False
    auto_action: Optional[str] = None
    transitions: Dict[str, Dict[str, str]] = field(default_factory=dict)

    @property
    def actions(self) -> Tuple[str, ...]:
        """Actions offered on this step, in file order."""
        return tuple(self.transitions.keys())


@dataclass
class FlowDefinition:
    """A single flow definition from the registry."""
    key: str
    index: int
    title: str
    short_title: str
    description: str
    initial_step: str
    steps: Tuple[StepDefinition, ...] = ()

    def get_step(self, step_id: str) -> Optional[StepDefinition]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def step_ids(self) -> List[str]:
        return [s.id for s in self.steps]

    @property
    def non_reversible_steps(self) -> FrozenSet[str]:
        """Steps where back navigation is refused (terminal steps included)."""
        return frozenset(s.id for s in self.steps if s.terminal or not s.reversible)


class FlowRegistry:
    """Registry of all onboarding flows in display order."""

    _instance: Optional["FlowRegistry"] = None

    def __init__(self, config_path: Path = _CONFIG_FILE, flows_dir: Path = _FLOWS_DIR):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        self._flows: List[FlowDefinition] = []
        self._by_key: Dict[str, FlowDefinition] = {}

        for flow_data in data.get("flows", []):
            flow_key = flow_data["key"]
            initial_step, steps = self._load_flow_steps(flows_dir, flow_key)

            flow = FlowDefinition(
                key=flow_key,
                index=flow_data["index"],
                title=flow_data["title"],
                short_title=flow_data.get("short_title", flow_data["title"]),
                description=flow_data.get("description", ""),
                initial_step=initial_step,
                steps=steps,
            )
            validate_flow_definition(flow)
            self._flows.append(flow)
            self._by_key[flow.key] = flow

        logger.debug("Loaded %d flows from %s", len(self._flows), config_path)

    def _load_flow_steps(
        self, flows_dir: Path, flow_key: str
    ) -> Tuple[str, Tuple[StepDefinition, ...]]:
        """Load the initial step and steps from a per-flow YAML file."""
        flow_file = flows_dir / f"{flow_key}.yaml"

        if not flow_file.exists():
            raise FlowConfigError(flow_key, [f"missing flow file {flow_file}"])

        with open(flow_file) as f:
            flow_data = yaml.safe_load(f) or {}

        steps: List[StepDefinition] = []
        for idx, step_data in enumerate(flow_data.get("steps", []), start=1):
            transitions: Dict[str, Dict[str, str]] = {}
            for action, branches in (step_data.get("transitions") or {}).items():
                transitions[str(action)] = {
                    str(outcome): str(target) for outcome, target in (branches or {}).items()
                }

            step = StepDefinition(
                id=step_data["id"],
                index=idx,
                title=step_data.get("title", step_data["id"]),
                description=step_data.get("description", ""),
                reversible=step_data.get("reversible", True),
                terminal=step_data.get("terminal", False),
                auto_action=step_data.get("auto_action"),
                transitions=transitions,
            )
            steps.append(step)

        initial_step = flow_data.get("initial_step") or (steps[0].id if steps else "")
        return initial_step, tuple(steps)

    @classmethod
    def get_instance(cls, config_path: Path = _CONFIG_FILE) -> "FlowRegistry":
        if cls._instance is None:
            cls._instance = cls(config_path)
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset singleton for testing."""
        cls._instance = None

    @property
    def flow_order(self) -> List[str]:
        """Return list of flow keys in display order."""
        return [f.key for f in self._flows]

    @property
    def flows(self) -> List[FlowDefinition]:
        """Return all flow definitions in order."""
        return list(self._flows)

    def get_flow(self, key: str) -> Optional[FlowDefinition]:
        """Get flow by key."""
        return self._by_key.get(key)

    def get_steps(self, flow_key: str) -> List[StepDefinition]:
        """Get steps for a flow."""
        flow = self._by_key.get(flow_key)
        return list(flow.steps) if flow else []

    def get_step_index(self, flow_key: str, step_id: str) -> int:
        """Get 1-based step index within a flow."""
        flow = self._by_key.get(flow_key)
        if not flow:
            return 0
        step = flow.get_step(step_id)
        return step.index if step else 0


# =============================================================================
# Validation
# =============================================================================


def validate_flow_definition(flow: FlowDefinition) -> None:
    """Check a flow definition against its step and action enums.

    Raises:
        FlowConfigError: Listing every problem found, not just the first.
    """
    problems: List[str] = []

    try:
        kind = FlowKind(flow.key)
    except ValueError:
        raise FlowConfigError(flow.key, [f"unknown flow kind '{flow.key}'"])

    step_values = {s.value for s in STEP_ENUMS[kind]}
    action_values = {a.value for a in ACTION_ENUMS[kind]}
    outcome_values = {o.value for o in Outcome}
    defined = flow.step_ids

    if len(set(defined)) != len(defined):
        problems.append("duplicate step ids")
    for step_id in sorted(set(defined) - step_values):
        problems.append(f"step '{step_id}' is not a known step")
    for step_id in sorted(step_values - set(defined)):
        problems.append(f"step '{step_id}' is not defined")
    if flow.initial_step not in defined:
        problems.append(f"initial step '{flow.initial_step}' is not defined")
    if not any(s.terminal for s in flow.steps):
        problems.append("no terminal step")

    offered = set()
    for step in flow.steps:
        if step.terminal and step.transitions:
            problems.append(f"terminal step '{step.id}' declares transitions")
        if not step.terminal and not step.transitions:
            problems.append(f"step '{step.id}' offers no actions")
        if step.auto_action and step.auto_action not in step.transitions:
            problems.append(f"auto action '{step.auto_action}' is not offered by step '{step.id}'")
        for action, branches in step.transitions.items():
            offered.add(action)
            if action not in action_values:
                problems.append(f"step '{step.id}' offers unknown action '{action}'")
            if not branches:
                problems.append(f"action '{action}' on step '{step.id}' has no outcomes")
            for outcome, target in branches.items():
                if outcome not in outcome_values:
                    problems.append(f"unknown outcome '{outcome}' for '{step.id}.{action}'")
                if target not in defined:
                    problems.append(f"'{step.id}.{action}.{outcome}' targets undefined step '{target}'")

    for action in sorted(action_values - offered):
        problems.append(f"action '{action}' is not offered by any step")

    if problems:
        raise FlowConfigError(flow.key, problems)


# Module-level convenience functions
def _get_registry() -> FlowRegistry:
    return FlowRegistry.get_instance()


def get_flow(key: str) -> Optional[FlowDefinition]:
    """Get a flow definition by key."""
    return _get_registry().get_flow(key)


def get_flow_keys() -> List[str]:
    """Get list of flow keys in display order."""
    return _get_registry().flow_order


def get_flow_titles() -> Dict[str, str]:
    """Get mapping of flow key to short title."""
    return {f.key: f.short_title for f in _get_registry().flows}


def get_flow_steps(flow_key: str) -> List[StepDefinition]:
    """Get steps for a flow."""
    return _get_registry().get_steps(flow_key)


def get_step_index(flow_key: str, step_id: str) -> int:
    """Get 1-based step index within a flow."""
    return _get_registry().get_step_index(flow_key, step_id)
