"""
Flow definition endpoints.

Provides REST endpoints for:
- Listing the onboarding flows with their steps (GET /api/flows)
- Getting one flow (GET /api/flows/{flow_kind})
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from onboarding.config.flow_registry import FlowDefinition, FlowRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flows", tags=["flows"])


# =============================================================================
# Pydantic Models
# =============================================================================


class StepSummary(BaseModel):
    """One step of a flow."""

    id: str
    index: int
    title: str
    description: str = ""
    reversible: bool = True
    terminal: bool = False
    auto_action: Optional[str] = None
    transitions: Dict[str, Dict[str, str]] = Field(default_factory=dict)


class FlowSummary(BaseModel):
    """Flow with its steps."""

    key: str
    index: int
    title: str
    short_title: str
    description: str = ""
    initial_step: str
    steps: List[StepSummary]


class FlowListResponse(BaseModel):
    flows: List[FlowSummary]


def _flow_summary(flow: FlowDefinition) -> FlowSummary:
    return FlowSummary(
        key=flow.key,
        index=flow.index,
        title=flow.title,
        short_title=flow.short_title,
        description=flow.description,
        initial_step=flow.initial_step,
        steps=[
            StepSummary(
                id=step.id,
                index=step.index,
                title=step.title,
                description=step.description,
                reversible=step.reversible,
                terminal=step.terminal,
                auto_action=step.auto_action,
                transitions=step.transitions,
            )
            for step in flow.steps
        ],
    )


# =============================================================================
# Endpoints
# =============================================================================


@router.get("", response_model=FlowListResponse)
async def list_flows():
    """List all onboarding flows in display order."""
    registry = FlowRegistry.get_instance()
    return FlowListResponse(flows=[_flow_summary(f) for f in registry.flows])


@router.get("/{flow_kind}", response_model=FlowSummary)
async def get_flow(flow_kind: str):
    """Get one flow definition."""
    flow = FlowRegistry.get_instance().get_flow(flow_kind)
    if flow is None:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "flow_not_found",
                "message": f"Flow '{flow_kind}' not found",
                "details": {"flow_kind": flow_kind},
            },
        )
    return _flow_summary(flow)
