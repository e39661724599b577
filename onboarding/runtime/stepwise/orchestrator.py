"""
orchestrator.py - Flow orchestrator: the engine behind every onboarding wizard.

The orchestrator owns one FlowSession and is the only thing that mutates it.
UI layers send named intents (invoke / go_back / reset / cancel) and observe
the session through snapshots; they never touch session state directly.

invoke() lifecycle:
1. Resolve the action name and bind the payload to the handler signature.
2. Drop the call if the session is not active or another action is pending
   (single-flight per session).
3. Record "action-unavailable" if the current step does not offer the action.
4. Mark the action pending and await the handler (the only suspension point).
5. On failure: record the normalized error under that action; nothing else
   changes.
6. On success: look up (step, action, outcome) in the transition table,
   merge the returned facts, push the prior state onto history and move to
   the next step. A transition back onto the same step merges facts only.
7. Entering a terminal step completes the session; entering a step with an
   auto action invokes it.

A missing transition table entry is a configuration error: the session is
marked failed and TransitionError propagates to the caller.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from onboarding.config.runtime_config import get_max_events
from onboarding.runtime.errors import ActionPayloadError, TransitionError, UnknownActionError
from onboarding.runtime.identity.errors import normalize_error
from onboarding.runtime.types import (
    ErrorInfo,
    FlowKind,
    FlowResult,
    SessionData,
    SessionEvent,
    SessionId,
    SessionStatus,
    error_info_to_dict,
    generate_session_id,
)

from .action_tracker import ActionKey, action_key
from .history import NavigationHistory
from .models import ActionResult, HistoryEntry, SessionSnapshot
from .session import FlowSession
from .transitions import TransitionTable

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[Optional[ActionResult]]]
Listener = Callable[[SessionEvent, SessionSnapshot], None]
CompletionCallback = Callable[[FlowResult], Any]
CancelCallback = Callable[[], Any]

ACTION_UNAVAILABLE = "action-unavailable"


def resolved_public_key(data: SessionData) -> Optional[str]:
    """The key a finished session ended up with, most authoritative first."""
    if data.linked_public_key:
        return data.linked_public_key
    if data.authenticated_public_key:
        return data.authenticated_public_key
    if data.identity is not None:
        return data.identity.public_key
    return None


async def _run_callback(callback: Optional[Callable[..., Any]], *args: Any) -> None:
    if callback is None:
        return
    outcome = callback(*args)
    if inspect.isawaitable(outcome):
        await outcome


class FlowOrchestrator:
    """Drives one flow session through its transition table.

    Args:
        flow_kind: Which flow this session runs.
        handlers: One async handler per action of the flow, keyed by action.
        on_complete: Called with a FlowResult when the session ends, either by
            reaching a terminal step or by a fatal transition error.
        on_cancel: Called when cancel() ends the session.
        session_id: Explicit id; generated when omitted.
        max_events: Event log cap; defaults to runtime config.
        table: Transition table; defaults to the registry's table for the flow.

    Raises:
        FlowConfigError: If the handler set does not match the flow's actions.
    """

    def __init__(
        self,
        flow_kind: Union[FlowKind, str],
        handlers: Mapping[ActionKey, Handler],
        *,
        on_complete: Optional[CompletionCallback] = None,
        on_cancel: Optional[CancelCallback] = None,
        session_id: Optional[SessionId] = None,
        max_events: Optional[int] = None,
        table: Optional[TransitionTable] = None,
    ):
        self._table = table or TransitionTable.for_flow(flow_kind)
        self._handlers: Dict[str, Handler] = {action_key(k): v for k, v in handlers.items()}
        self._table.check_handlers(self._handlers)
        self._signatures = {name: inspect.signature(h) for name, h in self._handlers.items()}

        self.on_complete = on_complete
        self.on_cancel = on_cancel
        self.detour: Optional["FlowOrchestrator"] = None
        self._listeners: List[Listener] = []

        self._session = FlowSession(
            session_id=session_id or generate_session_id(),
            flow_kind=self._table.kind,
            current_step=self._table.initial_step,
            history=NavigationHistory(self._table.non_reversible_steps),
            events=deque(maxlen=max_events or get_max_events()),
        )
        logger.debug(
            "Created %s session %s at step %s",
            self.flow_kind.value,
            self.session_id,
            self.current_step,
        )

    # =========================================================================
    # Read-only surface
    # =========================================================================

    @property
    def session(self) -> FlowSession:
        return self._session

    @property
    def session_id(self) -> SessionId:
        return self._session.session_id

    @property
    def flow_kind(self) -> FlowKind:
        return self._session.flow_kind

    @property
    def table(self) -> TransitionTable:
        return self._table

    @property
    def current_step(self) -> str:
        return self._session.current_step

    @property
    def data(self) -> SessionData:
        return self._session.data

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def result(self) -> Optional[FlowResult]:
        return self._session.result

    @property
    def can_go_back(self) -> bool:
        return (
            self._session.status == SessionStatus.ACTIVE
            and self._session.history.can_go_back(self._session.current_step)
        )

    @property
    def events(self) -> List[SessionEvent]:
        return list(self._session.events)

    def is_loading(self, action: ActionKey) -> bool:
        return self._session.actions.is_loading(action)

    def get_error(self, action: ActionKey) -> Optional[ErrorInfo]:
        return self._session.actions.get_error(action)

    def snapshot(self) -> SessionSnapshot:
        session = self._session
        step = self._table.step(session.current_step)
        active = session.status == SessionStatus.ACTIVE
        return SessionSnapshot(
            session_id=session.session_id,
            flow_kind=session.flow_kind.value,
            step=step.id,
            title=step.title,
            description=step.description,
            actions_available=step.actions if active else (),
            can_go_back=self.can_go_back,
            history_depth=len(session.history),
            status=session.status,
            actions=session.actions.snapshot(),
            data=session.data,
            result=session.result,
            detour_session_id=self.detour.session_id if self.detour else None,
        )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener for (event, snapshot) pairs.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # =========================================================================
    # Intents
    # =========================================================================

    async def invoke(self, action: ActionKey, /, **payload: Any) -> None:
        """Run a named action and apply its outcome.

        Returns once the action's tracker entry has settled. Callers read
        is_loading()/get_error() rather than branching on the return value.

        Raises:
            UnknownActionError: If the flow has no such action.
            ActionPayloadError: If ``payload`` does not fit the handler.
            TransitionError: If the outcome has no table entry (session failed).
        """
        name = action_key(action)
        handler = self._handlers.get(name)
        if handler is None:
            raise UnknownActionError(self.flow_kind.value, name)
        try:
            bound = self._signatures[name].bind(**payload)
        except TypeError as exc:
            raise ActionPayloadError(name, str(exc)) from exc

        session = self._session
        if session.status != SessionStatus.ACTIVE:
            logger.info(
                "Ignoring %s on %s session %s", name, session.status.value, session.session_id
            )
            return

        pending = session.actions.pending_action
        if pending is not None:
            logger.warning(
                "Ignoring %s on session %s: %s is still pending", name, session.session_id, pending
            )
            self._emit("action_ignored", action=name, pending_action=pending)
            return

        step = session.current_step
        if not self._table.offers(step, name):
            error = ErrorInfo(
                message=f"'{name}' is not available on step '{step}'", code=ACTION_UNAVAILABLE
            )
            session.actions.fail(name, error)
            self._emit("action_failed", action=name, error=error_info_to_dict(error))
            return

        generation = session.generation
        session.actions.start(name)
        self._emit("action_started", action=name)

        try:
            result = await handler(*bound.args, **bound.kwargs)
        except asyncio.CancelledError:
            if generation == session.generation:
                # Release the single-flight guard; the action did not settle
                session.actions.succeed(name)
            raise
        except Exception as exc:
            if generation != session.generation:
                logger.info("Discarding failure of %s after session %s restarted", name, session.session_id)
                return
            error = normalize_error(exc)
            session.actions.fail(name, error)
            logger.info(
                "Action %s failed on %s/%s: %s",
                name,
                session.session_id,
                step,
                error.code or error.message,
            )
            self._emit("action_failed", action=name, error=error_info_to_dict(error))
            return

        if generation != session.generation or session.status != SessionStatus.ACTIVE:
            logger.info("Discarding result of %s after session %s restarted", name, session.session_id)
            return

        await self._apply_result(name, step, result or ActionResult())

    async def _apply_result(self, name: str, step: str, result: ActionResult) -> None:
        session = self._session
        outcome = action_key(result.outcome)
        target = self._table.lookup(step, name, outcome)

        if target is None:
            session.actions.succeed(name)
            error = TransitionError(self.flow_kind.value, step, name, outcome)
            logger.error("Session %s failed: %s", session.session_id, error)
            await self._end(SessionStatus.FAILED, FlowResult(success=False, error=str(error)), "session_failed")
            raise error

        before = session.data
        try:
            merged = before.merge(result.facts)
        except ValueError:
            session.actions.succeed(name)
            raise

        session.data = merged
        moved = target != step
        if moved:
            session.history.push(HistoryEntry(step=step, data=before))
            session.current_step = target
        session.actions.succeed(name)
        self._emit("action_succeeded", action=name, outcome=outcome)

        if not moved:
            return

        logger.debug("Session %s: %s -[%s/%s]-> %s", session.session_id, step, name, outcome, target)
        self._emit("step_changed", action=name, from_step=step, to_step=target)

        if self._table.is_terminal(target):
            result_payload = FlowResult(success=True, public_key=resolved_public_key(session.data))
            await self._end(SessionStatus.COMPLETED, result_payload, "session_completed")
            return

        auto_action = self._table.auto_action(target)
        if auto_action:
            await self.invoke(auto_action)

    def go_back(self) -> bool:
        """Restore the previous (step, data) state.

        Returns False without effect when there is nothing to go back to, the
        current step is non-reversible, the session has ended, or an action
        is in flight. Action errors are left in place.
        """
        session = self._session
        if not self.can_go_back:
            return False
        if session.actions.pending_action is not None:
            logger.info("Refusing back navigation on %s while an action is pending", session.session_id)
            return False

        entry = session.history.pop()
        from_step = session.current_step
        session.current_step = entry.step
        session.data = entry.data
        self._emit("navigated_back", from_step=from_step, to_step=entry.step)
        return True

    def reset(self) -> None:
        """Restart the session from the initial step with empty data."""
        session = self._session
        session.generation += 1
        session.current_step = self._table.initial_step
        session.data = SessionData()
        session.history.clear()
        session.actions.reset()
        session.status = SessionStatus.ACTIVE
        session.result = None
        self.detour = None
        logger.info("Session %s reset", session.session_id)
        self._emit("session_reset")

    async def cancel(self) -> None:
        """Abandon the session and fire on_cancel. No-op once the session ended."""
        session = self._session
        if session.status != SessionStatus.ACTIVE:
            return
        session.generation += 1
        session.status = SessionStatus.CANCELLED
        pending = session.actions.pending_action
        if pending is not None:
            session.actions.succeed(pending)
        logger.info("Session %s cancelled at step %s", session.session_id, session.current_step)
        self._emit("session_cancelled")
        await _run_callback(self.on_cancel)

    async def _end(self, status: SessionStatus, result: FlowResult, event_kind: str) -> None:
        session = self._session
        session.status = status
        session.result = result
        self._emit(event_kind, success=result.success, error=result.error)
        await _run_callback(self.on_complete, result)

    # =========================================================================
    # Events
    # =========================================================================

    def _emit(self, kind: str, action: Optional[str] = None, **payload: Any) -> None:
        session = self._session
        session.event_seq += 1
        event = SessionEvent(
            session_id=session.session_id,
            kind=kind,
            flow_kind=session.flow_kind.value,
            step=session.current_step,
            action=action,
            payload={k: v for k, v in payload.items() if v is not None},
            seq=session.event_seq,
        )
        session.events.append(event)

        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(event, snapshot)
            except Exception:
                logger.exception("Session listener failed on %s event", kind)
