"""Hand-off decisions between capabilities inside one agent-loop turn."""

from __future__ import annotations

from orderflow.memory.models import ConversationState
from orderflow.planner.types import Capability

from .machine import CHECKOUT_STATES, ConversationContext


def suggest_next_capability(
    new_state: ConversationState,
    ctx: ConversationContext,
    explicit: Capability | None = None,
) -> Capability | None:
    """Return the capability to run next, or ``None`` to stop.

    An explicit hand-off signal from the capability that just ran wins over the
    state-derived rules. The capability that just ran is never suggested again.
    """

    if new_state.is_terminal:
        return None

    last = ctx.last_capability_called
    suggestion = explicit if explicit is not None else _derived(new_state, ctx)
    if suggestion is None or suggestion is last:
        return None
    return suggestion


def _derived(state: ConversationState, ctx: ConversationContext) -> Capability | None:
    last = ctx.last_capability_called

    if state in (ConversationState.BROWSING_MENU, ConversationState.ASKING_SUPPORT):
        return None
    if state is ConversationState.SELECTING_PRODUCTS and last is Capability.MENU:
        return Capability.SALES
    if state in CHECKOUT_STATES and last is not Capability.CHECKOUT and ctx.has_items:
        return Capability.CHECKOUT
    if last is Capability.CHECKOUT and not ctx.has_items:
        return Capability.SALES
    return None
