"""Session expiry guard states and transitions.

State Machine Diagram:

    ┌──────────┐  hydrate / extend   ┌───────────┐
    │  ACTIVE  │────────────────────►│ SCHEDULED │◄──┐ extend
    └────┬─────┘                     └─────┬─────┘───┘ (re-arm)
         │ expired signal                  │ deadline reached /
         │                                 │ expired signal
         │          ┌──────────┐           │
         └─────────►│ EXPIRING │◄──────────┘
                    └────┬─────┘
                         │ invalidated
                    ┌────▼───────┐
                    │ LOGGED_OUT │ (terminal)
                    └────────────┘
"""

from enum import Enum
from typing import Dict, NamedTuple, Optional, Set


class GuardState(str, Enum):
    ACTIVE = "active"            # session present, no deadline armed
    SCHEDULED = "scheduled"      # deadline timer armed
    EXPIRING = "expiring"        # invalidation running
    LOGGED_OUT = "logged_out"


class GuardTransition(str, Enum):
    HYDRATE = "hydrate"                    # initial deadline from the server
    EXTEND = "extend"                      # deadline moved by activity
    DEADLINE_REACHED = "deadline_reached"  # timer fired
    EXPIRED_SIGNAL = "expired_signal"      # backend reported expiry
    INVALIDATED = "invalidated"            # local state cleared, redirected


class TransitionRule(NamedTuple):
    from_state: GuardState
    to_state: GuardState
    transition: GuardTransition


TRANSITION_RULES: list[TransitionRule] = [
    TransitionRule(GuardState.ACTIVE, GuardState.SCHEDULED, GuardTransition.HYDRATE),
    TransitionRule(GuardState.ACTIVE, GuardState.SCHEDULED, GuardTransition.EXTEND),
    TransitionRule(GuardState.SCHEDULED, GuardState.SCHEDULED, GuardTransition.EXTEND),
    TransitionRule(GuardState.SCHEDULED, GuardState.EXPIRING, GuardTransition.DEADLINE_REACHED),
    TransitionRule(GuardState.ACTIVE, GuardState.EXPIRING, GuardTransition.EXPIRED_SIGNAL),
    TransitionRule(GuardState.SCHEDULED, GuardState.EXPIRING, GuardTransition.EXPIRED_SIGNAL),
    TransitionRule(GuardState.EXPIRING, GuardState.LOGGED_OUT, GuardTransition.INVALIDATED),
]

VALID_TRANSITIONS: Dict[GuardState, Set[GuardTransition]] = {}
TRANSITION_TARGETS: Dict[tuple[GuardState, GuardTransition], TransitionRule] = {}

for rule in TRANSITION_RULES:
    VALID_TRANSITIONS.setdefault(rule.from_state, set()).add(rule.transition)
    TRANSITION_TARGETS[(rule.from_state, rule.transition)] = rule

TERMINAL_STATES: Set[GuardState] = {GuardState.LOGGED_OUT}

# States in which new deadlines are no longer accepted
CLOSING_STATES: Set[GuardState] = {GuardState.EXPIRING, GuardState.LOGGED_OUT}


def can_transition(from_state: GuardState, transition: GuardTransition) -> bool:
    return transition in VALID_TRANSITIONS.get(from_state, set())


def get_target_state(from_state: GuardState, transition: GuardTransition) -> Optional[GuardState]:
    rule = TRANSITION_TARGETS.get((from_state, transition))
    return rule.to_state if rule else None
