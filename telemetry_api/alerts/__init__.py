"""Pipeline de alertas: evaluación, máquina de estados y notificación."""

from .evaluator import ViolationReport, evaluate, round_half_away_from_zero
from .state_machine import AlertState, AlertStateMachine, AlertTransition
from .dispatcher import DispatchResult, NotificationDispatcher
from .escalation import EscalationQueue

__all__ = [
    "ViolationReport",
    "evaluate",
    "round_half_away_from_zero",
    "AlertState",
    "AlertStateMachine",
    "AlertTransition",
    "DispatchResult",
    "NotificationDispatcher",
    "EscalationQueue",
]
