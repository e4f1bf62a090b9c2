from .state_machine import apply_transition, compare_and_swap, next_status
from .links import LinkService
from .access import AccessPolicy
from .ordering import OrderingPolicy, may_act, sequential_invariant_holds
from .envelope import EnvelopeCoordinator
from .completion import CompletionDetector, Finalizer
from .transitions import TransitionEngine
from .projection import LedgerProjection
from .reminders import ReminderScheduler
from .group_service import GroupService

__all__ = [
    'apply_transition',
    'compare_and_swap',
    'next_status',
    'LinkService',
    'AccessPolicy',
    'OrderingPolicy',
    'may_act',
    'sequential_invariant_holds',
    'EnvelopeCoordinator',
    'CompletionDetector',
    'Finalizer',
    'TransitionEngine',
    'LedgerProjection',
    'ReminderScheduler',
    'GroupService',
]
