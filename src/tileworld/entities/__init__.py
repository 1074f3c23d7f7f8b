from tileworld.entities.base import DEFAULT_MOVEMENT_RULES, MovableEntity, MovementRules, greedy_step
from tileworld.entities.companion import Companion, CompanionState
from tileworld.entities.deer import Deer, DeerState

__all__ = [
    "Companion",
    "CompanionState",
    "DEFAULT_MOVEMENT_RULES",
    "Deer",
    "DeerState",
    "MovableEntity",
    "MovementRules",
    "greedy_step",
]
