from tileworld.managers.companion import CompanionManager
from tileworld.managers.deer import DeerManager

__all__ = ["CompanionManager", "DeerManager"]
