from .detail import DetailPanel
from .overview import OverviewList
from .prompts import PromptManager
from .status import StatusBar

__all__ = ["DetailPanel", "OverviewList", "PromptManager", "StatusBar"]
