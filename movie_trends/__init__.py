"""Movie search with a search-driven trending leaderboard."""

from .catalog import CatalogClient
from .config import Settings
from .debounce import DebounceGate
from .orchestrator import TrendingOrchestrator
from .store import AppwriteCounterStore, CounterStore, InMemoryCounterStore

__all__ = [
    "AppwriteCounterStore",
    "CatalogClient",
    "CounterStore",
    "DebounceGate",
    "InMemoryCounterStore",
    "Settings",
    "TrendingOrchestrator",
]

__version__ = "0.1.0"
