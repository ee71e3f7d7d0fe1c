"""alphatracker: paper-trading engine driven by observed wallet activity."""

__all__ = ["AlphaTrackerSettings", "EventBus", "PaperTradingEngine", "__version__"]
__version__ = "0.1.0"


def __getattr__(name: str):
    if name == "EventBus":
        from .core.bus import EventBus

        return EventBus
    if name == "AlphaTrackerSettings":
        from .config import AlphaTrackerSettings

        return AlphaTrackerSettings
    if name == "PaperTradingEngine":
        from .engine import PaperTradingEngine

        return PaperTradingEngine
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
