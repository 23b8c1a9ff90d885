from .event_hub import EventHub
from .event_names import EventNames

__all__ = ["EventHub", "EventNames"]
