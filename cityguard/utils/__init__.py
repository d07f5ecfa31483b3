from .datetime import Clock, get_current_time, minutes_until, to_timestamp

__all__ = ["Clock", "get_current_time", "minutes_until", "to_timestamp"]
