"""SoulSpeak feed aggregation and engagement-state core."""

__version__ = "0.1.0"
