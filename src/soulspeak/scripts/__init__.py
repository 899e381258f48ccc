"""Command-line utilities for the SoulSpeak feed core."""
