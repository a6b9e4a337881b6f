"""Speak an AI coding assistant's narration aloud."""

__version__ = "0.3.0"
