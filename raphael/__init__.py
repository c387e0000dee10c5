"""Raphaël — conversational relay between Discord and a local Ollama model."""

__version__ = "0.3.0"
