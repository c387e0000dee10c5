"""Shared utilities for Raphaël CLI commands."""

from rich.console import Console

console = Console()
