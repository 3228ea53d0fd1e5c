"""Core configuration, state and errors."""
