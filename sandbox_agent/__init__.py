"""Sandbox Agent: a streaming tool-calling agent backed by a remote sandbox."""

__version__ = "0.1.0"
