"""Autofix - LLM-driven repair of failing UI tests."""
__version__ = "0.1.0"
