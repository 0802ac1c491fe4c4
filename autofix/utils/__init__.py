"""Utility modules for Autofix."""
