"""Shared persistence packages."""
