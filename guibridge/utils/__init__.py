"""Utility helpers for the GUI bridge."""
