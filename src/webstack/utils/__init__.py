"""Hilfsfunktionen: Logging und Subprozesse."""
