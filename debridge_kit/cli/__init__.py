"""Command line interface for debridge_kit."""
