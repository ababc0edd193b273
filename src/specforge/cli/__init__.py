"""Command-line interface for SpecForge."""
