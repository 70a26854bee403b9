"""Command-line interface for pairguard."""
