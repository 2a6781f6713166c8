"""Command-line interface for provkit."""
