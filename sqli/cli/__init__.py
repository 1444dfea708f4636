"""Command-line interface for sqli."""
