"""Command-line surface of ceremony-test."""
