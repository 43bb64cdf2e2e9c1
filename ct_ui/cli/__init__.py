"""Typer application and commands."""
