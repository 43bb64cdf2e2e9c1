"""Ceremony topology, scenario scheduling and run reports."""
