"""Participant process supervision."""
