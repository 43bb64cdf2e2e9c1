"""Configuration and scenario models."""
