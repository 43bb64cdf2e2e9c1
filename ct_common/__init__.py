"""Shared helpers for ceremony-test."""

from ct_common.api import HarnessError, configure_logging

__all__ = ["configure_logging", "HarnessError"]
