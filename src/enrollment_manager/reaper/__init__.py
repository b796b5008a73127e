"""Reaper - periodic release of expired seat locks."""

from enrollment_manager.reaper.reaper import DEFAULT_INTERVAL, Reaper

__all__ = ["DEFAULT_INTERVAL", "Reaper"]
