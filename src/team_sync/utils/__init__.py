"""Shared helpers: stderr logging and atomic JSON writes."""
