"""Kursor API: RIASEC assessment scoring and school/program recommendations."""

__version__ = "0.4.0"
