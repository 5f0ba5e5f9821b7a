"""Cozy Town backend: social fitness feed plus the cooperative tile map."""

__version__ = "0.4.0"
