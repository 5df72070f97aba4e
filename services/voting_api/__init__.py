"""HTTP service exposing the voting session engine."""

__version__ = '1.0.0'
