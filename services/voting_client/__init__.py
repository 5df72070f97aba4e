"""Async HTTP client for the voting API."""

from .session import VotingSession

__all__ = ['VotingSession']
