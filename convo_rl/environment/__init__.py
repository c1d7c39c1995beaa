"""
Conversation environment.

Steps a single conversation, records immediate rewards and distributes
the final outcome backward over the actions that led to it.
"""

from .episode import DEFAULT_MAX_TURNS, Environment, EpisodeStep, StepResult

__all__ = [
    "DEFAULT_MAX_TURNS",
    "Environment",
    "EpisodeStep",
    "StepResult",
]
