"""
Datasets package public API.

Re-export the preference generators so callers can write:
    from matchbench.datasets import generate_preferences, make_preference_pair
"""

from .generators import (
    PreferenceMatrix,
    generate_preferences,
    is_preference_matrix,
    make_preference_pair,
)

__all__ = [
    "PreferenceMatrix",
    "generate_preferences",
    "make_preference_pair",
    "is_preference_matrix",
]
