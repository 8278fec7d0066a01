"""Exception hierarchy for introql."""
from __future__ import annotations


class IntroQLError(Exception):
    """Base class for every error raised by introql."""


class SchemaBuildError(IntroQLError):
    """Fatal problem while turning database metadata into a schema."""


class NameCollisionError(SchemaBuildError):
    """Two generated identifiers sanitize to the same GraphQL name."""

    def __init__(self, name: str, first: str, second: str):
        self.name = name
        self.first = first
        self.second = second
        super().__init__(
            f"Generated name '{name}' is used by both {first} and {second}"
        )


__all__ = ['IntroQLError', 'SchemaBuildError', 'NameCollisionError']
