"""cadence: spaced repetition for markdown notes and embedded flashcards."""

from cadence.consts import VERSION

__version__ = VERSION
