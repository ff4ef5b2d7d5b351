"""
exceptions.py
~~~~~~~~~~~~~

Errors raised by the network engine.
"""


class EngineError(Exception):
    """Base class for errors raised by the network engine."""


class ShapeMismatchError(EngineError, ValueError):
    """An input vector's length disagrees with the input layer size."""

    def __init__(self, expected: int, actual: int, index=None):
        self.expected = expected
        self.actual = actual
        self.index = index
        where = '' if index is None else f" (batch element {index})"
        super().__init__(
            f"The number of inputs must match the number of nodes in the "
            f"input layer: expected {expected}, got {actual}{where}"
        )


class PropagationError(EngineError, RuntimeError):
    """A pass was run before the state it depends on exists."""
