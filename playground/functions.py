"""
functions.py
~~~~~~~~~~~~

Scalar function tables used by the network engine.

Every entry is a pure (value, derivative) pair:
- Activation functions, applied to a node's total input
- Error functions, comparing the network output with a target
- Regularization functions, penalizing a single link weight
"""

from enum import Enum
from typing import Optional

import numpy as np


class _NamedEnum(Enum):
    """Enum that can be looked up by its (case-insensitive) value."""

    @classmethod
    def from_name(cls, name: str):
        """
        Look up a member by name.

        Args:
            name: Member name such as "tanh" or "L1"

        Returns:
            The matching enum member

        Raises:
            ValueError: If no member has that name
        """
        if isinstance(name, cls):
            return name
        if not isinstance(name, str):
            raise ValueError(f"{cls.__name__} name must be a string, got {name!r}")
        key = name.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        choices = ', '.join(m.value for m in cls)
        raise ValueError(f"Unknown {cls.__name__} '{name}'. Choose one of: {choices}")


class Activation(_NamedEnum):
    """A node's activation function."""

    TANH = 'tanh'
    RELU = 'relu'
    SIGMOID = 'sigmoid'
    LINEAR = 'linear'

    def output(self, x: float) -> float:
        return _ACTIVATION_OUTPUT[self](x)

    def der(self, x: float) -> float:
        return _ACTIVATION_DER[self](x)


def _sigmoid(x: float) -> float:
    # np.exp overflows to inf instead of raising, so large negative
    # inputs saturate to 0.
    with np.errstate(over='ignore'):
        return float(1.0 / (1.0 + np.exp(-x)))


def _sigmoid_der(x: float) -> float:
    out = _sigmoid(x)
    return out * (1.0 - out)


def _tanh_der(x: float) -> float:
    out = float(np.tanh(x))
    return 1.0 - out * out


_ACTIVATION_OUTPUT = {
    Activation.TANH: lambda x: float(np.tanh(x)),
    Activation.RELU: lambda x: float(np.maximum(0.0, x)),
    Activation.SIGMOID: _sigmoid,
    Activation.LINEAR: lambda x: x,
}

_ACTIVATION_DER = {
    Activation.TANH: _tanh_der,
    Activation.RELU: lambda x: 0.0 if x <= 0 else 1.0,
    Activation.SIGMOID: _sigmoid_der,
    Activation.LINEAR: lambda x: 1.0,
}


class ErrorFunction(_NamedEnum):
    """An error function comparing the network output with its target."""

    SQUARE = 'square'

    def error(self, output: float, target: float) -> float:
        return 0.5 * (output - target) ** 2

    def der(self, output: float, target: float) -> float:
        return output - target


class Regularization(_NamedEnum):
    """Penalty cost for a single weight."""

    L1 = 'l1'
    L2 = 'l2'

    def output(self, weight: float) -> float:
        if self is Regularization.L1:
            return abs(weight)
        return 0.5 * weight * weight

    def der(self, weight: float) -> float:
        if self is Regularization.L1:
            if weight < 0:
                return -1.0
            return 1.0 if weight > 0 else 0.0
        return weight

    @classmethod
    def from_optional(cls, name: Optional[str]) -> Optional['Regularization']:
        """Like from_name, but None and "none" mean no regularization."""
        if name is None or (isinstance(name, str) and name.strip().lower() == 'none'):
            return None
        return cls.from_name(name)


class Normalization(_NamedEnum):
    """Which normalization the forward passes apply to hidden layers."""

    NONE = 'none'
    BATCH = 'batch'
    LAYER = 'layer'
