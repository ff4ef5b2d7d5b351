"""
conftest.py
~~~~~~~~~~~

Shared fixtures for the playground test suite.
"""

import os
import sys

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from playground.functions import Activation, Normalization, Regularization
from playground.network import build_network


@pytest.fixture
def rng():
    """Seeded generator so random weights are reproducible."""
    return np.random.default_rng(1234)


@pytest.fixture
def linear_net(rng):
    """A [2, 2, 1] network with linear activations everywhere."""
    return build_network(
        [2, 2, 1], Activation.LINEAR, Activation.LINEAR, None, ['x1', 'x2'], rng=rng
    )


@pytest.fixture
def tanh_net(rng):
    """A [2, 3, 2, 1] tanh network with L2 regularization."""
    return build_network(
        [2, 3, 2, 1], Activation.TANH, Activation.TANH, Regularization.L2,
        ['x1', 'x2'], Normalization.NONE, rng=rng
    )
