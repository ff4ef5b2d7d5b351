"""
config.py
~~~~~~~~~

Training configuration and environment settings.

``TrainingConfig`` bundles everything needed to build a network and
drive its training steps. It is rebuilt from plain dictionaries coming
from the API layer, so every field is validated in ``from_dict``.
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import numpy as np

from .functions import Activation, Normalization, Regularization
from .network import Network, build_network
from .optimizers import Optimizer

# ============================================================================
# ENVIRONMENT
# ============================================================================

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
MODEL_DIR = os.getenv('MODEL_DIR', 'models')
IS_PRODUCTION = os.getenv('FLASK_ENV') == 'production'
PORT = int(os.getenv('PORT', 8000))


@dataclass
class TrainingConfig:
    """Network topology and training hyperparameters."""

    network_shape: List[int] = field(default_factory=lambda: [2, 4, 2, 1])
    input_ids: List[str] = field(default_factory=lambda: ['x1', 'x2'])
    activation: Activation = Activation.TANH
    output_activation: Activation = Activation.TANH
    regularization: Optional[Regularization] = None
    regularization_rate: float = 0.0
    learning_rate: float = 0.03
    batch_size: int = 10
    normalization: Normalization = Normalization.NONE
    optimizer: Optimizer = Optimizer.SGD
    init_zero: bool = False
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8
    seed: Optional[int] = None

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """
        Check field types and ranges.

        Raises:
            ValueError: With a message naming the offending field
        """
        shape = self.network_shape
        if not isinstance(shape, list) or len(shape) < 2:
            raise ValueError('network_shape must be a list of at least 2 layer sizes')
        if not all(isinstance(n, int) and not isinstance(n, bool) and n > 0 for n in shape):
            raise ValueError('network_shape entries must be positive integers')
        if shape[-1] != 1:
            raise ValueError('network_shape must end with a single output node')
        if len(self.input_ids) != shape[0]:
            raise ValueError(
                f'input_ids has {len(self.input_ids)} entries but the input layer has {shape[0]} nodes'
            )
        if len(set(self.input_ids)) != len(self.input_ids):
            raise ValueError('input_ids must be unique')
        numbered = {str(k) for k in range(1, sum(shape[1:]) + 1)}
        if numbered.intersection(self.input_ids):
            raise ValueError('input_ids may not reuse the numeric ids 1..N of the other nodes')

        for name in ('learning_rate', 'regularization_rate', 'epsilon'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or isinstance(value, bool) or value < 0:
                raise ValueError(f'{name} must be a non-negative number')
        if self.learning_rate <= 0:
            raise ValueError('learning_rate must be a positive number')
        for name in ('beta1', 'beta2'):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not 0 <= value < 1:
                raise ValueError(f'{name} must be in [0, 1)')
        if not isinstance(self.batch_size, int) or isinstance(self.batch_size, bool) or self.batch_size < 1:
            raise ValueError('batch_size must be a positive integer')

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrainingConfig':
        """
        Build a config from a JSON-style dictionary.

        Enum fields are given by name ("relu", "L1", "batch", "adam");
        missing keys fall back to the defaults.

        Raises:
            ValueError: If a key is unknown or a value is invalid
        """
        data = dict(data or {})
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(sorted(unknown))}")

        if 'activation' in data:
            data['activation'] = Activation.from_name(data['activation'])
        if 'output_activation' in data:
            data['output_activation'] = Activation.from_name(data['output_activation'])
        if 'regularization' in data:
            data['regularization'] = Regularization.from_optional(data['regularization'])
        if 'normalization' in data:
            data['normalization'] = Normalization.from_name(data['normalization'])
        if 'optimizer' in data:
            data['optimizer'] = Optimizer.from_name(data['optimizer'])
        if 'input_ids' in data:
            data['input_ids'] = [str(i) for i in data['input_ids']]
        elif 'network_shape' in data and isinstance(data['network_shape'], list) and data['network_shape']:
            data['input_ids'] = [f'x{i + 1}' for i in range(data['network_shape'][0])]
        return cls(**data)

    def to_dict(self) -> Dict[str, Any]:
        result = asdict(self)
        for name in ('activation', 'output_activation', 'normalization', 'optimizer'):
            result[name] = getattr(self, name).value
        result['regularization'] = self.regularization.value if self.regularization else None
        return result

    def build(self) -> Network:
        """Build a fresh network for this configuration."""
        return build_network(
            self.network_shape,
            self.activation,
            self.output_activation,
            self.regularization,
            self.input_ids,
            normalization=self.normalization,
            init_zero=self.init_zero,
            rng=np.random.default_rng(self.seed)
        )
