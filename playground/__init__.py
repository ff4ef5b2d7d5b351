"""
playground package
~~~~~~~~~~~~~~~~~~

In-process feed-forward network engine behind the interactive
playground. Contains the node/link graph, forward and backward passes,
update rules, normalization, training driver, persistence and API
server.
"""

from .exceptions import EngineError, PropagationError, ShapeMismatchError
from .functions import Activation, ErrorFunction, Normalization, Regularization
from .network import Link, Network, Node, build_network
from .optimizers import Optimizer, update, update_weights, update_weights_adam
from .propagation import back_prop, back_prop_batch, forward_prop, forward_prop_batch

__version__ = "1.0.0"

__all__ = [
    'Activation', 'ErrorFunction', 'Normalization', 'Regularization',
    'Link', 'Network', 'Node', 'build_network',
    'forward_prop', 'forward_prop_batch', 'back_prop', 'back_prop_batch',
    'Optimizer', 'update', 'update_weights', 'update_weights_adam',
    'EngineError', 'PropagationError', 'ShapeMismatchError',
]
