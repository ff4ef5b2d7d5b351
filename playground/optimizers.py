"""
optimizers.py
~~~~~~~~~~~~~

Parameter update rules applied after one or more backward passes.

Both rules average the accumulated derivatives by their count, apply
the step, and reset every accumulator they consumed to zero. Links that
L1 regularization pushes across zero are snapped to 0 and marked dead.
"""

import logging
import math
from enum import Enum

from .functions import Regularization
from .network import Link, Network

logger = logging.getLogger(__name__)


class Optimizer(Enum):
    SGD = 'sgd'
    ADAM = 'adam'

    @classmethod
    def from_name(cls, name: str) -> 'Optimizer':
        if isinstance(name, cls):
            return name
        try:
            return cls(str(name).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown optimizer '{name}'. Choose one of: sgd, adam") from None


def _regularization_der(link: Link) -> float:
    return link.regularization.der(link.weight) if link.regularization else 0.0


def _adopt_regularized_weight(link: Link, candidate: float, regularized: float) -> None:
    """Set the link weight, pruning it if L1 pushed it across zero."""
    if link.regularization is Regularization.L1 and candidate * regularized < 0:
        link.weight = 0.0
        link.is_dead = True
        logger.debug(f"Pruned link {link.id}")
    else:
        link.weight = regularized


def update_weights(network: Network, learning_rate: float, regularization_rate: float) -> None:
    """
    Apply plain gradient descent with the accumulated derivatives.

    Args:
        network: The network to update in place
        learning_rate: Step size
        regularization_rate: Weight of the regularization penalty
    """
    for layer in network.layers[1:]:
        for node in layer:
            if node.num_accumulated_ders > 0:
                node.bias -= learning_rate * node.acc_input_der / node.num_accumulated_ders
                node.acc_input_der = 0.0
                node.num_accumulated_ders = 0

            for link in network.input_links_of(node):
                if link.is_dead or link.num_accumulated_ders == 0:
                    continue
                regul_der = _regularization_der(link)
                candidate = link.weight - (learning_rate / link.num_accumulated_ders) * link.acc_error_der
                regularized = candidate - learning_rate * regularization_rate * regul_der
                _adopt_regularized_weight(link, candidate, regularized)
                link.acc_error_der = 0.0
                link.num_accumulated_ders = 0


def update_weights_adam(
    network: Network,
    learning_rate: float,
    regularization_rate: float,
    iteration: int,
    beta1: float = 0.9,
    beta2: float = 0.999,
    epsilon: float = 1e-8
) -> None:
    """
    Apply an Adam step with the accumulated derivatives.

    Args:
        network: The network to update in place
        learning_rate: Step size (alpha)
        regularization_rate: Weight of the regularization penalty
        iteration: 1-indexed update count, used for bias correction
        beta1: Decay rate of the first moment estimate
        beta2: Decay rate of the second moment estimate
        epsilon: Added to the denominator for numerical stability

    Raises:
        ValueError: If iteration is less than 1
    """
    if iteration < 1:
        raise ValueError(f"iteration must start at 1, got {iteration}")

    correction1 = 1 - beta1 ** iteration
    correction2 = 1 - beta2 ** iteration

    for layer in network.layers[1:]:
        for node in layer:
            if node.num_accumulated_ders > 0:
                g = node.acc_input_der / node.num_accumulated_ders
                node.m_bias = beta1 * node.m_bias + (1 - beta1) * g
                node.v_bias = beta2 * node.v_bias + (1 - beta2) * g * g
                m_hat = node.m_bias / correction1
                v_hat = node.v_bias / correction2
                node.bias -= learning_rate * m_hat / (math.sqrt(v_hat) + epsilon)
                node.acc_input_der = 0.0
                node.num_accumulated_ders = 0

            for link in network.input_links_of(node):
                if link.is_dead or link.num_accumulated_ders == 0:
                    continue
                g = link.acc_error_der / link.num_accumulated_ders
                link.m_weight = beta1 * link.m_weight + (1 - beta1) * g
                link.v_weight = beta2 * link.v_weight + (1 - beta2) * g * g
                m_hat = link.m_weight / correction1
                v_hat = link.v_weight / correction2

                regul_der = _regularization_der(link)
                candidate = link.weight - learning_rate * m_hat / (math.sqrt(v_hat) + epsilon)
                regularized = candidate - learning_rate * regularization_rate * regul_der
                _adopt_regularized_weight(link, candidate, regularized)
                link.acc_error_der = 0.0
                link.num_accumulated_ders = 0


def update(
    network: Network,
    optimizer: Optimizer,
    learning_rate: float,
    regularization_rate: float,
    iteration: int = 1,
    **adam_params
) -> None:
    """Dispatch to the update rule selected by ``optimizer``."""
    if optimizer is Optimizer.ADAM:
        update_weights_adam(network, learning_rate, regularization_rate, iteration, **adam_params)
    else:
        update_weights(network, learning_rate, regularization_rate)
