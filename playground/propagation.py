"""
propagation.py
~~~~~~~~~~~~~~

Forward and backward passes over a ``Network``.

Every function mutates the network it is given in place and returns only
the requested value. Two flavours exist:
- single example: reads and writes ``Node.total_input`` / ``Node.output``
- mini-batch: reads and writes the per-example slots of
  ``Node.total_batch_input`` / ``Node.batch_output``

Normalization is deliberately asymmetric. Layer normalization (single
example pass) standardizes across the nodes of one hidden layer, while
batch normalization (mini-batch pass) standardizes one node across the
examples of the batch.
"""

import logging
import math
from typing import Callable, List, Sequence

from .exceptions import PropagationError, ShapeMismatchError
from .functions import ErrorFunction, Normalization
from .network import Network, Node

logger = logging.getLogger(__name__)


def _check_input_length(network: Network, inputs: Sequence[float], index=None) -> None:
    expected = len(network.input_layer)
    if len(inputs) != expected:
        raise ShapeMismatchError(expected, len(inputs), index)


def _mean_and_variance(values: Sequence[float]):
    """Mean and biased (divide-by-N) variance."""
    n = len(values)
    mean = sum(values) / n
    variance = sum((v - mean) ** 2 for v in values) / n
    return mean, variance


def layer_normalize(layer: List[Node]) -> None:
    """
    Standardize the outputs of one layer across its nodes.

    Each node keeps its own gamma, beta and epsilon; the layer statistics
    are stored on every node for inspection.
    """
    mean, variance = _mean_and_variance([node.output for node in layer])
    for node in layer:
        node.ln_mean = mean
        node.ln_variance = variance
        normalized = (node.output - mean) / math.sqrt(variance + node.ln_epsilon)
        node.output = node.ln_gamma * normalized + node.ln_beta


def batch_normalize(node: Node) -> None:
    """Standardize one node's batch outputs across the batch."""
    mean, variance = _mean_and_variance(node.batch_output)
    node.bn_mean = mean
    node.bn_variance = variance
    denominator = math.sqrt(variance + node.bn_epsilon)
    node.batch_output = [
        node.bn_gamma * ((x - mean) / denominator) + node.bn_beta
        for x in node.batch_output
    ]


def forward_prop(network: Network, inputs: Sequence[float]) -> float:
    """
    Run a forward pass of one example through the network.

    Args:
        network: The network to update in place
        inputs: One value per input node

    Returns:
        float: The output node's output

    Raises:
        ShapeMismatchError: If len(inputs) differs from the input layer size
    """
    _check_input_length(network, inputs)

    for node, value in zip(network.input_layer, inputs):
        node.output = value

    last_layer_idx = len(network.layers) - 1
    for layer_idx in range(1, len(network.layers)):
        current_layer = network.layers[layer_idx]
        for node in current_layer:
            total = node.bias
            for link in network.input_links_of(node):
                total += link.weight * network.source(link).output
            node.total_input = total
            node.output = node.activation.output(total)

        if network.normalization is Normalization.LAYER and layer_idx < last_layer_idx:
            layer_normalize(current_layer)

    network.last_forward = 'single'
    return network.get_output_node().output


def forward_prop_batch(network: Network, batch: Sequence[Sequence[float]]) -> List[float]:
    """
    Run a forward pass of a mini-batch through the network.

    Hidden nodes are batch-normalized across the batch once all of their
    slots are computed; the output layer is never normalized.

    Args:
        network: The network to update in place
        batch: Input vectors, one per example

    Returns:
        list: The output node's batch outputs, one per example

    Raises:
        ShapeMismatchError: If any vector's length differs from the input
            layer size
        ValueError: If the batch is empty
    """
    if len(batch) == 0:
        raise ValueError("A batch needs at least one example")
    for index, inputs in enumerate(batch):
        _check_input_length(network, inputs, index)

    batch_size = len(batch)
    for i, node in enumerate(network.input_layer):
        node.batch_output = [inputs[i] for inputs in batch]

    last_layer_idx = len(network.layers) - 1
    for layer_idx in range(1, len(network.layers)):
        for node in network.layers[layer_idx]:
            links = network.input_links_of(node)
            sources = [network.source(link) for link in links]
            node.total_batch_input = [0.0] * batch_size
            node.batch_output = [0.0] * batch_size
            for k in range(batch_size):
                total = node.bias
                for link, source in zip(links, sources):
                    total += link.weight * source.batch_output[k]
                node.total_batch_input[k] = total
                node.batch_output[k] = node.activation.output(total)

            if layer_idx < last_layer_idx:
                batch_normalize(node)

    network.last_forward = 'batch'
    network.last_batch_size = batch_size
    return list(network.get_output_node().batch_output)


def _backward(
    network: Network,
    output_der: float,
    total_input_of: Callable[[Node], float],
    output_of: Callable[[Node], float]
) -> None:
    """Backpropagate one example, accumulating into the shared counters."""
    network.get_output_node().output_der = output_der

    for layer_idx in range(len(network.layers) - 1, 0, -1):
        current_layer = network.layers[layer_idx]
        # dE/d(total input) of each node
        for node in current_layer:
            node.input_der = node.output_der * node.activation.der(total_input_of(node))
            node.acc_input_der += node.input_der
            node.num_accumulated_ders += 1

        # dE/dw for each weight coming into the node
        for node in current_layer:
            for link in network.input_links_of(node):
                if link.is_dead:
                    continue
                link.error_der = node.input_der * output_of(network.source(link))
                link.acc_error_der += link.error_der
                link.num_accumulated_ders += 1

        if layer_idx == 1:
            continue
        for node in network.layers[layer_idx - 1]:
            node.output_der = sum(
                link.weight * network.dest(link).input_der
                for link in network.outputs_of(node)
            )


def back_prop(network: Network, target: float, error_func: ErrorFunction) -> None:
    """
    Run a backward pass using the outputs of the last ``forward_prop``.

    Updates every node's and link's error derivatives and adds them to
    the accumulators consumed by the next weight update.

    Raises:
        PropagationError: If no forward pass has run on this network
    """
    if network.last_forward is None:
        raise PropagationError("back_prop called before any forward pass")

    output_node = network.get_output_node()
    _backward(
        network,
        error_func.der(output_node.output, target),
        lambda node: node.total_input,
        lambda node: node.output
    )


def back_prop_batch(network: Network, targets: Sequence[float], error_func: ErrorFunction) -> None:
    """
    Run a backward pass for every example of the last ``forward_prop_batch``.

    Gradients of all examples accumulate into the same counters before
    any update is applied.

    Raises:
        PropagationError: If the last forward pass was not a batch pass
        ValueError: If there is not one target per batch example
    """
    if network.last_forward != 'batch':
        raise PropagationError("back_prop_batch called without a preceding forward_prop_batch")
    if len(targets) != network.last_batch_size:
        raise ValueError(
            f"Got {len(targets)} targets for a batch of {network.last_batch_size} examples"
        )

    output_node = network.get_output_node()
    for k, target in enumerate(targets):
        _backward(
            network,
            error_func.der(output_node.batch_output[k], target),
            lambda node, k=k: node.total_batch_input[k],
            lambda node, k=k: node.batch_output[k]
        )

    logger.debug(f"Backpropagated batch of {len(targets)} examples")
