"""
network.py
~~~~~~~~~~

Graph representation of a fully-connected feed-forward network.

A ``Network`` owns two arenas:
- ``layers``: a list of layers, each a list of ``Node`` objects
- ``links``: a flat list of ``Link`` objects

Nodes refer to their links by position in ``links`` and links refer to
their endpoints by ``(layer, index)`` handles, so the graph carries no
object reference cycles and pickles as plain data.
"""

import logging
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np

from .functions import Activation, Normalization, Regularization

logger = logging.getLogger(__name__)

NodeRef = Tuple[int, int]


class Node:
    """
    A unit in the network.

    Holds its bias, its activation function and the state that changes
    after every forward and backward pass (total input, output and the
    error derivatives with respect to both).
    """

    def __init__(
        self,
        node_id: str,
        activation: Activation,
        layer_idx: int,
        index: int,
        init_zero: bool = False
    ):
        self.id = node_id
        self.activation = activation
        self.layer_idx = layer_idx
        self.index = index

        # Handles into Network.links
        self.input_links: List[int] = []
        self.outputs: List[int] = []

        self.bias = 0.0 if init_zero else 0.1
        self.total_input = 0.0
        self.output = 0.0
        self.total_batch_input: List[float] = []
        self.batch_output: List[float] = []

        # Error derivative with respect to this node's output.
        self.output_der = 0.0
        # Error derivative with respect to this node's total input.
        self.input_der = 0.0
        # Accumulated dE/db since the last update, and how many were summed.
        self.acc_input_der = 0.0
        self.num_accumulated_ders = 0

        # Adam moment estimates for the bias
        self.m_bias = 0.0 if init_zero else 0.1
        self.v_bias = 0.0 if init_zero else 0.1

        # Batch normalization
        self.bn_gamma = 1.0
        self.bn_beta = 0.0
        self.bn_mean = 0.0
        self.bn_variance = 1.0
        self.bn_epsilon = 1e-8

        # Layer normalization
        self.ln_gamma = 1.0
        self.ln_beta = 0.0
        self.ln_mean = 0.0
        self.ln_variance = 0.0
        self.ln_epsilon = 1e-8

    @property
    def ref(self) -> NodeRef:
        return (self.layer_idx, self.index)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'layer': self.layer_idx,
            'bias': self.bias,
            'total_input': self.total_input,
            'output': self.output,
            'batch_output': list(self.batch_output),
            'input_der': self.input_der,
            'output_der': self.output_der,
        }

    def __repr__(self):
        return f"Node(id={self.id!r}, layer={self.layer_idx}, bias={self.bias:.3f})"


class Link:
    """
    A weighted edge between a source node and a destination node.

    ``is_dead`` is set once L1 regularization drives the weight across
    zero; a dead link keeps weight 0 and never receives gradient again.
    """

    def __init__(
        self,
        link_id: str,
        source: NodeRef,
        dest: NodeRef,
        regularization: Optional[Regularization],
        weight: float
    ):
        self.id = link_id
        self.source = source
        self.dest = dest
        self.regularization = regularization
        self.weight = weight
        self.is_dead = False

        # Error derivative with respect to this weight.
        self.error_der = 0.0
        self.acc_error_der = 0.0
        self.num_accumulated_ders = 0

        # Adam moment estimates for the weight
        self.m_weight = 0.0
        self.v_weight = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'source': list(self.source),
            'dest': list(self.dest),
            'weight': self.weight,
            'is_dead': self.is_dead,
            'error_der': self.error_der,
        }

    def __repr__(self):
        status = "D" if self.is_dead else "A"
        return f"Link({self.id}, w={self.weight:.3f}, {status})"


class Network:
    """Layers of nodes fully connected between adjacent layers."""

    def __init__(self, normalization: Normalization = Normalization.NONE):
        self.layers: List[List[Node]] = []
        self.links: List[Link] = []
        self.normalization = normalization

        # Which forward pass last ran ('single' or 'batch') and its batch size
        self.last_forward: Optional[str] = None
        self.last_batch_size = 0

    @property
    def shape(self) -> List[int]:
        return [len(layer) for layer in self.layers]

    @property
    def input_layer(self) -> List[Node]:
        return self.layers[0]

    def node(self, ref: NodeRef) -> Node:
        layer_idx, index = ref
        return self.layers[layer_idx][index]

    def source(self, link: Link) -> Node:
        return self.node(link.source)

    def dest(self, link: Link) -> Node:
        return self.node(link.dest)

    def input_links_of(self, node: Node) -> List[Link]:
        return [self.links[handle] for handle in node.input_links]

    def outputs_of(self, node: Node) -> List[Link]:
        return [self.links[handle] for handle in node.outputs]

    def get_output_node(self) -> Node:
        """Return the single node of the last layer."""
        return self.layers[-1][0]

    def iter_nodes(self, ignore_inputs: bool = False) -> Iterator[Node]:
        start = 1 if ignore_inputs else 0
        for layer in self.layers[start:]:
            for node in layer:
                yield node

    def for_each_node(self, ignore_inputs: bool, accessor: Callable[[Node], Any]) -> None:
        """Call ``accessor`` on every node, optionally skipping the input layer."""
        for node in self.iter_nodes(ignore_inputs):
            accessor(node)

    def get_link(self, link_id: str) -> Link:
        for link in self.links:
            if link.id == link_id:
                return link
        raise KeyError(f"No link with id '{link_id}'")

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable snapshot of the current network state."""
        return {
            'shape': self.shape,
            'normalization': self.normalization.value,
            'layers': [[node.to_dict() for node in layer] for layer in self.layers],
            'links': [link.to_dict() for link in self.links],
            'output': self.get_output_node().output,
        }


def build_network(
    network_shape: Sequence[int],
    activation: Activation,
    output_activation: Activation,
    regularization: Optional[Regularization],
    input_ids: Sequence[str],
    normalization: Normalization = Normalization.NONE,
    init_zero: bool = False,
    rng: Optional[np.random.Generator] = None
) -> Network:
    """
    Build a fully-connected network.

    Args:
        network_shape: Nodes per layer. [2, 3, 1] means two inputs, one
            hidden layer of three nodes and one output node.
        activation: Activation of every hidden node
        output_activation: Activation of the output node
        regularization: Penalty applied to every weight, or None
        input_ids: Ids of the input nodes, in order
        normalization: Normalization applied by the forward passes
        init_zero: Start every weight, bias and moment estimate at zero
        rng: Generator used for the random weights

    Returns:
        Network: The new network

    Raises:
        ValueError: If the shape is invalid or does not match input_ids
    """
    shape = list(network_shape)
    if len(shape) < 2:
        raise ValueError(f"Network needs at least 2 layers, got {shape}")
    if any(not isinstance(n, (int, np.integer)) or n < 1 for n in shape):
        raise ValueError(f"Every layer needs a positive integer size, got {shape}")
    if shape[-1] != 1:
        raise ValueError(f"The output layer must have exactly one node, got {shape[-1]}")
    if len(input_ids) != shape[0]:
        raise ValueError(
            f"Got {len(input_ids)} input ids for an input layer of {shape[0]} nodes"
        )
    # Non-input nodes are numbered 1..N
    assigned_ids = {str(k) for k in range(1, sum(shape[1:]) + 1)}
    clashing = [str(i) for i in input_ids if str(i) in assigned_ids]
    if clashing:
        raise ValueError(
            f"Input ids {clashing} clash with the numeric ids given to other nodes"
        )
    if len(set(str(i) for i in input_ids)) != len(input_ids):
        raise ValueError(f"Input ids must be unique, got {list(input_ids)}")

    if rng is None:
        rng = np.random.default_rng()

    network = Network(normalization)
    next_id = 1
    num_layers = len(shape)
    for layer_idx, num_nodes in enumerate(shape):
        is_output_layer = layer_idx == num_layers - 1
        current_layer: List[Node] = []
        network.layers.append(current_layer)
        for i in range(num_nodes):
            if layer_idx == 0:
                node_id = str(input_ids[i])
            else:
                node_id = str(next_id)
                next_id += 1
            node = Node(
                node_id,
                output_activation if is_output_layer else activation,
                layer_idx,
                i,
                init_zero
            )
            current_layer.append(node)
            if layer_idx == 0:
                continue
            # Links from every node in the previous layer to this node.
            for prev_node in network.layers[layer_idx - 1]:
                weight = 0.0 if init_zero else float(rng.random() - 0.5)
                link = Link(
                    f"{prev_node.id}-{node.id}",
                    prev_node.ref,
                    node.ref,
                    regularization,
                    weight
                )
                handle = len(network.links)
                network.links.append(link)
                prev_node.outputs.append(handle)
                node.input_links.append(handle)

    logger.debug(
        f"Built network {shape}: {len(network.links)} links, "
        f"normalization={normalization.value}"
    )
    return network
