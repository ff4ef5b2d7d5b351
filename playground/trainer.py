"""
trainer.py
~~~~~~~~~~

Drives training steps over a network.

A step always runs forward, backward and update in that order. The
caller owns scheduling: nothing here loops on its own or sleeps.
"""

import logging
from typing import List, Optional, Sequence

from .config import TrainingConfig
from .exceptions import ShapeMismatchError
from .functions import ErrorFunction, Normalization
from .network import Network
from .optimizers import update
from .propagation import back_prop, back_prop_batch, forward_prop, forward_prop_batch

logger = logging.getLogger(__name__)


def compute_loss(
    network: Network,
    inputs: Sequence[Sequence[float]],
    targets: Sequence[float],
    error_func: ErrorFunction = ErrorFunction.SQUARE
) -> float:
    """
    Mean error of the network over a set of examples.

    Runs ``forward_prop`` on every example, so node outputs are left
    holding the values of the last one.
    """
    if len(inputs) != len(targets):
        raise ValueError(f"Got {len(inputs)} examples but {len(targets)} targets")
    if not inputs:
        return 0.0
    total = 0.0
    for x, y in zip(inputs, targets):
        total += error_func.error(forward_prop(network, x), y)
    return total / len(inputs)


class Trainer:
    """
    Runs training steps on one network with one configuration.

    ``iteration`` counts update calls, starting at 1 for the first one;
    the Adam rule needs it for bias correction.
    """

    def __init__(
        self,
        config: TrainingConfig,
        network: Optional[Network] = None,
        error_func: ErrorFunction = ErrorFunction.SQUARE
    ):
        self.config = config
        self.network = network if network is not None else config.build()
        self.error_func = error_func
        self.iteration = 0
        logger.info(
            f"Trainer ready: shape={self.network.shape}, "
            f"optimizer={config.optimizer.value}, normalization={config.normalization.value}"
        )

    def _update(self) -> None:
        self.iteration += 1
        config = self.config
        update(
            self.network,
            config.optimizer,
            config.learning_rate,
            config.regularization_rate,
            self.iteration,
            beta1=config.beta1,
            beta2=config.beta2,
            epsilon=config.epsilon
        )

    def step(self, inputs: Sequence[Sequence[float]], targets: Sequence[float]) -> float:
        """
        Train on the given examples, updating once per mini-batch.

        With batch normalization each mini-batch goes through the batch
        passes; otherwise examples are propagated one at a time and their
        derivatives accumulate until the batch is full.

        Args:
            inputs: Input vectors
            targets: One target per input vector

        Returns:
            float: Mean error of the examples before the updates

        Raises:
            ValueError: If inputs and targets differ in length
            ShapeMismatchError: If an input vector has the wrong length
        """
        if len(inputs) != len(targets):
            raise ValueError(f"Got {len(inputs)} examples but {len(targets)} targets")
        if not inputs:
            return 0.0
        # Reject the whole step before any example touches the network
        expected = len(self.network.input_layer)
        for index, x in enumerate(inputs):
            if len(x) != expected:
                raise ShapeMismatchError(expected, len(x), index)

        batch_size = self.config.batch_size
        errors: List[float] = []

        if self.network.normalization is Normalization.BATCH:
            for start in range(0, len(inputs), batch_size):
                batch = inputs[start:start + batch_size]
                batch_targets = targets[start:start + batch_size]
                outputs = forward_prop_batch(self.network, batch)
                back_prop_batch(self.network, batch_targets, self.error_func)
                self._update()
                errors.extend(self.error_func.error(o, t) for o, t in zip(outputs, batch_targets))
        else:
            for i, (x, y) in enumerate(zip(inputs, targets)):
                output = forward_prop(self.network, x)
                back_prop(self.network, y, self.error_func)
                errors.append(self.error_func.error(output, y))
                if (i + 1) % batch_size == 0 or i == len(inputs) - 1:
                    self._update()

        loss = sum(errors) / len(errors)
        logger.debug(f"Step done: iteration={self.iteration}, loss={loss:.6f}")
        return loss

    def loss(self, inputs: Sequence[Sequence[float]], targets: Sequence[float]) -> float:
        return compute_loss(self.network, inputs, targets, self.error_func)
