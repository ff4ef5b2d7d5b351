"""
test_trainer.py
~~~~~~~~~~~~~~~

Tests for the training configuration and the step driver.
"""

import pytest

from playground.config import TrainingConfig
from playground.exceptions import ShapeMismatchError
from playground.functions import Activation, Normalization, Regularization
from playground.optimizers import Optimizer
from playground.trainer import Trainer, compute_loss

LINEAR_INPUTS = [[0.0, 0.0], [1.0, 0.0], [0.0, 1.0], [1.0, 1.0]]
LINEAR_TARGETS = [0.0, 1.0, 1.0, 2.0]


@pytest.fixture
def linear_config():
    """Config for fitting y = x1 + x2 with a single linear unit."""
    return TrainingConfig(
        network_shape=[2, 1],
        activation=Activation.LINEAR,
        output_activation=Activation.LINEAR,
        learning_rate=0.1,
        batch_size=1,
        seed=0
    )


@pytest.mark.unit
class TestTrainingConfig:
    """Test configuration parsing and validation."""

    def test_defaults(self):
        config = TrainingConfig()
        assert config.network_shape == [2, 4, 2, 1]
        assert config.activation is Activation.TANH
        assert config.regularization is None
        assert config.optimizer is Optimizer.SGD

    def test_from_dict_parses_names(self):
        config = TrainingConfig.from_dict({
            'network_shape': [3, 5, 1],
            'activation': 'ReLU',
            'regularization': 'L1',
            'normalization': 'batch',
            'optimizer': 'adam',
        })
        assert config.activation is Activation.RELU
        assert config.regularization is Regularization.L1
        assert config.normalization is Normalization.BATCH
        assert config.optimizer is Optimizer.ADAM
        assert config.input_ids == ['x1', 'x2', 'x3']

    def test_round_trip(self):
        config = TrainingConfig.from_dict({'regularization': 'l2', 'optimizer': 'adam', 'seed': 3})
        assert TrainingConfig.from_dict(config.to_dict()) == config

    def test_to_dict_is_plain(self):
        data = TrainingConfig(regularization=Regularization.L1).to_dict()
        assert data['activation'] == 'tanh'
        assert data['regularization'] == 'l1'
        assert data['normalization'] == 'none'

    @pytest.mark.parametrize('data', [
        {'network_shape': [2]},
        {'network_shape': [2, 3]},
        {'network_shape': [2, 0, 1]},
        {'learning_rate': 0},
        {'regularization_rate': -1},
        {'batch_size': 0},
        {'beta1': 1.0},
        {'activation': 'softmax'},
        {'network_shape': [2, 1], 'input_ids': ['a']},
        {'network_shape': [2, 1], 'input_ids': ['a', 'a']},
        {'network_shape': [2, 2, 1], 'input_ids': ['1', '2']},
        {'momentum': 0.9},
    ])
    def test_invalid(self, data):
        with pytest.raises(ValueError):
            TrainingConfig.from_dict(data)

    def test_build_uses_seed(self):
        config = TrainingConfig(seed=42)
        first = [link.weight for link in config.build().links]
        second = [link.weight for link in config.build().links]
        assert first == second


@pytest.mark.unit
class TestTrainer:
    """Test the step driver."""

    def test_iteration_counts_updates(self, linear_config):
        linear_config.batch_size = 2
        trainer = Trainer(linear_config)
        trainer.step(LINEAR_INPUTS + [[0.5, 0.5]], LINEAR_TARGETS + [1.0])
        assert trainer.iteration == 3

    def test_batch_normalization_path(self):
        config = TrainingConfig(
            network_shape=[2, 3, 1], normalization=Normalization.BATCH,
            batch_size=2, seed=1
        )
        trainer = Trainer(config)
        loss = trainer.step(LINEAR_INPUTS, LINEAR_TARGETS)
        assert trainer.iteration == 2
        assert loss >= 0
        assert trainer.network.last_forward == 'batch'
        assert len(trainer.network.get_output_node().batch_output) == 2

    def test_adam_path(self, linear_config):
        linear_config.optimizer = Optimizer.ADAM
        trainer = Trainer(linear_config)
        for _ in range(3):
            trainer.step(LINEAR_INPUTS, LINEAR_TARGETS)
        assert trainer.iteration == 12

    def test_loss_decreases(self, linear_config):
        trainer = Trainer(linear_config)
        initial = trainer.loss(LINEAR_INPUTS, LINEAR_TARGETS)
        for _ in range(200):
            trainer.step(LINEAR_INPUTS, LINEAR_TARGETS)
        final = trainer.loss(LINEAR_INPUTS, LINEAR_TARGETS)
        assert final < initial
        assert final < 1e-3

    def test_step_returns_mean_error(self, linear_config):
        trainer = Trainer(linear_config)
        net = trainer.network
        expected = compute_loss(net, LINEAR_INPUTS[:1], LINEAR_TARGETS[:1])
        assert trainer.step(LINEAR_INPUTS[:1], LINEAR_TARGETS[:1]) == pytest.approx(expected)

    def test_shape_mismatch_rejects_whole_step(self, linear_config):
        trainer = Trainer(linear_config)
        weights = [link.weight for link in trainer.network.links]

        with pytest.raises(ShapeMismatchError) as exc_info:
            trainer.step([[1.0, 2.0], [1.0, 2.0, 3.0]], [0.0, 0.0])

        assert exc_info.value.index == 1
        assert trainer.iteration == 0
        assert [link.weight for link in trainer.network.links] == weights

    def test_targets_mismatch(self, linear_config):
        with pytest.raises(ValueError):
            Trainer(linear_config).step(LINEAR_INPUTS, LINEAR_TARGETS[:2])

    def test_empty_step(self, linear_config):
        trainer = Trainer(linear_config)
        assert trainer.step([], []) == 0.0
        assert trainer.iteration == 0


@pytest.mark.unit
def test_compute_loss_by_hand():
    config = TrainingConfig(
        network_shape=[1, 1], input_ids=['x'], activation=Activation.LINEAR,
        output_activation=Activation.LINEAR, init_zero=True
    )
    net = config.build()
    net.links[0].weight = 2.0
    # outputs 2 and 4 against targets 1 and 1: errors 0.5 and 4.5
    assert compute_loss(net, [[1.0], [2.0]], [1.0, 1.0]) == pytest.approx(2.5)
