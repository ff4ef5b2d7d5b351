#!/usr/bin/env python3
"""
Train a playground network on examples stored in an NPZ file.

The file must hold two arrays:
- ``inputs``: shape (n_examples, n_features)
- ``targets``: shape (n_examples,)

Usage:
    python scripts/train_from_npz.py data/xor.npz --steps 200 --shape 2 4 1

The script will:
1. Load and check the examples
2. Build a network from the command-line configuration
3. Run the requested number of training steps, printing the loss
4. Optionally save the trained network to the model database
"""

import argparse
import os
import sys
from typing import Tuple

import numpy as np

from playground.config import MODEL_DIR, TrainingConfig
from playground.model_persistence import save_network
from playground.trainer import Trainer


def load_examples(filepath: str) -> Tuple[np.ndarray, np.ndarray]:
    """
    Load inputs and targets from an NPZ file.

    Parameters:
    -----------
    filepath : str
        Path to the .npz file

    Returns:
    --------
    tuple
        (inputs, targets) as float arrays
    """
    print(f"📂 Loading examples from: {filepath}")

    with np.load(filepath) as data:
        inputs = np.asarray(data['inputs'], dtype=float)
        targets = np.asarray(data['targets'], dtype=float).reshape(-1)

    if inputs.ndim != 2 or len(inputs) != len(targets):
        raise ValueError(
            f"Expected inputs of shape (n, d) and n targets, got "
            f"{inputs.shape} and {targets.shape}"
        )

    print(f"✅ Loaded {len(inputs)} examples with {inputs.shape[1]} features")
    return inputs, targets


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('data', help='NPZ file with inputs and targets arrays')
    parser.add_argument('--steps', type=int, default=100)
    parser.add_argument('--shape', type=int, nargs='+', default=None,
                        help='layer sizes; defaults to [n_features, 4, 2, 1]')
    parser.add_argument('--activation', default='tanh')
    parser.add_argument('--regularization', default='none')
    parser.add_argument('--regularization-rate', type=float, default=0.0)
    parser.add_argument('--learning-rate', type=float, default=0.03)
    parser.add_argument('--batch-size', type=int, default=10)
    parser.add_argument('--normalization', default='none')
    parser.add_argument('--optimizer', default='sgd')
    parser.add_argument('--seed', type=int, default=None)
    parser.add_argument('--save', metavar='NETWORK_ID', default=None,
                        help=f'save the trained network under this id in {MODEL_DIR}/')
    return parser.parse_args(argv)


def main(argv=None):
    """Main training function."""
    args = parse_args(argv)

    print("=" * 60)
    print("Playground network trainer")
    print("=" * 60)

    if not os.path.exists(args.data):
        print(f"❌ Error: data file not found: {args.data}")
        sys.exit(1)

    try:
        inputs, targets = load_examples(args.data)
        shape = args.shape or [inputs.shape[1], 4, 2, 1]
        config = TrainingConfig.from_dict({
            'network_shape': shape,
            'activation': args.activation,
            'regularization': args.regularization,
            'regularization_rate': args.regularization_rate,
            'learning_rate': args.learning_rate,
            'batch_size': args.batch_size,
            'normalization': args.normalization,
            'optimizer': args.optimizer,
            'seed': args.seed,
        })
    except (KeyError, ValueError) as e:
        print(f"❌ Error: {e}")
        sys.exit(1)

    trainer = Trainer(config)
    rng = np.random.default_rng(args.seed)
    x = inputs.tolist()
    y = targets.tolist()

    loss = None
    for step in range(1, args.steps + 1):
        order = rng.permutation(len(x))
        loss = trainer.step([x[i] for i in order], [y[i] for i in order])
        if step == 1 or step % 10 == 0 or step == args.steps:
            print(f"   step {step:5d}  iteration {trainer.iteration:6d}  loss {loss:.6f}")

    dead = sum(1 for link in trainer.network.links if link.is_dead)
    print(f"\n✅ Training done: final loss {trainer.loss(x, y):.6f}, {dead} dead link(s)")

    if args.save:
        if save_network(trainer.network, args.save, config=config.to_dict(),
                        iteration=trainer.iteration, loss=loss):
            print(f"💾 Saved network '{args.save}'")
        else:
            print(f"❌ Could not save network '{args.save}'")
            sys.exit(1)


if __name__ == '__main__':
    main()
