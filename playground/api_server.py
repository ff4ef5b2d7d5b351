"""
api_server.py
~~~~~~~~~~~~~

Flask-based REST API server with WebSocket support for the playground.

This module provides endpoints for:
- Building networks from a training configuration
- Running single forward passes and full training steps
- Inspecting node and link state for rendering
- Persisting networks to/from the SQLite database

After every training step the server pushes a ``step_update`` event
with the loss and a state snapshot, so a renderer can redraw without
polling.

The server uses:
- Flask for REST API endpoints
- Flask-SocketIO for WebSocket communication
- Gevent for the background cleanup task and per-network locks
- SQLite for network persistence
"""

import sys
import uuid
import logging
from typing import Any, Dict, List, Tuple

import gevent
from gevent.lock import RLock
from flask import Flask, request, jsonify
from flask_cors import CORS
from flask_socketio import SocketIO

from . import config as settings
from .config import TrainingConfig
from .exceptions import EngineError, ShapeMismatchError
from .propagation import forward_prop, forward_prop_batch
from .trainer import Trainer
from .model_persistence import (
    save_network,
    load_network,
    list_saved_networks,
    delete_network,
    delete_old_networks
)

# ============================================================================
# LOGGING SETUP
# ============================================================================

def configure_logging() -> None:
    """
    Set up logging based on environment.

    - In production: silence noisy third-party loggers
    - In development: keep socket.io logs visible for debugging
    """
    log_level = getattr(logging, settings.LOG_LEVEL, logging.INFO)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if settings.IS_PRODUCTION:
        for logger_name in ['socketio', 'engineio', 'engineio.server',
                            'socketio.server', 'werkzeug']:
            logging.getLogger(logger_name).setLevel(logging.WARNING)
        logging.getLogger('playground').setLevel(logging.INFO)
    else:
        logging.getLogger('socketio').setLevel(logging.INFO)
        logging.getLogger('engineio').setLevel(logging.INFO)


configure_logging()
logger = logging.getLogger(__name__)

# ============================================================================
# FLASK APP SETUP
# ============================================================================

app = Flask(__name__)
CORS(app, resources={r"/*": {"origins": "*"}})

socketio = SocketIO(
    app,
    cors_allowed_origins="*",
    async_mode='gevent',
    logger=not settings.IS_PRODUCTION,
    engineio_logger=not settings.IS_PRODUCTION,
    ping_timeout=60,
    ping_interval=25
)

# ============================================================================
# GLOBAL STATE
# ============================================================================

# Networks currently loaded in memory:
# {network_id: {'trainer': Trainer, 'lock': RLock, 'loss': float | None}}
active_networks: Dict[str, Dict[str, Any]] = {}


def _register(network_id: str, trainer: Trainer, loss=None) -> Dict[str, Any]:
    info = {'trainer': trainer, 'lock': RLock(), 'loss': loss}
    active_networks[network_id] = info
    return info


def _get_info(network_id: str):
    """
    Return the in-memory entry for a network, loading it from the
    database on first access. None if it exists nowhere.
    """
    if network_id in active_networks:
        return active_networks[network_id]

    net = load_network(network_id, settings.MODEL_DIR)
    if net is None:
        return None

    metadata = next(
        (m for m in list_saved_networks(settings.MODEL_DIR) if m['network_id'] == network_id),
        {}
    )
    config = TrainingConfig.from_dict(metadata.get('config') or {
        'network_shape': net.shape,
        'input_ids': [node.id for node in net.input_layer],
        'normalization': net.normalization.value,
    })
    trainer = Trainer(config, network=net)
    trainer.iteration = metadata.get('iteration', 0)
    logger.info(f"Restored network {network_id} from database")
    return _register(network_id, trainer, metadata.get('loss'))


# ============================================================================
# REQUEST PARSING
# ============================================================================

def _as_vector(value: Any, name: str) -> List[float]:
    if not isinstance(value, list):
        raise ValueError(f'{name} must be a list of numbers')
    for v in value:
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError(f'{name} must be a list of numbers')
    return [float(v) for v in value]


def _parse_examples(data: Dict[str, Any]) -> Tuple[List[List[float]], List[float]]:
    """Read ``inputs`` (list of vectors) and ``targets`` from a request body."""
    inputs = data.get('inputs')
    if not isinstance(inputs, list):
        raise ValueError('inputs must be a list of input vectors')
    vectors = [_as_vector(x, 'each input') for x in inputs]
    targets = _as_vector(data.get('targets'), 'targets')
    if len(vectors) != len(targets):
        raise ValueError(f'Got {len(vectors)} inputs but {len(targets)} targets')
    return vectors, targets


def _summary(network_id: str, info: Dict[str, Any]) -> Dict[str, Any]:
    trainer = info['trainer']
    return {
        'network_id': network_id,
        'architecture': trainer.network.shape,
        'config': trainer.config.to_dict(),
        'iteration': trainer.iteration,
        'loss': info['loss'],
    }


# ============================================================================
# BACKGROUND TASKS
# ============================================================================

_cleanup_task_started = False


def cleanup_old_networks_task() -> None:
    """
    Delete saved networks older than 2 days, now and then every 24 hours,
    and drop in-memory networks whose rows are gone.
    """
    while True:
        try:
            before = {net['network_id'] for net in list_saved_networks(settings.MODEL_DIR)}
            deleted_count = delete_old_networks(days=2, model_dir=settings.MODEL_DIR)
            if deleted_count > 0:
                after = {net['network_id'] for net in list_saved_networks(settings.MODEL_DIR)}
                for nid in before - after:
                    if active_networks.pop(nid, None) is not None:
                        logger.info(f"Removed network {nid} from memory (deleted from database)")
            logger.info(f"Cleanup completed: deleted {deleted_count} network(s)")
            gevent.sleep(86400)
        except Exception as e:
            logger.exception(f"Error during network cleanup: {e}")
            gevent.sleep(3600)


def start_cleanup_task() -> None:
    """Start the background cleanup task once."""
    global _cleanup_task_started

    if _cleanup_task_started:
        logger.debug("Cleanup task already started, skipping")
        return

    _cleanup_task_started = True
    logger.info("Starting cleanup task (runs immediately, then every 24 hours)")
    gevent.spawn(cleanup_old_networks_task)


# ============================================================================
# API ENDPOINTS
# ============================================================================

@app.route('/api/status', methods=['GET'])
def get_status():
    """Return server status and the number of networks in memory."""
    return jsonify({
        'status': 'online',
        'active_networks': len(active_networks)
    }), 200


@app.route('/api/networks', methods=['POST'])
def create_network():
    """
    Build a new network.

    Request body (all optional), e.g.:
        {'network_shape': [2, 4, 2, 1], 'activation': 'tanh',
         'regularization': 'L1', 'normalization': 'batch',
         'optimizer': 'adam', 'learning_rate': 0.03}

    Returns:
        JSON with network_id, architecture and the full config
    """
    data = request.get_json(silent=True) or {}

    try:
        config = TrainingConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid network config requested: {e}")
        return jsonify({'error': str(e)}), 400

    network_id = str(uuid.uuid4())
    info = _register(network_id, Trainer(config))
    logger.info(f"Created network {network_id} with shape {config.network_shape}")

    return jsonify({**_summary(network_id, info), 'status': 'created'}), 201


@app.route('/api/networks', methods=['GET'])
def list_networks():
    """List all networks, in memory first, then saved-only ones."""
    in_memory = [
        {**_summary(nid, info), 'status': 'in_memory'}
        for nid, info in active_networks.items()
    ]

    saved_only = []
    for net in list_saved_networks(settings.MODEL_DIR):
        if net['network_id'] not in active_networks:
            net['status'] = 'saved'
            saved_only.append(net)

    return jsonify({'networks': in_memory + saved_only}), 200


@app.route('/api/networks/<network_id>', methods=['GET'])
def get_network(network_id: str):
    """Return the config and a full node/link state snapshot."""
    info = _get_info(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    with info['lock']:
        return jsonify({
            **_summary(network_id, info),
            'state': info['trainer'].network.to_dict()
        }), 200


@app.route('/api/networks/<network_id>/forward', methods=['POST'])
def forward(network_id: str):
    """
    Run a forward pass without training.

    Request body: {'inputs': [0.5, -1.0]} for one example or
    {'batch': [[0.5, -1.0], ...]} for a mini-batch.
    """
    info = _get_info(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    net = info['trainer'].network
    try:
        with info['lock']:
            if 'batch' in data:
                if not isinstance(data['batch'], list):
                    raise ValueError('batch must be a list of input vectors')
                batch = [_as_vector(x, 'each batch element') for x in data['batch']]
                return jsonify({'outputs': forward_prop_batch(net, batch)}), 200
            output = forward_prop(net, _as_vector(data.get('inputs'), 'inputs'))
            return jsonify({'output': output}), 200
    except ShapeMismatchError as e:
        logger.warning(f"Shape mismatch on network {network_id}: {e}")
        return jsonify({'error': str(e), 'expected': e.expected, 'actual': e.actual}), 400
    except ValueError as e:
        return jsonify({'error': str(e)}), 400


@app.route('/api/networks/<network_id>/step', methods=['POST'])
def step(network_id: str):
    """
    Run one training step: forward, backward and update.

    Request body:
        {'inputs': [[x1, x2], ...], 'targets': [y, ...]}

    Returns:
        JSON with the step loss and iteration count; the same data plus a
        state snapshot is emitted as a 'step_update' WebSocket event.
    """
    info = _get_info(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        inputs, targets = _parse_examples(data)
        with info['lock']:
            trainer = info['trainer']
            loss = trainer.step(inputs, targets)
            info['loss'] = loss
            snapshot = trainer.network.to_dict()
            iteration = trainer.iteration
    except ShapeMismatchError as e:
        logger.warning(f"Shape mismatch on network {network_id}: {e}")
        return jsonify({'error': str(e), 'expected': e.expected, 'actual': e.actual}), 400
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    except EngineError as e:
        logger.exception(f"Training step failed for network {network_id}: {e}")
        return jsonify({'error': str(e)}), 500

    socketio.emit('step_update', {
        'network_id': network_id,
        'iteration': iteration,
        'loss': loss,
        'state': snapshot
    })
    gevent.sleep(0)

    return jsonify({
        'network_id': network_id,
        'iteration': iteration,
        'loss': loss
    }), 200


@app.route('/api/networks/<network_id>/loss', methods=['POST'])
def evaluate_loss(network_id: str):
    """Mean error over the given examples, e.g. a test set."""
    info = _get_info(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    data = request.get_json(silent=True) or {}
    try:
        inputs, targets = _parse_examples(data)
        with info['lock']:
            loss = info['trainer'].loss(inputs, targets)
    except ShapeMismatchError as e:
        return jsonify({'error': str(e), 'expected': e.expected, 'actual': e.actual}), 400
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    return jsonify({'network_id': network_id, 'loss': loss}), 200


@app.route('/api/networks/<network_id>/save', methods=['POST'])
def save_network_endpoint(network_id: str):
    """Persist an in-memory network to the database."""
    info = active_networks.get(network_id)
    if info is None:
        return jsonify({'error': 'Network not found'}), 404

    with info['lock']:
        trainer = info['trainer']
        saved = save_network(
            trainer.network,
            network_id,
            settings.MODEL_DIR,
            config=trainer.config.to_dict(),
            iteration=trainer.iteration,
            loss=info['loss']
        )

    if not saved:
        return jsonify({'error': 'Failed to save network'}), 500
    return jsonify({'network_id': network_id, 'status': 'saved'}), 200


@app.route('/api/networks/<network_id>', methods=['DELETE'])
def delete_network_endpoint(network_id: str):
    """Delete a network from both memory and disk."""
    deleted_from_memory = active_networks.pop(network_id, None) is not None
    deleted_from_disk = delete_network(network_id, settings.MODEL_DIR)

    if not deleted_from_memory and not deleted_from_disk:
        logger.warning(f"Delete attempted for non-existent network: {network_id}")
        return jsonify({'error': 'Network not found'}), 404

    logger.info(f"Deleted network {network_id}: memory={deleted_from_memory}, disk={deleted_from_disk}")

    return jsonify({
        'network_id': network_id,
        'deleted_from_memory': deleted_from_memory,
        'deleted_from_disk': deleted_from_disk
    }), 200


@app.route('/api/networks', methods=['DELETE'])
def delete_all_networks():
    """Delete all networks from both memory and disk."""
    saved_ids = [net['network_id'] for net in list_saved_networks(settings.MODEL_DIR)]
    all_network_ids = set(active_networks) | set(saved_ids)

    deleted_from_memory_count = len(active_networks)
    active_networks.clear()
    deleted_from_disk_count = sum(
        1 for network_id in saved_ids if delete_network(network_id, settings.MODEL_DIR)
    )

    logger.info(
        f"Deleted all networks: {len(all_network_ids)} total, "
        f"{deleted_from_memory_count} from memory, {deleted_from_disk_count} from disk"
    )

    return jsonify({
        'deleted_count': len(all_network_ids),
        'deleted_from_memory': deleted_from_memory_count,
        'deleted_from_disk': deleted_from_disk_count
    }), 200


@app.route('/api/networks/cleanup', methods=['POST'])
def cleanup_old_networks_endpoint():
    """
    Manually delete saved networks older than ``days`` (default 2).
    """
    data = request.get_json(silent=True) or {}
    days = data.get('days', 2)

    if isinstance(days, bool) or not isinstance(days, (int, float)) or days < 0:
        return jsonify({'error': 'days must be a non-negative number'}), 400

    deleted_count = delete_old_networks(days=int(days), model_dir=settings.MODEL_DIR)
    if deleted_count == -1:
        return jsonify({'error': 'Error occurred during cleanup'}), 500

    logger.info(f"Manual cleanup: deleted {deleted_count} network(s) older than {days} day(s)")
    return jsonify({'deleted_count': deleted_count, 'days': days}), 200


# ============================================================================
# SERVER STARTUP
# ============================================================================

def main() -> None:
    port = settings.PORT
    logger.info(f"Starting server at http://localhost:{port}/")

    start_cleanup_task()

    try:
        socketio.run(
            app,
            host='0.0.0.0',
            port=port,
            debug=not settings.IS_PRODUCTION,
            use_reloader=False
        )
    except OSError as e:
        if "Address already in use" in str(e):
            logger.error(f"Port {port} is already in use.")
            sys.exit(1)
        raise


if __name__ == '__main__':
    main()
