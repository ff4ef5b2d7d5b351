"""
model_persistence.py
~~~~~~~~~~~~~~~~~~~~

SQLite-based persistence for playground networks.

Each row keeps the network's shape and training configuration as JSON
(so they can be listed without unpickling) next to the pickled
``Network`` itself. The network is an arena of nodes and links without
reference cycles, so it pickles as plain data.
"""

import sqlite3
import pickle
import json
import os
import logging
from typing import Optional, List, Dict, Any, Generator
from contextlib import contextmanager

from .config import MODEL_DIR
from .network import Network

# Configure module logger
logger = logging.getLogger(__name__)


class ModelDatabase:
    """
    Manages the SQLite database of saved networks.

    The database stores:
    - Network metadata (shape, config, iteration count, last loss)
    - Serialized network objects as binary blobs
    """

    def __init__(self, db_path: str = os.path.join(MODEL_DIR, 'networks.db')):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path
        self._ensure_directory()
        self._initialize_schema()

    def _ensure_directory(self) -> None:
        """Create the database directory if it doesn't exist."""
        db_dir = os.path.dirname(self.db_path)
        if db_dir and not os.path.exists(db_dir):
            os.makedirs(db_dir)

    @contextmanager
    def _get_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """
        Context manager for database connections.

        Yields:
            sqlite3.Connection: Database connection
        """
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _initialize_schema(self) -> None:
        """Create the database schema if it doesn't exist."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS networks (
                    network_id TEXT PRIMARY KEY,
                    architecture TEXT NOT NULL,
                    config TEXT,
                    network_data BLOB NOT NULL,
                    iteration INTEGER NOT NULL DEFAULT 0,
                    loss REAL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')

            cursor.execute('''
                CREATE INDEX IF NOT EXISTS idx_created_at
                ON networks(created_at DESC)
            ''')

    @staticmethod
    def _row_to_metadata(row: sqlite3.Row) -> Dict[str, Any]:
        return {
            'network_id': row['network_id'],
            'architecture': json.loads(row['architecture']),
            'config': json.loads(row['config']) if row['config'] else None,
            'iteration': row['iteration'],
            'loss': row['loss'],
            'created_at': row['created_at'],
            'updated_at': row['updated_at']
        }

    def save_network_to_db(
        self,
        network: Network,
        network_id: str,
        config: Optional[Dict[str, Any]] = None,
        iteration: int = 0,
        loss: Optional[float] = None
    ) -> bool:
        """
        Save a network to the database, replacing any row with the same id.

        Args:
            network: Network to save
            network_id: Unique identifier for the network
            config: Training configuration as a JSON-style dict
            iteration: Number of updates applied so far
            loss: Most recent training loss

        Returns:
            bool: True if successful

        Raises:
            ValueError: If loss is negative or iteration is negative
        """
        if loss is not None and loss < 0:
            raise ValueError(f"Loss must be non-negative, got {loss}")
        if iteration < 0:
            raise ValueError(f"Iteration must be non-negative, got {iteration}")

        network_data = pickle.dumps(network)
        architecture_json = json.dumps(network.shape)
        config_json = json.dumps(config) if config is not None else None

        with self._get_connection() as conn:
            cursor = conn.cursor()
            # Keep created_at of an existing row
            cursor.execute('''
                INSERT INTO networks
                (network_id, architecture, config, network_data, iteration,
                 loss, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(network_id) DO UPDATE SET
                    architecture = excluded.architecture,
                    config = excluded.config,
                    network_data = excluded.network_data,
                    iteration = excluded.iteration,
                    loss = excluded.loss,
                    updated_at = CURRENT_TIMESTAMP
            ''', (
                network_id,
                architecture_json,
                config_json,
                network_data,
                iteration,
                loss
            ))

        logger.info(
            f"Saved network '{network_id}' with shape {network.shape}, "
            f"iteration={iteration}, loss={loss}"
        )
        return True

    def load_network_from_db(self, network_id: str) -> Optional[Network]:
        """
        Load a network from the database.

        Returns:
            Network object or None if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'SELECT network_data FROM networks WHERE network_id = ?',
                (network_id,)
            )
            row = cursor.fetchone()

            if row is None:
                logger.warning(f"Network '{network_id}' not found")
                return None

            network = pickle.loads(row['network_data'])
            logger.info(f"Loaded network '{network_id}'")
            return network

    def list_networks_from_db(self) -> List[Dict[str, Any]]:
        """List metadata of every saved network, newest first."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, config, iteration, loss,
                       created_at, updated_at
                FROM networks
                ORDER BY created_at DESC
            ''')

            networks = []
            for row in cursor.fetchall():
                metadata = self._row_to_metadata(row)
                architecture = metadata['architecture']
                metadata['num_links'] = sum(
                    architecture[i] * architecture[i + 1]
                    for i in range(len(architecture) - 1)
                )
                networks.append(metadata)

            logger.debug(f"Listed {len(networks)} networks")
            return networks

    def delete_network_from_db(self, network_id: str) -> bool:
        """
        Delete a network from the database.

        Returns:
            bool: True if deleted, False if not found
        """
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                'DELETE FROM networks WHERE network_id = ?',
                (network_id,)
            )

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted network '{network_id}'")
            else:
                logger.warning(f"Could not delete network '{network_id}': not found")
            return deleted

    def delete_old_networks_from_db(self, days: int) -> int:
        """
        Delete networks created more than ``days`` days ago.

        Returns:
            int: Number of deleted networks

        Raises:
            ValueError: If days is negative
        """
        if days < 0:
            raise ValueError(f"days must be non-negative, got {days}")

        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                DELETE FROM networks
                WHERE julianday('now') - julianday(created_at) > ?
            ''', (days,))
            deleted = cursor.rowcount

        logger.info(f"Deleted {deleted} network(s) older than {days} day(s)")
        return deleted

    def get_network_metadata_from_db(self, network_id: str) -> Optional[Dict[str, Any]]:
        """Get network metadata without unpickling the network."""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute('''
                SELECT network_id, architecture, config, iteration, loss,
                       created_at, updated_at
                FROM networks
                WHERE network_id = ?
            ''', (network_id,))

            row = cursor.fetchone()
            if row is None:
                logger.warning(f"Metadata for network '{network_id}' not found")
                return None
            return self._row_to_metadata(row)


# Global database instance for the default model directory
_db = None


def _get_db(model_dir: Optional[str] = None) -> ModelDatabase:
    """
    Return the database for ``model_dir``.

    The default directory shares one global instance; any other
    directory gets a fresh one.
    """
    global _db
    if model_dir is None or model_dir == MODEL_DIR:
        if _db is None:
            _db = ModelDatabase(db_path=os.path.join(MODEL_DIR, 'networks.db'))
        return _db
    return ModelDatabase(db_path=os.path.join(model_dir, 'networks.db'))


def _valid_id(network_id: Any) -> bool:
    if not network_id or not isinstance(network_id, str):
        logger.error("Invalid network_id: must be a non-empty string")
        return False
    return True


def save_network(
    network: Network,
    network_id: str,
    model_dir: Optional[str] = None,
    config: Optional[Dict[str, Any]] = None,
    iteration: int = 0,
    loss: Optional[float] = None
) -> bool:
    """
    Save a network to the SQLite database.

    Args:
        network: The network to save
        network_id: A unique identifier for the network
        model_dir: Directory for the database file
        config: Training configuration as a JSON-style dict
        iteration: Number of updates applied so far
        loss: Most recent training loss

    Returns:
        bool: True if the save was successful, False otherwise

    Example:
        >>> net = TrainingConfig().build()
        >>> save_network(net, "xor")
        True
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).save_network_to_db(network, network_id, config, iteration, loss)
    except ValueError as e:
        logger.error(f"Validation error saving network '{network_id}': {e}")
        return False
    except (AttributeError, TypeError, pickle.PicklingError) as e:
        logger.error(f"Serialization error saving network '{network_id}': {e}")
        return False
    except sqlite3.Error as e:
        logger.error(f"Database error saving network '{network_id}': {e}")
        return False


def load_network(network_id: str, model_dir: Optional[str] = None) -> Optional[Network]:
    """
    Load a network from the SQLite database.

    Returns:
        The loaded network or None if not found
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).load_network_from_db(network_id)
    except (pickle.UnpicklingError, AttributeError, EOFError) as e:
        logger.error(f"Deserialization error loading network '{network_id}': {e}")
        return None
    except sqlite3.Error as e:
        logger.error(f"Database error loading network '{network_id}': {e}")
        return None


def list_saved_networks(model_dir: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    List all saved networks with their metadata.

    Example:
        >>> for net in list_saved_networks():
        ...     print(f"{net['network_id']}: {net['architecture']}")
    """
    try:
        return _get_db(model_dir).list_networks_from_db()
    except sqlite3.Error as e:
        logger.error(f"Database error listing networks: {e}")
        return []
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error listing networks: {e}")
        return []


def delete_network(network_id: str, model_dir: Optional[str] = None) -> bool:
    """
    Delete a saved network.

    Returns:
        bool: True if deletion was successful, False otherwise
    """
    if not _valid_id(network_id):
        return False

    try:
        return _get_db(model_dir).delete_network_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting network '{network_id}': {e}")
        return False


def delete_old_networks(days: int = 2, model_dir: Optional[str] = None) -> int:
    """
    Delete saved networks older than ``days`` days.

    Returns:
        int: Number of deleted networks, or -1 on a database error

    Raises:
        ValueError: If days is negative
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    try:
        return _get_db(model_dir).delete_old_networks_from_db(days)
    except sqlite3.Error as e:
        logger.error(f"Database error deleting old networks: {e}")
        return -1


def get_network_metadata(network_id: str, model_dir: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """
    Get metadata for a specific network without loading it.

    Returns:
        dict: Network metadata or None if not found
    """
    if not _valid_id(network_id):
        return None

    try:
        return _get_db(model_dir).get_network_metadata_from_db(network_id)
    except sqlite3.Error as e:
        logger.error(f"Database error getting metadata for '{network_id}': {e}")
        return None
    except json.JSONDecodeError as e:
        logger.error(f"JSON decode error getting metadata for '{network_id}': {e}")
        return None
