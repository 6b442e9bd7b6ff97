"""Database module for storing and loading face descriptors."""

import json
import logging
import os
import threading
from pathlib import Path

import numpy as np

from face_attendance.config import DB_FILE, DB_KEY

logger = logging.getLogger(__name__)


def _read_document(path):
    """Read the whole storage document, or an empty one if missing/corrupt."""
    if not path.exists():
        return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            document = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable face database {path}: {e}")
        return {}

    if not isinstance(document, dict):
        logger.warning(f"Ignoring malformed face database {path}")
        return {}
    return document


def load_encodings(path=None, key=None):
    """
    Load face descriptors from the JSON storage file.

    Args:
        path: Storage file (defaults to config value)
        key: Storage key holding the descriptor table (defaults to config value)

    Returns:
        Dictionary mapping username to list of descriptors:
        {"username": [array1, array2, ...], ...}
        Returns empty dict if the file or key doesn't exist or can't be parsed
    """
    path = Path(path or DB_FILE)
    key = key or DB_KEY

    table = _read_document(path).get(key)
    if table is None:
        return {}

    try:
        return {
            name: [np.asarray(values, dtype=np.float64) for values in descriptors]
            for name, descriptors in table.items()
        }
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning(f"Ignoring malformed descriptor table under {key!r}: {e}")
        return {}


def save_encodings(encodings_dict, path=None, key=None):
    """
    Save face descriptors to the JSON storage file.

    The full table is rewritten; other keys in the document are kept.

    Args:
        encodings_dict: Dictionary mapping username to list of descriptors
        path: Storage file (defaults to config value)
        key: Storage key for the descriptor table (defaults to config value)
    """
    path = Path(path or DB_FILE)
    key = key or DB_KEY

    document = _read_document(path)
    document[key] = {
        name: [np.asarray(d, dtype=np.float64).tolist() for d in descriptors]
        for name, descriptors in encodings_dict.items()
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(document, f)
    os.replace(tmp_path, path)


class FaceDatabase:
    """In-memory descriptor table persisted in full after every mutation."""

    def __init__(self, path=None, key=None):
        self.path = Path(path or DB_FILE)
        self.key = key or DB_KEY
        self._lock = threading.Lock()
        self._encodings = load_encodings(self.path, self.key)
        logger.info(f"Loaded {len(self._encodings)} enrolled user(s) from {self.path}")

    def __len__(self):
        return len(self._encodings)

    def __contains__(self, username):
        return username in self._encodings

    def names(self):
        """Return enrolled usernames."""
        return list(self._encodings)

    def get(self, username):
        """Return the stored descriptors for a user, or an empty list."""
        return list(self._encodings.get(username, []))

    def snapshot(self):
        """Return a shallow copy of the table safe to iterate while others write."""
        with self._lock:
            return {name: list(descriptors) for name, descriptors in self._encodings.items()}

    def replace(self, username, descriptors):
        """
        Replace all descriptors for a user and persist the table.

        Args:
            username: Name of the user
            descriptors: New list of descriptors (not merged with old ones)
        """
        with self._lock:
            self._encodings[username] = [np.asarray(d, dtype=np.float64) for d in descriptors]
            save_encodings(self._encodings, self.path, self.key)
        logger.info(f"Stored {len(descriptors)} descriptor(s) for {username!r}")

    def delete(self, username):
        """
        Remove a user and persist the table.

        Returns:
            True if the user existed
        """
        with self._lock:
            existed = self._encodings.pop(username, None) is not None
            save_encodings(self._encodings, self.path, self.key)
        if existed:
            logger.info(f"Deleted {username!r}")
        return existed
