from __future__ import annotations

import os
import tempfile

from pathlib import Path

def _write_atomic(path: Path, data: bytes) -> None:
    """Write data to `path` atomically, via a temp file in the same dir and a rename.

    Parent dirs are created as needed. Readers see either the old contents or the new ones.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    # same dir, so the rename stays on one filesystem
    with tempfile.NamedTemporaryFile(
        mode='wb',
        dir=path.parent,
        prefix=path.name + '.',
        suffix='.tmp',
        delete=False
    ) as tf:
        tf.write(data)
        tf.flush()
        os.fsync(tf.fileno())
    os.replace(tf.name, path)

def _read_file(path: Path) -> bytes|None:
    """Read file contents, returning None if the file doesn't exist.

    Any other I/O error (permissions, a directory in the way, ...) is raised.
    """
    try:
        with open(path, 'rb') as f:
            return f.read()
    except FileNotFoundError:
        return None
