"""Owner-only file persistence shared by the key store and config files."""
import os
import tempfile
from pathlib import Path

from .exceptions import IOFailure

PRIVATE_FILE_MODE = 0o600
PRIVATE_DIR_MODE = 0o700


def ensure_private_dir(directory: Path) -> None:
    """Create ``directory`` (and parents) restricted to the owning user."""
    try:
        directory.mkdir(mode=PRIVATE_DIR_MODE, parents=True, exist_ok=True)
        os.chmod(directory, PRIVATE_DIR_MODE)
    except OSError as err:
        raise IOFailure(f"cannot create directory {directory}: {err}") from err


def write_private_file(path: Path, data: bytes) -> None:
    """Atomically write ``data`` to ``path`` with mode 0600.

    The content goes to a temporary file in the same directory which then
    replaces ``path``, so readers never observe a half-written file.
    """
    ensure_private_dir(path.parent)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as fh:
            os.fchmod(fh.fileno(), PRIVATE_FILE_MODE)
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp, path)
    except OSError as err:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise IOFailure(f"cannot write {path}: {err}") from err


def read_file(path: Path) -> bytes:
    """Read ``path``; missing files raise ``FileNotFoundError`` unchanged."""
    try:
        return path.read_bytes()
    except FileNotFoundError:
        raise
    except OSError as err:
        raise IOFailure(f"cannot read {path}: {err}") from err
