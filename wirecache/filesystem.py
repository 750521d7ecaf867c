from abc import ABC, abstractmethod
import logging
import os
from pathlib import Path
import tempfile


logger = logging.getLogger(__name__)


def _current_umask() -> int:
    # The umask can only be read by setting it.
    umask = os.umask(0)
    os.umask(umask)
    return umask


class FileSystem(ABC):
    """
    The byte-level file operations the cache relies on.

    All methods raise `OSError` (e.g. `FileNotFoundError`) on failure.
    """

    @abstractmethod
    def read_bytes(self, path: Path) -> bytes:
        """
        Read the complete contents of the file at `path`.
        """

    @abstractmethod
    def write_bytes(self, path: Path, data: bytes) -> None:
        """
        Create or replace the file at `path` with `data`.

        Readers must never observe a partially written file.
        """

    @abstractmethod
    def exists(self, path: Path) -> bool:
        """
        Stat `path`. A missing file is reported as `False`; other stat failures
        raise.
        """

    @abstractmethod
    def makedirs(self, path: Path) -> None:
        """
        Create `path` and any missing parents. An existing directory is fine.
        """


class LocalFileSystem(FileSystem):
    def __init__(self, mode: int = 0o666) -> None:
        """
        @param mode
          The permissions of written files, before the process umask is applied.
        """
        self.__mode = mode & ~_current_umask()

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()

    def write_bytes(self, path: Path, data: bytes) -> None:
        path = Path(path)
        # The temporary file lives next to the target so the rename stays on one file system.
        fd, temp_name = tempfile.mkstemp(prefix='.{}.'.format(path.name), suffix='.tmp', dir=str(path.parent))
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
            # `mkstemp` creates files readable by the owner only.
            os.chmod(temp_name, self.__mode)
            os.replace(temp_name, str(path))
        except BaseException:
            logger.debug('Removing temporary file {}'.format(temp_name))
            try:
                os.unlink(temp_name)
            except FileNotFoundError:
                pass
            raise

    def exists(self, path: Path) -> bool:
        try:
            Path(path).stat()
        except FileNotFoundError:
            return False
        return True

    def makedirs(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)
