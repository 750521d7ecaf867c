from abc import ABC, abstractmethod
from datetime import datetime
import logging
from pathlib import Path
import re
from typing import Optional

from .errors import InvalidKey, ParseError, StoreReadError, StoreWriteError
from .filesystem import FileSystem, LocalFileSystem
from .model import CACHE_TIME_HEADER, CacheEntry, Response
from .util import format_timestamp, utcnow
from .wire import dump_response, load_response


logger = logging.getLogger(__name__)

_VALID_KEY = re.compile(r'^[A-Za-z0-9._-]+$')


class Cache(ABC):
    """
    An abstraction of a response store.

    A store has a narrow scope: remember a response under a key so it can be recalled later. Deciding which requests
    map to which key, and whether a recalled response is still fresh, is left to its users.
    """

    @abstractmethod
    def exists(self, key: str) -> bool:
        """
        Check whether a response is stored under `key`.

        Never raises: anything that prevents checking counts as "not stored".
        """

    @abstractmethod
    def load(self, key: str) -> CacheEntry:
        """
        Load the response stored under `key`.

        @throws ParseError
          If the stored data is not a well-formed response.
        @throws StoreReadError
          If the stored data could not be read.
        """

    @abstractmethod
    def save(self, key: str, response: Response, now: Optional[datetime] = None) -> Response:
        """
        Store `response` under `key`, replacing whatever was stored before.

        @param now
          The storage time to record. Defaults to the current time.
        @return
          The response as it was stored, i.e. including its storage timestamp.
        @throws StoreWriteError
          If the response could not be written.
        """


class FileCache(Cache):
    """
    Stores one file per key, directly under the root directory.

    Each file holds the response in HTTP wire format with an extra `X-Cache-Time` header recording when it was stored.
    """

    def __init__(self, directory: Path, filesystem: Optional[FileSystem] = None) -> None:
        """
        Initialize the file cache.

        @param directory
          The path to the root directory of the cache. It is created when the first response is saved.
        @param filesystem
          The file operations to use. Defaults to the local file system.
        """
        self.__directory = Path(directory)
        self.__filesystem = filesystem if filesystem is not None else LocalFileSystem()

    @property
    def directory(self) -> Path:
        return self.__directory

    def _get_path(self, key: str) -> Path:
        if not _VALID_KEY.match(key) or key in ('.', '..'):
            raise InvalidKey(key)
        return self.__directory / key

    def exists(self, key: str) -> bool:
        try:
            return self.__filesystem.exists(self._get_path(key))
        except (OSError, InvalidKey) as e:
            logger.warning('Could not check for cache entry {}: {}'.format(key, e))
            return False

    def load(self, key: str) -> CacheEntry:
        entry_path = self._get_path(key)
        try:
            data = self.__filesystem.read_bytes(entry_path)
        except OSError as e:
            raise StoreReadError(entry_path, e) from e

        logger.info('Loaded entry file {}. Parsing the stored response.'.format(entry_path))
        return CacheEntry(key=key, response=load_response(data))

    def save(self, key: str, response: Response, now: Optional[datetime] = None) -> Response:
        entry_path = self._get_path(key)
        stamped = response.with_header(CACHE_TIME_HEADER, format_timestamp(now or utcnow()))

        try:
            data = dump_response(stamped)
        except UnicodeError as e:
            raise StoreWriteError(entry_path, e) from e

        try:
            logger.info('Creating cache directory {}'.format(self.__directory))
            self.__filesystem.makedirs(self.__directory)
            logger.info('Writing entry file {}'.format(entry_path))
            self.__filesystem.write_bytes(entry_path, data)
        except OSError as e:
            raise StoreWriteError(entry_path, e) from e

        return stamped
