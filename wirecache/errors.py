"""
Exceptions raised by the cache.

All of them derive from `requests.exceptions.RequestException`, which is itself
an `IOError`, so code that already handles failed requests also handles a
failing cache.
"""

from pathlib import Path

from requests.exceptions import RequestException


class CacheError(RequestException):
    """
    Base class for every error raised by the cache.
    """


class KeyDerivationError(CacheError):
    """
    The request body could not be read in order to compute a cache key.
    """


class InvalidKey(CacheError, ValueError):
    """
    A cache key that cannot safely be used as a file name.
    """

    def __init__(self, key: str) -> None:
        super().__init__('Invalid cache key: {!r}'.format(key))
        self.__key = key

    @property
    def key(self) -> str:
        return self.__key


class ParseError(CacheError):
    """
    Stored bytes are not a well-formed HTTP response.
    """


class StoreReadError(CacheError):
    def __init__(self, entry_path: Path, *args) -> None:
        super().__init__('Could not read cache entry {}'.format(entry_path), *args)
        self.__entry_path = entry_path

    @property
    def entry_path(self) -> Path:
        return self.__entry_path


class StoreWriteError(CacheError):
    def __init__(self, entry_path: Path, *args) -> None:
        super().__init__('Could not write cache entry {}'.format(entry_path), *args)
        self.__entry_path = entry_path

    @property
    def entry_path(self) -> Path:
        return self.__entry_path
