from .adapter import CachedHTTPAdapter, create, mount
from .cache import Cache, FileCache
from .config import CacheConfig
from .errors import CacheError, InvalidKey, KeyDerivationError, ParseError, StoreReadError, StoreWriteError

__version__ = '0.1.0'
