"""Hand out free local TCP ports.

The module-level functions use one pool shared by the whole process, see
default_pool(). Set RANDOMPORT_CONFIG to an INI file to configure it.
"""
import os
import logging
from threading import Lock

from .pool import Pool, PoolTimeoutError, PortInUseError, probe
from .pool import DEFAULT_TIMEOUT
from .config import read_config, pool_from_config

__all__ = ['Pool', 'PoolTimeoutError', 'PortInUseError', 'probe',
           'default_pool', 'acquire', 'release', 'count', 'size', 'empty',
           'ports']

CONFIG_ENV = 'RANDOMPORT_CONFIG'

_default = None
_default_lock = Lock()


def default_pool():
    """The pool shared by the whole process, created on first call.

    It's built with the Pool defaults, unless RANDOMPORT_CONFIG names an INI
    file, in which case that file's [Pool] section overrides them.
    """
    global _default
    if _default is None:
        with _default_lock:
            if _default is None:
                path = os.environ.get(CONFIG_ENV)
                if path:
                    _default = pool_from_config(read_config(path))
                    logging.debug('Default pool configured from %s.', path)
                else:
                    _default = Pool()
                    logging.debug('Default pool created.')
    return _default


def acquire(total=1, timeout=DEFAULT_TIMEOUT, action=None):
    return default_pool().acquire(total, timeout, action)


def ports(total=1, timeout=DEFAULT_TIMEOUT):
    return default_pool().ports(total, timeout)


def release(port):
    default_pool().release(port)


def count():
    return default_pool().count()


def size():
    return default_pool().size()


def empty():
    return default_pool().empty()
