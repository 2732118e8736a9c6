"""
Echo payload buffers
"""

from functools import lru_cache

DEFAULT_BUFFER_SIZE = 32


def _fill(size: int) -> bytes:
    return bytes(ord('a') + i % 23 for i in range(size))


@lru_cache(maxsize=1)
def _default_buffer() -> bytes:
    return _fill(DEFAULT_BUFFER_SIZE)


def get_send_buffer(size: int) -> bytes:
    """Deterministic payload of ``size`` bytes; the default size is built once"""
    if size == DEFAULT_BUFFER_SIZE:
        return _default_buffer()
    return _fill(size)
