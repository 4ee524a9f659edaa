__version__ = "0.1.0"

from clm_paths.core import (
    BaseAdapter,
    MintRejectedError,
    PoolProtocol,
    PoolState,
    StatusDict,
    StatusTuple,
    Strategy,
)

__all__ = [
    "__version__",
    "BaseAdapter",
    "MintRejectedError",
    "PoolProtocol",
    "PoolState",
    "Strategy",
    "StatusDict",
    "StatusTuple",
]
