from clm_paths.core.adapters.BaseAdapter import BaseAdapter
from clm_paths.core.adapters.pool import MintRejectedError, PoolProtocol, PoolState
from clm_paths.core.strategies.Strategy import StatusDict, StatusTuple, Strategy

__all__ = [
    "Strategy",
    "StatusDict",
    "StatusTuple",
    "BaseAdapter",
    "MintRejectedError",
    "PoolProtocol",
    "PoolState",
]
