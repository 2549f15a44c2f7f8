"""
State management for the AquaFlow router
"""

from .intents import CrossChainIntent, Intent
from .nonces import NonceTable
from .packing import PackedPool, pack_reserves, pack_token_data, unpack_reserves, unpack_token_data
from .pools import Pool, PoolStats, PoolStatus, PoolType
from .registry import PoolRegistry, RegistryConfig

__all__ = [
    "CrossChainIntent",
    "Intent",
    "NonceTable",
    "PackedPool",
    "pack_reserves",
    "pack_token_data",
    "unpack_reserves",
    "unpack_token_data",
    "Pool",
    "PoolStats",
    "PoolStatus",
    "PoolType",
    "PoolRegistry",
    "RegistryConfig",
]
