"""
Provider clients for token risk data
GoPlus (security flags, EVM + Solana), Alchemy (EVM RPC), Helius (Solana RPC)
"""
from dataclasses import dataclass

from .alchemy import AlchemyClient
from .goplus import GoPlusClient
from .helius import HeliusClient


@dataclass
class ProviderClients:
    """The clients one token analysis talks to"""
    goplus: GoPlusClient
    alchemy: AlchemyClient
    helius: HeliusClient


__all__ = [
    "AlchemyClient",
    "GoPlusClient",
    "HeliusClient",
    "ProviderClients",
]
