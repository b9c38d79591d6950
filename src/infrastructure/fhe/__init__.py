from src.infrastructure.fhe.in_memory import InMemoryCryptoGateway, InMemoryFheCoprocessor
from src.infrastructure.fhe.relayer import RelayerCryptoGateway

__all__ = ["InMemoryCryptoGateway", "InMemoryFheCoprocessor", "RelayerCryptoGateway"]
