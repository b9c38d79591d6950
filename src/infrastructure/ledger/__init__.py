from src.infrastructure.ledger.in_memory import InMemoryLedger
from src.infrastructure.ledger.web3_contract import Web3ContractLedger

__all__ = ["InMemoryLedger", "Web3ContractLedger"]
