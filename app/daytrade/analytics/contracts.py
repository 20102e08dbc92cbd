from dataclasses import dataclass
from typing import Dict

from loguru import logger


@dataclass(frozen=True)
class ContractSpec:
    symbol: str
    name: str
    point_value: float      # currency per point per contract
    tick_size: float


DEFAULT_SYMBOL = "WIN"

CONTRACTS: Dict[str, ContractSpec] = {
    "WIN": ContractSpec("WIN", "Mini Índice Bovespa", point_value=0.20, tick_size=5),
    "WDO": ContractSpec("WDO", "Mini Dólar", point_value=0.50, tick_size=0.5),
}


def get_contract_spec(symbol: str) -> ContractSpec:
    """Contract metadata; unknown symbols fall back to the WIN spec"""
    spec = CONTRACTS.get(symbol)
    if spec is None:
        logger.warning(f"Unknown contract {symbol!r}, using {DEFAULT_SYMBOL} specification")
        return CONTRACTS[DEFAULT_SYMBOL]
    return spec
