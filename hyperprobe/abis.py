"""Contract ABI fragments used for read-only calls"""

import json
from pathlib import Path
from typing import Any, Dict, List, Union

from hyperprobe.config.models import DexConfig
from hyperprobe.errors import ConfigError

ABI = List[Dict[str, Any]]


def _view(name: str, inputs: ABI, outputs: ABI) -> Dict[str, Any]:
    return {
        "name": name,
        "type": "function",
        "stateMutability": "view",
        "inputs": inputs,
        "outputs": outputs,
    }


def _arg(name: str, type_: str) -> Dict[str, Any]:
    return {"name": name, "type": type_}


ERC20_ABI: ABI = [
    _view("decimals", [], [_arg("", "uint8")]),
    _view("symbol", [], [_arg("", "string")]),
    _view("name", [], [_arg("", "string")]),
    _view("totalSupply", [], [_arg("", "uint256")]),
    _view("balanceOf", [_arg("account", "address")], [_arg("", "uint256")]),
]

V2_ROUTER_ABI: ABI = [
    _view(
        "getAmountsOut",
        [_arg("amountIn", "uint256"), _arg("path", "address[]")],
        [_arg("amounts", "uint256[]")],
    ),
    _view("factory", [], [_arg("", "address")]),
]

V2_FACTORY_ABI: ABI = [
    _view(
        "getPair",
        [_arg("tokenA", "address"), _arg("tokenB", "address")],
        [_arg("pair", "address")],
    ),
]

# Uniswap V2-style pair (getReserves, token ordering)
V2_PAIR_ABI: ABI = [
    _view(
        "getReserves",
        [],
        [
            _arg("_reserve0", "uint112"),
            _arg("_reserve1", "uint112"),
            _arg("_blockTimestampLast", "uint32"),
        ],
    ),
    _view("token0", [], [_arg("", "address")]),
    _view("token1", [], [_arg("", "address")]),
    _view("totalSupply", [], [_arg("", "uint256")]),
]

V3_FACTORY_ABI: ABI = [
    _view(
        "getPool",
        [_arg("tokenA", "address"), _arg("tokenB", "address"), _arg("fee", "uint24")],
        [_arg("pool", "address")],
    ),
]

V3_POOL_ABI: ABI = [
    _view(
        "slot0",
        [],
        [
            _arg("sqrtPriceX96", "uint160"),
            _arg("tick", "int24"),
            _arg("observationIndex", "uint16"),
            _arg("observationCardinality", "uint16"),
            _arg("observationCardinalityNext", "uint16"),
            _arg("feeProtocol", "uint8"),
            _arg("unlocked", "bool"),
        ],
    ),
    _view("liquidity", [], [_arg("", "uint128")]),
    _view("token0", [], [_arg("", "address")]),
    _view("token1", [], [_arg("", "address")]),
    _view("fee", [], [_arg("", "uint24")]),
    _view("tickSpacing", [], [_arg("", "int24")]),
]

_QUOTER_V2_OUTPUTS: ABI = [
    _arg("amountOut", "uint256"),
    _arg("sqrtPriceX96After", "uint160"),
    _arg("initializedTicksCrossed", "uint32"),
    _arg("gasEstimate", "uint256"),
]


def _quoter_v2_struct(tier_field: str, tier_type: str) -> ABI:
    return [
        _view(
            "quoteExactInputSingle",
            [
                {
                    "name": "params",
                    "type": "tuple",
                    "components": [
                        _arg("tokenIn", "address"),
                        _arg("tokenOut", "address"),
                        _arg("amountIn", "uint256"),
                        _arg(tier_field, tier_type),
                        _arg("sqrtPriceLimitX96", "uint160"),
                    ],
                }
            ],
            _QUOTER_V2_OUTPUTS,
        )
    ]


# QuoterV2 keyed by fee tier (HyperSwap V3)
QUOTER_V2_FEE_ABI: ABI = _quoter_v2_struct("fee", "uint24")

# QuoterV2 keyed by tick spacing (KittenSwap CL)
QUOTER_V2_TICK_SPACING_ABI: ABI = _quoter_v2_struct("tickSpacing", "int24")

# Original Quoter with positional arguments
QUOTER_V1_ABI: ABI = [
    _view(
        "quoteExactInputSingle",
        [
            _arg("tokenIn", "address"),
            _arg("tokenOut", "address"),
            _arg("fee", "uint24"),
            _arg("amountIn", "uint256"),
            _arg("sqrtPriceLimitX96", "uint160"),
        ],
        [_arg("amountOut", "uint256")],
    )
]


def load_abi(path: Union[str, Path]) -> ABI:
    """
    Load an ABI from a JSON file.

    Accepts either a bare ABI list or a compiler artifact with an ``abi`` key.

    Raises:
        ConfigError: if the file is missing or holds no ABI list
    """
    abi_path = Path(path)
    if not abi_path.exists():
        raise ConfigError(f"ABI file not found: {abi_path}", {"path": str(abi_path)})

    try:
        data = json.loads(abi_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"Malformed ABI file {abi_path}: {e}", {"path": str(abi_path)}) from e

    if isinstance(data, dict):
        data = data.get("abi")
    if not isinstance(data, list):
        raise ConfigError(f"No ABI list in {abi_path}", {"path": str(abi_path)})
    return data


def quoter_abi_for(dex: DexConfig) -> ABI:
    """Select the quoter ABI matching a DEX's quoting convention"""
    if dex.abi:
        return load_abi(dex.abi)
    if dex.quoter_style == "flat":
        return QUOTER_V1_ABI
    if dex.tier_param == "tickSpacing":
        return QUOTER_V2_TICK_SPACING_ABI
    return QUOTER_V2_FEE_ABI
