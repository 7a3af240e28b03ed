"""Names of the keys under which chain and contract data are stored."""

from __future__ import annotations

from typing import Any


def height() -> str:
    return "height"


def outdated() -> str:
    return "outdated"


def block(index: int) -> str:
    return f"block_{index:010}"


def header(index: int) -> str:
    return f"header_{index:010}"


def power(index: int) -> str:
    return f"power_{index:010}"


def rollback(index: int) -> str:
    return f"rollback_{index:010}"


def merkle(index: int) -> str:
    return f"merkle_{index:010}"


def compressed_state_at(contract_id: Any, at: int) -> str:
    return f"contract_compressed_state_{contract_id}_{at}"


def account(address: Any) -> str:
    return f"account_{address}"


def contract_account(contract_id: Any) -> str:
    return f"contract_account_{contract_id}"


def contract(contract_id: Any) -> str:
    return f"contract_{contract_id}"


def contract_updates(index: int) -> str:
    return f"contract_updates_{index:010}"


def local_prefix(contract_id: Any) -> str:
    return str(contract_id)


def local_height(contract_id: Any) -> str:
    return f"{local_prefix(contract_id)}_height"


def local_root(contract_id: Any) -> str:
    return f"{local_prefix(contract_id)}_compressed"


def local_tree_aux(contract_id: Any, tree_loc: Any, aux_id: int) -> str:
    return f"{local_prefix(contract_id)}_{tree_loc}_aux_{aux_id}"


def local_rollback_to_height(contract_id: Any, height: int) -> str:
    return f"{local_prefix(contract_id)}_rollback_{height}"


def local_scalar_value_prefix(contract_id: Any) -> str:
    return f"{local_prefix(contract_id)}_s"


def local_non_scalar_value_prefix(contract_id: Any) -> str:
    return local_prefix(contract_id)


def local_value(contract_id: Any, locator: Any, is_scalar: bool) -> str:
    prefix = (
        local_scalar_value_prefix(contract_id)
        if is_scalar
        else local_non_scalar_value_prefix(contract_id)
    )
    return f"{prefix}_{locator}"