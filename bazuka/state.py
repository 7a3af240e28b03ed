"""Storage of contract states as sparse Merkle trees inside a key-value store."""

from __future__ import annotations

import json
import struct
from typing import Any, Iterable, Mapping, Optional

from . import keys
from .db import Blob, KvStore, KvStoreError, Put, RamKvStore, Remove
from .field import ZkScalar
from .zk import (
    ListModel,
    ScalarModel,
    StructModel,
    ZkCompressedState,
    ZkContract,
    ZkDataLocator,
    ZkHasher,
    ZkState,
    ZkStateModel,
    as_delta,
)

MAX_ROLLBACKS = 5
ZERO_CONTRACT_ID = "0" * 64

_U64 = struct.Struct("<Q")
_SIZE = struct.Struct("<I")
_SCALAR_SIZE = 32

Delta = dict  # ZkDataLocator -> Optional[ZkScalar]


class StateManagerError(Exception):
    """Base class of errors raised while managing contract states."""


class ContractNotFoundError(StateManagerError):
    """Raised when no contract is stored under the requested id."""

    def __init__(self) -> None:
        super().__init__("contract not found")


class NonScalarLocatorError(StateManagerError):
    """Raised when a value is written to a locator that is not a scalar."""

    def __init__(self) -> None:
        super().__init__("not locating a scalar")


class NonTreeLocatorError(StateManagerError):
    """Raised when a membership proof is asked for something that is not a list."""

    def __init__(self) -> None:
        super().__init__("not locating a tree")


def _corrupted(what: str) -> KvStoreError:
    return KvStoreError(f"kvstore data corrupted: bad {what}")


def _u64_blob(n: int) -> Blob:
    return Blob(_U64.pack(n))


def _blob_u64(blob: Blob) -> int:
    if len(blob.data) != _U64.size:
        raise _corrupted("integer")
    return _U64.unpack(blob.data)[0]


def _scalar_blob(value: ZkScalar) -> Blob:
    return Blob(value.to_bytes_le())


def _blob_scalar(blob: Blob) -> ZkScalar:
    if len(blob.data) != _SCALAR_SIZE:
        raise _corrupted("scalar")
    return ZkScalar.from_bytes_le(blob.data)


def _compressed_blob(state: ZkCompressedState) -> Blob:
    return Blob(state.state_hash.to_bytes_le() + _SIZE.pack(state.state_size))


def _blob_compressed(blob: Blob) -> ZkCompressedState:
    if len(blob.data) != _SCALAR_SIZE + _SIZE.size:
        raise _corrupted("compressed state")
    state_hash = ZkScalar.from_bytes_le(blob.data[:_SCALAR_SIZE])
    (size,) = _SIZE.unpack(blob.data[_SCALAR_SIZE:])
    return ZkCompressedState(state_hash, size)


def _delta_blob(delta: Mapping[ZkDataLocator, Optional[ZkScalar]]) -> Blob:
    items = [
        [list(loc.path), None if val is None else val.value] for loc, val in delta.items()
    ]
    return Blob(json.dumps(items).encode("utf-8"))


def _blob_delta(blob: Blob) -> Delta:
    try:
        items = json.loads(blob.data.decode("utf-8"))
        return {
            ZkDataLocator(tuple(path)): None if val is None else ZkScalar(val)
            for path, val in items
        }
    except (ValueError, TypeError) as exc:
        raise _corrupted("delta") from exc


def _model_to_json(model: ZkStateModel) -> Any:
    match model:
        case StructModel(field_types=fields):
            return {"struct": [_model_to_json(f) for f in fields]}
        case ListModel(log4_size=log4_size, item_type=item):
            return {"list": {"log4_size": log4_size, "item": _model_to_json(item)}}
        case _:
            return "scalar"


def _model_from_json(obj: Any) -> ZkStateModel:
    if obj == "scalar":
        return ScalarModel()
    if isinstance(obj, dict) and "struct" in obj:
        return StructModel(tuple(_model_from_json(f) for f in obj["struct"]))
    if isinstance(obj, dict) and "list" in obj:
        spec = obj["list"]
        return ListModel(int(spec["log4_size"]), _model_from_json(spec["item"]))
    raise ValueError(f"unknown state model {obj!r}")


def _contract_blob(contract: ZkContract) -> Blob:
    doc = {
        "initial_state": {
            "state_hash": str(contract.initial_state.state_hash.value),
            "state_size": contract.initial_state.state_size,
        },
        "state_model": _model_to_json(contract.state_model),
        "payment_functions": list(contract.payment_functions),
        "functions": list(contract.functions),
    }
    return Blob(json.dumps(doc).encode("utf-8"))


def _blob_contract(blob: Blob) -> ZkContract:
    try:
        doc = json.loads(blob.data.decode("utf-8"))
        initial = doc["initial_state"]
        return ZkContract(
            initial_state=ZkCompressedState(
                ZkScalar(int(initial["state_hash"])), int(initial["state_size"])
            ),
            state_model=_model_from_json(doc["state_model"]),
            payment_functions=list(doc["payment_functions"]),
            functions=list(doc["functions"]),
        )
    except (ValueError, TypeError, KeyError) as exc:
        raise _corrupted("contract") from exc


def put_contract(db: KvStore, contract_id: Any, contract: ZkContract) -> None:
    """Store `contract` under `contract_id`."""
    db.update([Put(keys.contract(contract_id), _contract_blob(contract))])


def compress_state(
    model: ZkStateModel, hasher: ZkHasher, data: Mapping[ZkDataLocator, ZkScalar]
) -> ZkCompressedState:
    """The compressed form of a state of `model` holding `data`."""
    builder = ZkStateBuilder(hasher, model)
    builder.batch_set(as_delta(data))
    return builder.compress()


class StateManager:
    """Reads and writes contract states kept in a key-value store."""

    def __init__(self, hasher: ZkHasher) -> None:
        self.hasher = hasher

    def delete_contract(self, db: KvStore, contract_id: Any) -> None:
        """Remove every locally stored value of the contract."""
        db.update([Remove(k) for k in db.pairs(keys.local_prefix(contract_id))])

    def height_of(self, db: KvStore, contract_id: Any) -> int:
        """Number of updates applied to the contract's state."""
        blob = db.get(keys.local_height(contract_id))
        return 0 if blob is None else _blob_u64(blob)

    def prove(
        self, db: KvStore, contract_id: Any, tree_loc: ZkDataLocator, index: int
    ) -> list[tuple[ZkScalar, ZkScalar, ZkScalar]]:
        """Sibling hashes of the path from item `index` of a list up to its root."""
        loc_type = self.type_of(db, contract_id).locate(tree_loc)
        if not isinstance(loc_type, ListModel):
            raise NonTreeLocatorError()
        log4_size = loc_type.log4_size
        default_value = loc_type.item_type.compress_default(self.hasher)
        proof = []
        curr_ind = index
        for layer in reversed(range(log4_size)):
            aux_offset = ((1 << (2 * (layer + 1))) - 1) // 3
            start = curr_ind - curr_ind % 4
            part = []
            for leaf_index in range(start, start + 4):
                if leaf_index == curr_ind:
                    continue
                if layer == log4_size - 1:
                    part.append(self.get_data(db, contract_id, tree_loc.index(leaf_index)))
                else:
                    part.append(
                        self._aux(db, contract_id, tree_loc, aux_offset + leaf_index, default_value)
                    )
            curr_ind //= 4
            default_value = self.hasher.hash([default_value] * 4)
            proof.append(tuple(part))
        return proof

    def type_of(self, db: KvStore, contract_id: Any) -> ZkStateModel:
        """The state model of the contract."""
        blob = db.get(keys.contract(contract_id))
        if blob is None:
            raise ContractNotFoundError()
        return _blob_contract(blob).state_model

    def root(self, db: KvStore, contract_id: Any) -> ZkCompressedState:
        """The current compressed state of the contract."""
        blob = db.get(keys.local_root(contract_id))
        if blob is not None:
            return _blob_compressed(blob)
        return ZkCompressedState.empty(self.hasher, self.type_of(db, contract_id))

    def rollback_contract(self, db: KvStore, contract_id: Any) -> Optional[ZkCompressedState]:
        """Undo the latest update; None when there is nothing to undo."""
        root = self.root(db, contract_id)
        height = self.height_of(db, contract_id)
        rollback_key = keys.local_rollback_to_height(contract_id, height)
        patch = self.rollback_of(db, contract_id, 1)
        if patch is None:
            return None
        state_hash, size = root.state_hash, root.state_size
        for loc, val in patch.items():
            state_hash, diff = self.set_data(db, contract_id, loc, val or ZkScalar(0))
            size += diff
        root = ZkCompressedState(state_hash, size)
        db.update(
            [
                Remove(rollback_key),
                Put(keys.local_root(contract_id), _compressed_blob(root)),
                Put(keys.local_height(contract_id), _u64_blob(height - 1)),
            ]
        )
        return root

    def delta_of(self, db: KvStore, contract_id: Any, away: int) -> Optional[Delta]:
        """Current values of everything changed in the last `away` updates."""
        data: Delta = {}
        for i in range(away):
            rollback = self.rollback_of(db, contract_id, i + 1)
            if rollback is None:
                return None
            for loc in rollback:
                data[loc] = self.get_data(db, contract_id, loc)
        return data

    def rollback_of(self, db: KvStore, contract_id: Any, away: int) -> Optional[Delta]:
        """The delta that undoes the update made `away` steps ago."""
        height = self.height_of(db, contract_id)
        blob = db.get(keys.local_rollback_to_height(contract_id, height - away))
        return None if blob is None else _blob_delta(blob)

    def get_full_state(self, db: KvStore, contract_id: Any) -> ZkState:
        """Every non-zero scalar of the contract and its recent rollbacks."""
        data = {}
        for key, blob in db.pairs(keys.local_scalar_value_prefix(contract_id)).items():
            loc = ZkDataLocator.parse(key.split("_")[2])
            data[loc] = _blob_scalar(blob)
        rollbacks = []
        height = self.height_of(db, contract_id)
        for i in range(MAX_ROLLBACKS):
            if height <= i:
                break
            blob = db.get(keys.local_rollback_to_height(contract_id, height - i - 1))
            if blob is None:
                break
            rollbacks.append(_blob_delta(blob))
        return ZkState(data, rollbacks)

    def reset_contract(
        self, db: KvStore, contract_id: Any, height: int, state: ZkState
    ) -> tuple[ZkCompressedState, list[ZkCompressedState]]:
        """Replace the contract's data with `state`, then replay its rollbacks."""
        model = self.type_of(db, contract_id)
        for key in list(db.pairs(keys.local_prefix(contract_id))):
            db.update([Remove(key)])

        state_hash = model.compress_default(self.hasher)
        size = 0
        for loc, val in state.data.items():
            state_hash, diff = self.set_data(db, contract_id, loc, val)
            size += diff
        db.update(
            [
                Put(
                    keys.local_root(contract_id),
                    _compressed_blob(ZkCompressedState(state_hash, size)),
                ),
                Put(keys.local_height(contract_id), _u64_blob(height)),
            ]
        )

        results = []
        root = self.root(db, contract_id)
        for i, rollback in enumerate(state.rollbacks):
            state_hash, size = root.state_hash, root.state_size
            for loc, val in rollback.items():
                state_hash, diff = self.set_data(db, contract_id, loc, val or ZkScalar(0))
                size += diff
            root = ZkCompressedState(state_hash, size)
            db.update(
                [
                    Put(
                        keys.local_rollback_to_height(contract_id, height - 1 - i),
                        _delta_blob(rollback),
                    )
                ]
            )
            results.append(root)
        return root, results

    def update_contract(
        self,
        db: KvStore,
        contract_id: Any,
        patch: Mapping[ZkDataLocator, Optional[ZkScalar]],
    ) -> None:
        """Apply `patch` as one update, keeping a delta that undoes it."""
        fork = db.mirror()
        root = self.root(fork, contract_id)
        height = self.height_of(fork, contract_id)
        state_hash, size = root.state_hash, root.state_size
        rollback: Delta = {}
        for loc, val in patch.items():
            rollback[loc] = self.get_data(fork, contract_id, loc)
            state_hash, diff = self.set_data(fork, contract_id, loc, val or ZkScalar(0))
            size += diff
        ops = fork.to_ops()
        ops.append(
            Put(keys.local_root(contract_id), _compressed_blob(ZkCompressedState(state_hash, size)))
        )
        ops.append(Put(keys.local_rollback_to_height(contract_id, height), _delta_blob(rollback)))
        ops.append(Put(keys.local_height(contract_id), _u64_blob(height + 1)))
        if height >= MAX_ROLLBACKS:
            ops.append(Remove(keys.local_rollback_to_height(contract_id, height - MAX_ROLLBACKS)))
        db.update(ops)

    def set_data(
        self, db: KvStore, contract_id: Any, locator: Iterable[int], value: ZkScalar
    ) -> tuple[ZkScalar, int]:
        """Write a scalar and rehash its ancestors.

        Returns the new root hash and the change in the count of non-zero scalars.
        """
        model = self.type_of(db, contract_id)
        path = list(locator)
        target = ZkDataLocator(tuple(path))
        if not isinstance(model.locate(target), ScalarModel):
            raise NonScalarLocatorError()

        prev_is_zero = self.get_data(db, contract_id, target).is_zero()
        scalar_key = keys.local_value(contract_id, target, True)
        size_diff = 0
        ops: list = []
        if value.is_zero():
            if not prev_is_zero:
                size_diff -= 1
            ops.append(Remove(scalar_key))
        else:
            if prev_is_zero:
                size_diff += 1
            ops.append(Put(scalar_key, _scalar_blob(value)))

        while path:
            curr_loc = path.pop()
            parent = ZkDataLocator(tuple(path))
            curr_type = model.locate(parent)
            match curr_type:
                case ListModel(log4_size=log4_size, item_type=item):
                    value = self._rehash_tree(
                        db, contract_id, parent, item, log4_size, curr_loc, value, ops
                    )
                case StructModel(field_types=fields):
                    value = self.hasher.hash(
                        [
                            value if i == curr_loc else self.get_data(db, contract_id, parent.index(i))
                            for i in range(len(fields))
                        ]
                    )
                case _:
                    raise NonScalarLocatorError()
            node_key = keys.local_value(contract_id, parent, False)
            if value == curr_type.compress_default(self.hasher):
                ops.append(Remove(node_key))
            else:
                ops.append(Put(node_key, _scalar_blob(value)))

        db.update(ops)
        return value, size_diff

    def get_data(self, db: KvStore, contract_id: Any, locator: ZkDataLocator) -> ZkScalar:
        """The scalar, or the hash of the sub-state, at `locator`."""
        sub_type = self.type_of(db, contract_id).locate(locator)
        blob = db.get(keys.local_value(contract_id, locator, isinstance(sub_type, ScalarModel)))
        if blob is None:
            return sub_type.compress_default(self.hasher)
        return _blob_scalar(blob)

    def _aux(
        self, db: KvStore, contract_id: Any, tree_loc: ZkDataLocator, aux_id: int, default: ZkScalar
    ) -> ZkScalar:
        blob = db.get(keys.local_tree_aux(contract_id, tree_loc, aux_id))
        return default if blob is None else _blob_scalar(blob)

    def _rehash_tree(
        self,
        db: KvStore,
        contract_id: Any,
        tree_loc: ZkDataLocator,
        item: ZkStateModel,
        log4_size: int,
        leaf_index: int,
        value: ZkScalar,
        ops: list,
    ) -> ZkScalar:
        curr_ind = leaf_index
        default_value = item.compress_default(self.hasher)
        for layer in reversed(range(log4_size)):
            aux_offset = ((1 << (2 * (layer + 1))) - 1) // 3
            start = curr_ind - curr_ind % 4
            dats = []
            for idx in range(start, start + 4):
                if idx == curr_ind:
                    dats.append(value)
                elif layer == log4_size - 1:
                    dats.append(self.get_data(db, contract_id, tree_loc.index(idx)))
                else:
                    dats.append(self._aux(db, contract_id, tree_loc, aux_offset + idx, default_value))
            value = self.hasher.hash(dats)
            default_value = self.hasher.hash([default_value] * 4)
            curr_ind //= 4
            if layer > 0:
                parent_index = ((1 << (2 * layer)) - 1) // 3 + curr_ind
                aux_key = keys.local_tree_aux(contract_id, tree_loc, parent_index)
                if value == default_value:
                    ops.append(Remove(aux_key))
                else:
                    ops.append(Put(aux_key, _scalar_blob(value)))
        return value


class ZkStateBuilder:
    """Builds a state of a model in memory and compresses it."""

    def __init__(self, hasher: ZkHasher, state_model: ZkStateModel) -> None:
        self._manager = StateManager(hasher)
        self._contract_id = ZERO_CONTRACT_ID
        self._db = RamKvStore()
        put_contract(
            self._db,
            self._contract_id,
            ZkContract(ZkCompressedState.empty(hasher, state_model), state_model),
        )

    def batch_set(self, delta: Mapping[ZkDataLocator, Optional[ZkScalar]]) -> None:
        """Apply a delta to the state."""
        self._manager.update_contract(self._db, self._contract_id, delta)

    def get(self, locator: ZkDataLocator) -> ZkScalar:
        """The value at `locator`."""
        return self._manager.get_data(self._db, self._contract_id, locator)

    def compress(self) -> ZkCompressedState:
        """The compressed form of the state built so far."""
        return self._manager.root(self._db, self._contract_id)

    def prove(
        self, tree_loc: ZkDataLocator, index: int
    ) -> list[tuple[ZkScalar, ZkScalar, ZkScalar]]:
        """A membership proof of item `index` of the list at `tree_loc`."""
        return self._manager.prove(self._db, self._contract_id, tree_loc, index)