import pytest

from bazuka.db import RamKvStore
from bazuka.field import ZkScalar
from bazuka.state import (
    ContractNotFoundError,
    NonScalarLocatorError,
    NonTreeLocatorError,
    StateManager,
    StateManagerError,
    ZkStateBuilder,
    compress_state,
    put_contract,
)
from bazuka.zk import (
    ListModel,
    LocatorError,
    ScalarModel,
    StructModel,
    ZkCompressedState,
    ZkContract,
    ZkDataLocator,
    ZkHasher,
    ZkState,
)

CID = "0" * 64


class SumHasher(ZkHasher):
    max_arity = 16

    def hash(self, vals):
        total = ZkScalar(0)
        for v in vals:
            total = total + v
        return total


class MixHasher(ZkHasher):
    max_arity = 16

    def hash(self, vals):
        acc = ZkScalar(1)
        for i, v in enumerate(vals):
            acc = acc * 31 + v * v * v + (i + 1)
        return acc


def loc(*path):
    return ZkDataLocator(tuple(path))


def make_db(hasher, model):
    db = RamKvStore()
    put_contract(db, CID, ZkContract(ZkCompressedState.empty(hasher, model), model))
    return db


PAIR_LIST = ListModel(3, StructModel((ScalarModel(), ScalarModel())))


def test_state_manager_scalar():
    h = SumHasher()
    db = make_db(h, ScalarModel())
    sm = StateManager(h)
    assert sm.root(db, CID) == ZkCompressedState(ZkScalar(0), 0)
    sm.update_contract(db, CID, {loc(): ZkScalar(0xF)})
    assert sm.root(db, CID) == ZkCompressedState(ZkScalar(0xF), 1)
    assert sm.height_of(db, CID) == 1


def test_state_manager_struct():
    h = SumHasher()
    db = make_db(h, StructModel((ScalarModel(), ScalarModel())))
    sm = StateManager(h)
    steps = [
        ({loc(0): ZkScalar(0xF)}, ZkCompressedState(ZkScalar(0xF), 1)),
        ({loc(1): ZkScalar(0xF0)}, ZkCompressedState(ZkScalar(0xFF), 2)),
        ({loc(0): ZkScalar(0xF00)}, ZkCompressedState(ZkScalar(0xFF0), 2)),
        ({loc(0): ZkScalar(0xF)}, ZkCompressedState(ZkScalar(0xFF), 2)),
        ({loc(0): ZkScalar(0), loc(1): ZkScalar(0)}, ZkCompressedState(ZkScalar(0), 0)),
    ]
    for patch, expected in steps:
        sm.update_contract(db, CID, patch)
        assert sm.root(db, CID) == expected


def test_zk_list_membership_proof():
    model = StructModel((ScalarModel(), ListModel(4, ScalarModel())))
    builder = ZkStateBuilder(SumHasher(), model)
    for i in range(256):
        builder.batch_set({loc(1, i): ZkScalar(i)})
    for i in range(256):
        accum = ZkScalar(i)
        for part in builder.prove(loc(1), i):
            assert len(part) == 3
            for val in part:
                accum = accum + val
        assert accum == ZkScalar(32640)


def _list_updates():
    return [
        {loc(62, 0): ZkScalar(0xF00000)},
        {loc(33, 0): ZkScalar(0xF)},
        {loc(33, 1): ZkScalar(0xF0)},
        {loc(33, 0): ZkScalar(0xF00)},
        {loc(33, 0): ZkScalar(0xF)},
        {loc(33, 0): ZkScalar(0), loc(33, 1): ZkScalar(0)},
    ]


def test_state_manager_list_rollbacks():
    h = MixHasher()
    db = make_db(h, PAIR_LIST)
    sm = StateManager(h)
    roots = [sm.root(db, CID)]
    for patch in _list_updates():
        sm.update_contract(db, CID, patch)
        roots.append(sm.root(db, CID))
    sm.update_contract(db, CID, {loc(62, 0): ZkScalar(0)})
    assert sm.height_of(db, CID) == 7
    rolled = 0
    while sm.height_of(db, CID) > 2:
        expected = roots.pop()
        assert sm.rollback_contract(db, CID) == expected
        rolled += 1
    assert rolled == 5
    assert sm.rollback_contract(db, CID) is None


def test_rollback_restores_empty_root():
    h = MixHasher()
    db = make_db(h, PAIR_LIST)
    sm = StateManager(h)
    empty = sm.root(db, CID)
    sm.update_contract(db, CID, {loc(5, 1): ZkScalar(77)})
    assert sm.root(db, CID) != empty
    assert sm.rollback_contract(db, CID) == empty
    assert sm.get_data(db, CID, loc(5, 1)) == ZkScalar(0)


def test_get_full_state_and_rollbacks():
    h = MixHasher()
    db = make_db(h, PAIR_LIST)
    sm = StateManager(h)
    for patch in _list_updates()[:5]:
        sm.update_contract(db, CID, patch)
    full = sm.get_full_state(db, CID)
    assert full.data == {
        loc(62, 0): ZkScalar(0xF00000),
        loc(33, 0): ZkScalar(0xF),
        loc(33, 1): ZkScalar(0xF0),
    }
    assert len(full.rollbacks) == 5
    assert full.rollbacks[0] == {loc(33, 0): ZkScalar(0xF00)}
    assert sm.root(db, CID).state_size == 3


def test_reset_contract_reproduces_root():
    h = MixHasher()
    source = make_db(h, PAIR_LIST)
    sm = StateManager(h)
    for patch in _list_updates()[:4]:
        sm.update_contract(source, CID, patch)
    full = sm.get_full_state(source, CID)
    target = make_db(h, PAIR_LIST)
    sm.update_contract(target, CID, {loc(1, 1): ZkScalar(9)})
    root, results = sm.reset_contract(target, CID, 4, ZkState(full.data, []))
    assert root == sm.root(source, CID)
    assert results == []
    assert sm.height_of(target, CID) == 4
    assert sm.get_data(target, CID, loc(1, 1)) == ZkScalar(0)


def test_reset_contract_with_rollbacks():
    h = SumHasher()
    db = make_db(h, StructModel((ScalarModel(), ScalarModel())))
    sm = StateManager(h)
    state = ZkState({loc(0): ZkScalar(5)}, [{loc(0): ZkScalar(2)}, {loc(1): ZkScalar(3)}])
    root, results = sm.reset_contract(db, CID, 3, state)
    assert results == [
        ZkCompressedState(ZkScalar(2), 1),
        ZkCompressedState(ZkScalar(5), 2),
    ]
    assert root == results[-1]
    assert sm.rollback_of(db, CID, 1) == {loc(0): ZkScalar(2)}
    assert sm.rollback_of(db, CID, 2) == {loc(1): ZkScalar(3)}


def test_delta_of():
    h = SumHasher()
    db = make_db(h, StructModel((ScalarModel(), ScalarModel())))
    sm = StateManager(h)
    sm.update_contract(db, CID, {loc(0): ZkScalar(4)})
    sm.update_contract(db, CID, {loc(1): ZkScalar(6)})
    assert sm.delta_of(db, CID, 1) == {loc(1): ZkScalar(6)}
    assert sm.delta_of(db, CID, 2) == {loc(0): ZkScalar(4), loc(1): ZkScalar(6)}
    assert sm.delta_of(db, CID, 3) is None


def test_delete_contract():
    h = MixHasher()
    db = make_db(h, PAIR_LIST)
    sm = StateManager(h)
    sm.update_contract(db, CID, {loc(3, 0): ZkScalar(1)})
    sm.delete_contract(db, CID)
    assert sm.height_of(db, CID) == 0
    assert sm.root(db, CID) == ZkCompressedState.empty(h, PAIR_LIST)
    assert sm.type_of(db, CID) == PAIR_LIST


def test_missing_contract():
    sm = StateManager(SumHasher())
    with pytest.raises(ContractNotFoundError):
        sm.root(RamKvStore(), CID)
    assert issubclass(ContractNotFoundError, StateManagerError)


def test_set_data_errors():
    h = SumHasher()
    db = make_db(h, PAIR_LIST)
    sm = StateManager(h)
    with pytest.raises(NonScalarLocatorError):
        sm.set_data(db, CID, loc(3), ZkScalar(1))
    with pytest.raises(LocatorError):
        sm.set_data(db, CID, loc(64, 0), ZkScalar(1))
    with pytest.raises(NonTreeLocatorError):
        sm.prove(db, CID, loc(3), 0)


def test_set_data_size_changes():
    h = SumHasher()
    db = make_db(h, StructModel((ScalarModel(), ScalarModel())))
    sm = StateManager(h)
    assert sm.set_data(db, CID, loc(0), ZkScalar(3)) == (ZkScalar(3), 1)
    assert sm.set_data(db, CID, loc(0), ZkScalar(4)) == (ZkScalar(4), 0)
    assert sm.set_data(db, CID, loc(0), ZkScalar(0)) == (ZkScalar(0), -1)


def test_builder_get_and_compress():
    h = MixHasher()
    data = {loc(2, 0): ZkScalar(11), loc(40, 1): ZkScalar(22)}
    builder = ZkStateBuilder(h, PAIR_LIST)
    builder.batch_set(dict(data))
    assert builder.get(loc(2, 0)) == ZkScalar(11)
    assert builder.get(loc(7, 1)) == ZkScalar(0)
    compressed = builder.compress()
    assert compressed.state_size == 2
    reordered = dict(reversed(list(data.items())))
    assert compress_state(PAIR_LIST, h, reordered) == compressed
    assert compress_state(PAIR_LIST, h, {}) == ZkCompressedState.empty(h, PAIR_LIST)