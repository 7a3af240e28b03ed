# bazuka

Building blocks for a zero-knowledge blockchain node: key-value storage,
Merkle commitments of contract state with rollbacks and membership proofs,
and per-peer bookkeeping. Pure Python, standard library only.

## Modules

- `bazuka.db`: the `KvStore` interface (`get`, `update`, `pairs`,
  `checksum`, `mirror`) and three stores:
  - `RamKvStore`, held in memory;
  - `DiskKvStore`, kept in a SQLite file inside a directory (usable as a
    context manager, or closed with `close()`);
  - `RamMirrorKvStore`, which records writes on top of another store without
    touching it, and hands them back with `to_ops()` or gives the operations
    that undo them with `rollback()`.

  Writes are `Put(key, Blob(...))` and `Remove(key)`. Failures of the disk
  store are raised as `KvStoreError`. `checksum()` hashes the whole store in
  key order with SHA3-256 unless another hash function is passed.
- `bazuka.keys`: functions naming the keys used for heights, blocks, headers,
  accounts, contracts and per-contract state (for example
  `keys.block(5) == "block_0000000005"`).
- `bazuka.field`: `ZkScalar`, an element of the BLS12-381 scalar field, with
  arithmetic, 32-byte little-endian encoding and `to_u64()`, which raises
  `ScalarTooLargeError` for values that do not fit.
- `bazuka.zk`: state models (`ScalarModel`, `StructModel`, `ListModel`),
  `ZkDataLocator` paths (printed and parsed as dash-separated hex),
  the `ZkHasher` interface, `ZkState`, `ZkCompressedState` and `ZkContract`.
- `bazuka.state`: `StateManager`, which keeps a contract's state as a sparse
  Merkle tree (quad trees for lists) inside any `KvStore`, with up to five
  rollbacks, full-state export, reset and membership proofs;
  `ZkStateBuilder`, which does the same in memory for one state; and
  `compress_state`, which gives the compressed form of a set of data.
- `bazuka.firewall`: `Firewall`, tracking per-IP bans, unresponsive peers,
  request counts per minute and traffic per 15 minutes. Its clock can be
  replaced, which makes it easy to test.
- `bazuka.http`: `group_request`, an async function that calls one coroutine
  per peer concurrently and pairs each peer with its result or with the
  exception it raised.
- `bazuka.utils`: `local_timestamp()` and `median()`.

## Installing

```
pip install .
```

For the tests:

```
pip install ".[test]"
pytest
```

## Examples

A mirror over a store:

```python
from bazuka.db import Blob, Put, RamKvStore, Remove

store = RamKvStore()
store.update([Put("aa", Blob(b"\x01")), Put("ab", Blob(b"\x02"))])

mirror = store.mirror()
mirror.update([Remove("aa")])
print(sorted(mirror.pairs("a")))   # ['ab']
store.update(mirror.to_ops())      # apply the recorded writes
```

Building and compressing a state. Any `ZkHasher` will do; here is a toy one
that adds its inputs:

```python
from bazuka.field import ZkScalar
from bazuka.state import ZkStateBuilder
from bazuka.zk import ListModel, ScalarModel, ZkDataLocator, ZkHasher


class SumHasher(ZkHasher):
    max_arity = 16

    def hash(self, vals):
        return sum(vals, ZkScalar(0))


builder = ZkStateBuilder(SumHasher(), ListModel(log4_size=2, item_type=ScalarModel()))
builder.batch_set({ZkDataLocator((3,)): ZkScalar(7)})
print(builder.compress())                     # root hash and count of non-zero scalars
print(builder.prove(ZkDataLocator(()), 3))    # sibling hashes, one triple per layer
```

## What it does not do

The package holds no node of its own: there is no command to run, no HTTP
server, no peer discovery or block synchronisation, and no blockchain,
wallet or transaction types. It ships no algebraic hash function either;
`StateManager` and `ZkStateBuilder` work with whatever `ZkHasher` they are
given. Proof verification is not included.