"""Models, locators and states of zero-knowledge contract data."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Sequence

from .field import ZkScalar

_HEX_U32 = re.compile(r"\+?[0-9a-fA-F]+")
_U32_LIMIT = 1 << 32

DataPairs = dict  # ZkDataLocator -> ZkScalar
DeltaPairs = dict  # ZkDataLocator -> Optional[ZkScalar]


class LocatorError(LookupError):
    """Raised when a locator points to nonexistent elements."""

    def __init__(self) -> None:
        super().__init__("locator pointing to nonexistent elements")


class LocatorParseError(ValueError):
    """Raised when a locator string cannot be parsed."""

    def __init__(self) -> None:
        super().__init__("locator invalid")


@dataclass(frozen=True)
class ZkDataLocator:
    """A path of indices from the root of a state model down to an element."""

    path: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", tuple(self.path))

    def index(self, ind: int) -> "ZkDataLocator":
        """A locator one level deeper, at `ind`."""
        return ZkDataLocator(self.path + (ind,))

    @classmethod
    def parse(cls, text: str) -> "ZkDataLocator":
        """Parse dash-separated hexadecimal indices."""
        parts = []
        for piece in text.split("-"):
            if not _HEX_U32.fullmatch(piece):
                raise LocatorParseError()
            value = int(piece, 16)
            if value >= _U32_LIMIT:
                raise LocatorParseError()
            parts.append(value)
        return cls(tuple(parts))

    def __iter__(self):
        return iter(self.path)

    def __len__(self) -> int:
        return len(self.path)

    def __str__(self) -> str:
        return "-".join(format(n, "x") for n in self.path)


class ZkHasher(ABC):
    """An algebraic hash over field elements with a bounded arity."""

    max_arity: int = 16

    @abstractmethod
    def hash(self, vals: Sequence[ZkScalar]) -> ZkScalar:
        """Hash a sequence of at most `max_arity` field elements."""


class ZkStateModel:
    """The shape of a contract's state: a tree of scalars, structs and lists."""

    def is_valid(self, hasher: ZkHasher) -> bool:
        """Whether every struct in the model fits the hasher's arity."""
        match self:
            case StructModel(field_types=fields):
                return len(fields) <= hasher.max_arity and all(
                    f.is_valid(hasher) for f in fields
                )
            case ListModel(item_type=item):
                return item.is_valid(hasher)
            case _:
                return True

    def locate(self, locator: Iterable[int]) -> "ZkStateModel":
        """The sub-model that `locator` points to."""
        current = self
        for index in locator:
            match current:
                case StructModel(field_types=fields):
                    if not 0 <= index < len(fields):
                        raise LocatorError()
                    current = fields[index]
                case ListModel(log4_size=log4_size, item_type=item):
                    if not 0 <= index < 1 << (2 * log4_size):
                        raise LocatorError()
                    current = item
                case _:
                    raise LocatorError()
        return current

    def compress_default(self, hasher: ZkHasher) -> ZkScalar:
        """The hash of this model when all of its data is zero."""
        match self:
            case StructModel(field_types=fields):
                return hasher.hash([f.compress_default(hasher) for f in fields])
            case ListModel(log4_size=log4_size, item_type=item):
                root = item.compress_default(hasher)
                for _ in range(log4_size):
                    root = hasher.hash([root] * 4)
                return root
            case _:
                return ZkScalar(0)


@dataclass(frozen=True)
class ScalarModel(ZkStateModel):
    """A single field element."""


@dataclass(frozen=True)
class StructModel(ZkStateModel):
    """A fixed sequence of differently shaped fields."""

    field_types: tuple[ZkStateModel, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "field_types", tuple(self.field_types))


@dataclass(frozen=True)
class ListModel(ZkStateModel):
    """A list of 4**log4_size items of the same shape."""

    log4_size: int
    item_type: ZkStateModel


def as_delta(data: Mapping[ZkDataLocator, ZkScalar]) -> dict[ZkDataLocator, Optional[ZkScalar]]:
    """A delta that sets every pair of `data`."""
    return dict(data.items())


@dataclass
class ZkState:
    """Full data of a contract along with the deltas that undo recent changes."""

    data: dict[ZkDataLocator, ZkScalar] = field(default_factory=dict)
    rollbacks: list[dict[ZkDataLocator, Optional[ZkScalar]]] = field(default_factory=list)

    def push_delta(self, delta: Mapping[ZkDataLocator, Optional[ZkScalar]]) -> None:
        """Apply `delta` and remember how to undo it."""
        rollback = {loc: self.data.get(loc) for loc in delta}
        self.apply_delta(delta)
        self.rollbacks.append(rollback)

    def apply_delta(self, delta: Mapping[ZkDataLocator, Optional[ZkScalar]]) -> None:
        """Set or, for None values, remove the given locations."""
        for loc, val in delta.items():
            if val is None:
                self.data.pop(loc, None)
            else:
                self.data[loc] = val


@dataclass(frozen=True)
class ZkCompressedState:
    """The root hash of a contract state and its count of non-zero scalars."""

    state_hash: ZkScalar = ZkScalar(0)
    state_size: int = 0

    @classmethod
    def empty(cls, hasher: ZkHasher, model: ZkStateModel) -> "ZkCompressedState":
        """The compressed form of an all-zero state of `model`."""
        return cls(model.compress_default(hasher), 0)


@dataclass
class ZkContract:
    """A contract: its initial state, state model and verifier keys."""

    initial_state: ZkCompressedState
    state_model: ZkStateModel
    payment_functions: list = field(default_factory=list)
    functions: list = field(default_factory=list)