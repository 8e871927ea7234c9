"""Reverts that undo bundle changes, and the plain changesets they flatten to."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from evmstate.account_status import AccountStatus
from evmstate.primitives import AccountInfo, Bytecode, StorageWithOriginalValues


@dataclass(frozen=True)
class RevertToSlot:
    """Storage value to restore; ``value`` of None means the slot was destroyed."""

    value: Optional[int] = 0

    @classmethod
    def destroyed(cls) -> RevertToSlot:
        return cls(None)

    @property
    def is_destroyed(self) -> bool:
        return self.value is None

    def to_previous_value(self) -> int:
        return 0 if self.value is None else self.value


class RevertKind(Enum):
    DO_NOTHING = "do_nothing"
    DELETE_IT = "delete_it"
    REVERT_TO = "revert_to"


@dataclass
class AccountInfoRevert:
    """What to do with the account info on revert."""

    kind: RevertKind = RevertKind.DO_NOTHING
    info: Optional[AccountInfo] = None

    @classmethod
    def do_nothing(cls) -> AccountInfoRevert:
        return cls(RevertKind.DO_NOTHING)

    @classmethod
    def delete_it(cls) -> AccountInfoRevert:
        return cls(RevertKind.DELETE_IT)

    @classmethod
    def revert_to(cls, info: AccountInfo) -> AccountInfoRevert:
        return cls(RevertKind.REVERT_TO, info)


_SELFDESTRUCTIBLE = frozenset(
    {
        AccountStatus.IN_MEMORY_CHANGE,
        AccountStatus.CHANGED,
        AccountStatus.LOADED_EMPTY_EIP161,
        AccountStatus.LOADED,
    }
)


@dataclass
class AccountRevert:
    """Everything needed to return one account to its earlier state."""

    account: AccountInfoRevert = field(default_factory=AccountInfoRevert)
    storage: Dict[int, RevertToSlot] = field(default_factory=dict)
    previous_status: AccountStatus = AccountStatus.LOADED_NOT_EXISTING
    wipe_storage: bool = False

    def size_hint(self) -> int:
        return 1 + len(self.storage)

    @classmethod
    def new_selfdestructed_again(
        cls,
        status: AccountStatus,
        account: AccountInfoRevert,
        previous_storage: StorageWithOriginalValues,
        updated_storage: StorageWithOriginalValues,
    ) -> AccountRevert:
        """Revert to the destroyed values; slots set only afterwards revert to destroyed."""
        storage = {
            key: RevertToSlot(slot.present_value)
            for key, slot in previous_storage.items()
        }
        for key in updated_storage:
            storage.setdefault(key, RevertToSlot.destroyed())
        return cls(
            account=account,
            storage=storage,
            previous_status=status,
            wipe_storage=False,
        )

    @classmethod
    def new_selfdestructed_from_bundle(
        cls,
        account_info_revert: AccountInfoRevert,
        bundle_account: Any,
        updated_storage: StorageWithOriginalValues,
    ) -> Optional[AccountRevert]:
        """Revert for an account destroyed from a pre-destruction status.

        Drains the bundle account's storage into the revert. Returns None
        when the account's status is not one that precedes destruction.
        """
        if bundle_account.status not in _SELFDESTRUCTIBLE:
            return None
        drained = dict(bundle_account.storage)
        bundle_account.storage.clear()
        revert = cls.new_selfdestructed_again(
            bundle_account.status,
            account_info_revert,
            drained,
            dict(updated_storage),
        )
        revert.wipe_storage = True
        return revert

    @classmethod
    def new_selfdestructed(
        cls,
        status: AccountStatus,
        account: AccountInfoRevert,
        storage: StorageWithOriginalValues,
    ) -> AccountRevert:
        return cls(
            account=account,
            storage={key: RevertToSlot(slot.present_value) for key, slot in storage.items()},
            previous_status=status,
            wipe_storage=True,
        )

    def is_empty(self) -> bool:
        """Nothing to revert: info and storage untouched and no wipe."""
        return (
            self.account == AccountInfoRevert.do_nothing()
            and not self.storage
            and not self.wipe_storage
        )


BlockReverts = List[Tuple[bytes, AccountRevert]]


@dataclass
class StateChangeset:
    """Unsorted account, storage and contract changes for a database."""

    accounts: List[Tuple[bytes, Optional[AccountInfo]]] = field(default_factory=list)
    storage: List[PlainStorageChangeset] = field(default_factory=list)
    contracts: List[Tuple[bytes, Bytecode]] = field(default_factory=list)


@dataclass
class PlainStorageChangeset:
    """Storage changes of one account."""

    address: bytes = bytes(20)
    wipe_storage: bool = False
    storage: List[Tuple[int, int]] = field(default_factory=list)


@dataclass
class PlainStorageRevert:
    """Old storage values of one account."""

    address: bytes = bytes(20)
    wiped: bool = False
    storage_revert: List[Tuple[int, RevertToSlot]] = field(default_factory=list)


@dataclass
class PlainStateReverts:
    """Per-block account and storage reverts; an info of None removes the account."""

    accounts: List[List[Tuple[bytes, Optional[AccountInfo]]]] = field(default_factory=list)
    storage: List[List[PlainStorageRevert]] = field(default_factory=list)


class Reverts:
    """Account reverts grouped by transition (one list per block)."""

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, blocks: Optional[Iterable[Iterable[Tuple[bytes, AccountRevert]]]] = None):
        self._blocks: List[BlockReverts] = [list(block) for block in blocks or ()]

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[BlockReverts]:
        return iter(self._blocks)

    def __getitem__(self, index):
        if isinstance(index, slice):
            return Reverts(self._blocks[index])
        return self._blocks[index]

    def __setitem__(self, index: int, block: Iterable[Tuple[bytes, AccountRevert]]) -> None:
        self._blocks[index] = list(block)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Reverts):
            return self._blocks == other._blocks
        if isinstance(other, list):
            return self._blocks == other
        return NotImplemented

    def __repr__(self) -> str:
        return f"Reverts({self._blocks!r})"

    def sort(self) -> None:
        """Sort the accounts inside every transition by address."""
        for block in self._blocks:
            block.sort(key=lambda item: item[0])

    def extend(self, other: Reverts) -> None:
        self._blocks.extend(list(block) for block in other)

    def push(self, block_reverts: Iterable[Tuple[bytes, AccountRevert]]) -> None:
        self._blocks.append(list(block_reverts))

    def pop(self) -> Optional[BlockReverts]:
        """Remove and return the latest transition, or None if there is none."""
        if not self._blocks:
            return None
        return self._blocks.pop()

    def split_at(self, index: int) -> Tuple[Reverts, Reverts]:
        return Reverts(self._blocks[:index]), Reverts(self._blocks[index:])

    def into_plain_state_reverts(self) -> PlainStateReverts:
        """Flatten into plain reverts, leaving this collection empty."""
        result = PlainStateReverts()
        blocks, self._blocks = self._blocks, []
        for block in blocks:
            accounts: List[Tuple[bytes, Optional[AccountInfo]]] = []
            storage: List[PlainStorageRevert] = []
            for address, revert in block:
                if revert.account.kind is RevertKind.REVERT_TO:
                    accounts.append((address, revert.account.info))
                elif revert.account.kind is RevertKind.DELETE_IT:
                    accounts.append((address, None))
                if revert.wipe_storage or revert.storage:
                    storage.append(
                        PlainStorageRevert(
                            address=address,
                            wiped=revert.wipe_storage,
                            storage_revert=list(revert.storage.items()),
                        )
                    )
            result.accounts.append(accounts)
            result.storage.append(storage)
        return result