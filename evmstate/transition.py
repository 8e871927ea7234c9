"""Per-account transitions produced by execution and aggregated over a block."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Dict, Iterable, Optional, Tuple

from evmstate.account_status import AccountStatus
from evmstate.bundle_account import BundleAccount
from evmstate.primitives import AccountInfo, Bytecode, StorageWithOriginalValues
from evmstate.reverts import AccountRevert


def _copy_info(info: Optional[AccountInfo]) -> Optional[AccountInfo]:
    return None if info is None else copy.copy(info)


def _copy_storage(storage: StorageWithOriginalValues) -> StorageWithOriginalValues:
    return {key: copy.copy(slot) for key, slot in storage.items()}


@dataclass
class TransitionAccount:
    """Change of one account, from its state before the block to its present state.

    ``storage_was_destroyed`` records that some step wiped the storage, which
    a DESTROYED_CHANGED -> DESTROYED_CHANGED transition alone cannot tell.
    """

    info: Optional[AccountInfo] = None
    status: AccountStatus = AccountStatus.LOADED_NOT_EXISTING
    previous_info: Optional[AccountInfo] = None
    previous_status: AccountStatus = AccountStatus.LOADED_NOT_EXISTING
    storage: StorageWithOriginalValues = field(default_factory=dict)
    storage_was_destroyed: bool = False

    @classmethod
    def new_empty_eip161(cls, storage: StorageWithOriginalValues) -> TransitionAccount:
        """Transition that creates an empty account from a non-existing one."""
        return cls(
            info=AccountInfo(),
            status=AccountStatus.IN_MEMORY_CHANGE,
            previous_info=None,
            previous_status=AccountStatus.LOADED_NOT_EXISTING,
            storage=storage,
            storage_was_destroyed=False,
        )

    def has_new_contract(self) -> Optional[Tuple[bytes, Bytecode]]:
        """Return (code hash, code) when the code changed or was created."""
        present = None if self.info is None else self.info.code_hash
        previous = None if self.previous_info is None else self.previous_info.code_hash
        if present != previous and self.info is not None and self.info.code is not None:
            return self.info.code_hash, self.info.code
        return None

    def update(self, other: TransitionAccount) -> None:
        """Take the new values of ``other`` while keeping the original ones."""
        self.info = _copy_info(other.info)
        self.status = other.status

        if other.status in (AccountStatus.DESTROYED, AccountStatus.DESTROYED_AGAIN):
            self.storage = _copy_storage(other.storage)
            self.storage_was_destroyed = True
            return

        for key, slot in other.storage.items():
            existing = self.storage.get(key)
            if existing is None:
                self.storage[key] = copy.copy(slot)
            elif existing.original_value() == slot.present_value:
                del self.storage[key]
            else:
                existing.present_value = slot.present_value

    def create_revert(self) -> Optional[AccountRevert]:
        """Revert that takes the present state back to the state before the transition."""
        previous_account = self._original_bundle_account()
        return previous_account.update_and_create_revert(self)

    def present_bundle_account(self) -> BundleAccount:
        return BundleAccount(
            info=_copy_info(self.info),
            original_info=_copy_info(self.previous_info),
            storage=_copy_storage(self.storage),
            status=self.status,
        )

    def _original_bundle_account(self) -> BundleAccount:
        return BundleAccount(
            info=_copy_info(self.previous_info),
            original_info=_copy_info(self.previous_info),
            storage={},
            status=self.previous_status,
        )


@dataclass
class TransitionState:
    """Account transitions aggregated over a block."""

    transitions: Dict[bytes, TransitionAccount] = field(default_factory=dict)

    @classmethod
    def single(cls, address: bytes, transition: TransitionAccount) -> TransitionState:
        return cls({address: transition})

    def take(self) -> TransitionState:
        """Return all transitions and leave this state empty."""
        taken = TransitionState(self.transitions)
        self.transitions = {}
        return taken

    def add_transitions(self, transitions: Iterable[Tuple[bytes, TransitionAccount]]) -> None:
        for address, account in transitions:
            existing = self.transitions.get(address)
            if existing is None:
                self.transitions[address] = account
            else:
                existing.update(account)