"""Cache-level account: plain state updated after every executed transaction."""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, TypeVar

from evmstate.account_status import AccountStatus
from evmstate.bundle_account import BundleAccount, InvalidTransitionError
from evmstate.primitives import (
    KECCAK_EMPTY,
    AccountInfo,
    PlainAccount,
    PlainStorage,
    StorageWithOriginalValues,
)
from evmstate.transition import TransitionAccount

_T = TypeVar("_T")

_U128_LIMIT = 1 << 128

_DESTROYED_STATES = frozenset(
    {
        AccountStatus.DESTROYED,
        AccountStatus.DESTROYED_AGAIN,
        AccountStatus.DESTROYED_CHANGED,
    }
)

_SOME_STATES = frozenset(
    {
        AccountStatus.CHANGED,
        AccountStatus.IN_MEMORY_CHANGE,
        AccountStatus.DESTROYED_CHANGED,
        AccountStatus.LOADED,
        AccountStatus.LOADED_EMPTY_EIP161,
    }
)


def _present_values(storage: StorageWithOriginalValues) -> PlainStorage:
    return {key: slot.present_value for key, slot in storage.items()}


def _fully_in_memory(info: Optional[AccountInfo]) -> bool:
    """Nonce zero and no code: nothing of the account can live in the database."""
    return info is not None and info.code_hash == KECCAK_EMPTY and info.nonce == 0


@dataclass
class CacheAccount:
    """Plain account (None when it does not exist) and its lifecycle status."""

    account: Optional[PlainAccount] = None
    status: AccountStatus = AccountStatus.LOADED_NOT_EXISTING

    @classmethod
    def from_bundle_account(cls, account: BundleAccount) -> CacheAccount:
        info = account.account_info()
        plain = None
        if info is not None:
            plain = PlainAccount(info=info, storage=_present_values(account.storage))
        return cls(account=plain, status=account.status)

    @classmethod
    def new_loaded(cls, info: AccountInfo, storage: PlainStorage) -> CacheAccount:
        return cls(PlainAccount(info=info, storage=storage), AccountStatus.LOADED)

    @classmethod
    def new_loaded_empty_eip161(cls, storage: PlainStorage) -> CacheAccount:
        return cls(
            PlainAccount.new_empty_with_storage(storage),
            AccountStatus.LOADED_EMPTY_EIP161,
        )

    @classmethod
    def new_loaded_not_existing(cls) -> CacheAccount:
        return cls(None, AccountStatus.LOADED_NOT_EXISTING)

    @classmethod
    def new_newly_created(cls, info: AccountInfo, storage: PlainStorage) -> CacheAccount:
        return cls(PlainAccount(info=info, storage=storage), AccountStatus.IN_MEMORY_CHANGE)

    @classmethod
    def new_destroyed(cls) -> CacheAccount:
        return cls(None, AccountStatus.DESTROYED)

    @classmethod
    def new_changed(cls, info: AccountInfo, storage: PlainStorage) -> CacheAccount:
        return cls(PlainAccount(info=info, storage=storage), AccountStatus.CHANGED)

    def is_some(self) -> bool:
        """The status says the account exists."""
        return self.status in _SOME_STATES

    def storage_slot(self, slot: int) -> Optional[int]:
        if self.account is None:
            return None
        return self.account.storage.get(slot)

    def account_info(self) -> Optional[AccountInfo]:
        if self.account is None:
            return None
        return copy.copy(self.account.info)

    def into_components(
        self,
    ) -> Tuple[Optional[Tuple[AccountInfo, PlainStorage]], AccountStatus]:
        components = None if self.account is None else self.account.into_components()
        return components, self.status

    def _take_info(self) -> Optional[AccountInfo]:
        account, self.account = self.account, None
        return None if account is None else account.info

    def touch_create_pre_eip161(
        self, storage: StorageWithOriginalValues
    ) -> Optional[TransitionAccount]:
        """Touch an account before EIP-161, where touching creates it."""
        previous_status = self.status

        if previous_status is AccountStatus.DESTROYED_CHANGED:
            if self.account is not None and self.account.info.is_empty():
                return None
            new_status = AccountStatus.DESTROYED_CHANGED
        elif previous_status in (AccountStatus.DESTROYED, AccountStatus.DESTROYED_AGAIN):
            new_status = AccountStatus.DESTROYED_CHANGED
        elif previous_status is AccountStatus.LOADED_EMPTY_EIP161:
            return None
        elif previous_status in (
            AccountStatus.IN_MEMORY_CHANGE,
            AccountStatus.LOADED_NOT_EXISTING,
        ):
            new_status = AccountStatus.IN_MEMORY_CHANGE
        else:
            raise InvalidTransitionError(
                f"touch create is not possible from {previous_status.name}"
            )

        self.status = new_status
        previous_info = self._take_info()
        self.account = PlainAccount.new_empty_with_storage(_present_values(storage))
        return TransitionAccount(
            info=AccountInfo(),
            status=self.status,
            previous_info=previous_info,
            previous_status=previous_status,
            storage=storage,
            storage_was_destroyed=False,
        )

    def touch_empty_eip161(self) -> Optional[TransitionAccount]:
        """Touch an empty account under EIP-161, which removes it."""
        previous_status = self.status

        if previous_status in (
            AccountStatus.IN_MEMORY_CHANGE,
            AccountStatus.DESTROYED,
            AccountStatus.LOADED_EMPTY_EIP161,
        ):
            new_status = AccountStatus.DESTROYED
        elif previous_status is AccountStatus.LOADED_NOT_EXISTING:
            new_status = AccountStatus.LOADED_NOT_EXISTING
        elif previous_status in (
            AccountStatus.DESTROYED_AGAIN,
            AccountStatus.DESTROYED_CHANGED,
        ):
            new_status = AccountStatus.DESTROYED_AGAIN
        else:
            raise InvalidTransitionError(
                f"touch empty is not possible from {previous_status.name}"
            )

        previous_info = self._take_info()
        self.status = new_status
        if previous_status in (
            AccountStatus.LOADED_NOT_EXISTING,
            AccountStatus.DESTROYED,
            AccountStatus.DESTROYED_AGAIN,
        ):
            return None
        return TransitionAccount(
            info=None,
            status=self.status,
            previous_info=previous_info,
            previous_status=previous_status,
            storage={},
            storage_was_destroyed=True,
        )

    def selfdestruct(self) -> Optional[TransitionAccount]:
        """Destroy the account; None when it never existed."""
        previous_info = self._take_info()
        previous_status = self.status

        if previous_status is AccountStatus.LOADED_NOT_EXISTING:
            return None
        if previous_status in _DESTROYED_STATES:
            self.status = AccountStatus.DESTROYED_AGAIN
        else:
            self.status = AccountStatus.DESTROYED
        return TransitionAccount(
            info=None,
            status=self.status,
            previous_info=previous_info,
            previous_status=previous_status,
            storage={},
            storage_was_destroyed=True,
        )

    def newly_created(
        self, new_info: AccountInfo, new_storage: StorageWithOriginalValues
    ) -> TransitionAccount:
        previous_status = self.status
        previous_info = self._take_info()

        if previous_status in _DESTROYED_STATES:
            self.status = AccountStatus.DESTROYED_CHANGED
        else:
            # The EVM has already checked that the account may be created here.
            self.status = AccountStatus.IN_MEMORY_CHANGE

        transition = TransitionAccount(
            info=copy.copy(new_info),
            status=self.status,
            previous_info=previous_info,
            previous_status=previous_status,
            storage=new_storage,
            storage_was_destroyed=False,
        )
        self.account = PlainAccount(info=new_info, storage=_present_values(new_storage))
        return transition

    def increment_balance(self, balance: int) -> TransitionAccount:
        """Add ``balance`` (assumed non-zero) to the account."""

        def add(info: AccountInfo) -> None:
            info.balance += balance

        return self._account_info_change(add)[1]

    def drain_balance(self) -> Tuple[int, TransitionAccount]:
        """Zero the balance and return the amount drained with the transition."""

        def drain(info: AccountInfo) -> int:
            output = info.balance
            if output >= _U128_LIMIT:
                raise OverflowError(f"balance does not fit in 128 bits: {output}")
            info.balance = 0
            return output

        return self._account_info_change(drain)

    def _account_info_change(
        self, change: Callable[[AccountInfo], _T]
    ) -> Tuple[_T, TransitionAccount]:
        previous_status = self.status
        previous_info = self.account_info()
        account = self.account if self.account is not None else PlainAccount()
        output = change(account.info)
        self.account = account

        if previous_status is AccountStatus.LOADED:
            self.status = (
                AccountStatus.IN_MEMORY_CHANGE
                if _fully_in_memory(previous_info)
                else AccountStatus.CHANGED
            )
        elif previous_status in (
            AccountStatus.LOADED_NOT_EXISTING,
            AccountStatus.LOADED_EMPTY_EIP161,
            AccountStatus.IN_MEMORY_CHANGE,
        ):
            self.status = AccountStatus.IN_MEMORY_CHANGE
        elif previous_status is AccountStatus.CHANGED:
            self.status = AccountStatus.CHANGED
        else:
            self.status = AccountStatus.DESTROYED_CHANGED

        return output, TransitionAccount(
            info=self.account_info(),
            status=self.status,
            previous_info=previous_info,
            previous_status=previous_status,
            storage={},
            storage_was_destroyed=False,
        )

    def change(
        self, new: AccountInfo, storage: StorageWithOriginalValues
    ) -> TransitionAccount:
        """Apply new info and storage from a transaction that touched the account."""
        previous_status = self.status
        previous_info = self.account_info()
        old = self.account
        self.account = None
        this_storage: PlainStorage = {} if old is None else old.storage
        this_storage.update(_present_values(storage))

        if previous_status is AccountStatus.LOADED:
            self.status = (
                AccountStatus.IN_MEMORY_CHANGE
                if _fully_in_memory(previous_info)
                else AccountStatus.CHANGED
            )
        elif previous_status is AccountStatus.CHANGED:
            self.status = AccountStatus.CHANGED
        elif previous_status in (
            AccountStatus.IN_MEMORY_CHANGE,
            AccountStatus.LOADED_EMPTY_EIP161,
            AccountStatus.LOADED_NOT_EXISTING,
        ):
            self.status = AccountStatus.IN_MEMORY_CHANGE
        else:
            # A change after destruction is a balance transfer that recreates it.
            self.status = AccountStatus.DESTROYED_CHANGED

        self.account = PlainAccount(info=new, storage=this_storage)
        return TransitionAccount(
            info=self.account_info(),
            status=self.status,
            previous_info=previous_info,
            previous_status=previous_status,
            storage=storage,
            storage_was_destroyed=False,
        )