"""Bundle-level account: present and original state, and how to revert it."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Optional

from evmstate.account_status import AccountStatus
from evmstate.primitives import AccountInfo, StorageSlot, StorageWithOriginalValues
from evmstate.reverts import AccountInfoRevert, AccountRevert, RevertKind, RevertToSlot

if TYPE_CHECKING:
    from evmstate.transition import TransitionAccount


class InvalidTransitionError(ValueError):
    """An account was asked to move between two statuses that cannot follow each other."""


def _copy_info(info: Optional[AccountInfo]) -> Optional[AccountInfo]:
    return None if info is None else copy.copy(info)


def _copy_storage(storage: StorageWithOriginalValues) -> StorageWithOriginalValues:
    return {key: copy.copy(slot) for key, slot in storage.items()}


def _extend_storage(
    this_storage: StorageWithOriginalValues, update: StorageWithOriginalValues
) -> None:
    """Take the present values of ``update`` while keeping known original values."""
    for key, slot in update.items():
        existing = this_storage.get(key)
        if existing is None:
            this_storage[key] = copy.copy(slot)
        else:
            existing.present_value = slot.present_value


def _previous_storage_from_update(
    updated_storage: StorageWithOriginalValues,
) -> Dict[int, RevertToSlot]:
    return {
        key: RevertToSlot(slot.previous_or_original_value)
        for key, slot in updated_storage.items()
        if slot.previous_or_original_value != slot.present_value
    }


@dataclass
class BundleAccount:
    """Account with original and present info and storage, used for changesets and reverts.

    When the account was destroyed, original storage values are ignored and
    present values are compared with zero instead.
    """

    info: Optional[AccountInfo] = None
    original_info: Optional[AccountInfo] = None
    storage: StorageWithOriginalValues = field(default_factory=dict)
    status: AccountStatus = AccountStatus.LOADED_NOT_EXISTING

    def size_hint(self) -> int:
        """Approximate number of entries needed to store this account."""
        return 1 + len(self.storage)

    def storage_slot(self, slot: int) -> Optional[int]:
        """Present value of a slot; zero when storage is fully known, else None."""
        entry = self.storage.get(slot)
        if entry is not None:
            return entry.present_value
        if self.status.storage_known():
            return 0
        return None

    def account_info(self) -> Optional[AccountInfo]:
        return _copy_info(self.info)

    def was_destroyed(self) -> bool:
        return self.status.was_destroyed()

    def is_info_changed(self) -> bool:
        return self.info != self.original_info

    def is_contract_changed(self) -> bool:
        present = None if self.info is None else self.info.code_hash
        original = None if self.original_info is None else self.original_info.code_hash
        return present != original

    def revert(self, revert: AccountRevert) -> bool:
        """Apply ``revert``; return True when the account can be removed."""
        self.status = revert.previous_status
        kind = revert.account.kind
        if kind is RevertKind.DELETE_IT:
            self.info = None
            self.storage = {}
            return True
        if kind is RevertKind.REVERT_TO:
            self.info = _copy_info(revert.account.info)

        for key, slot in revert.storage.items():
            if slot.is_destroyed:
                self.storage.pop(key, None)
            else:
                value = slot.to_previous_value()
                entry = self.storage.setdefault(key, StorageSlot.new_changed(value, 0))
                entry.present_value = value
        return False

    def update_and_create_revert(
        self, transition: TransitionAccount
    ) -> Optional[AccountRevert]:
        """Move to the transition's state and return the revert that undoes it.

        Returns None when there is nothing to revert.
        """
        updated_info = _copy_info(transition.info)
        updated_storage = _copy_storage(transition.storage)
        updated_status = transition.status

        if self.info != updated_info:
            base = self.info if self.info is not None else AccountInfo()
            info_revert = AccountInfoRevert.revert_to(copy.copy(base))
        else:
            info_revert = AccountInfoRevert.do_nothing()

        status = self.status
        revert: Optional[AccountRevert]

        if updated_status is AccountStatus.CHANGED:
            previous_storage = _previous_storage_from_update(updated_storage)
            if status in (AccountStatus.CHANGED, AccountStatus.LOADED):
                _extend_storage(self.storage, updated_storage)
            elif status is not AccountStatus.LOADED_EMPTY_EIP161:
                # From an empty account only a balance change can lead to Changed.
                raise InvalidTransitionError(
                    f"invalid transition to CHANGED from {status.name}"
                )
            revert = AccountRevert(
                account=info_revert,
                storage=previous_storage,
                previous_status=status,
                wipe_storage=False,
            )
            self.status = AccountStatus.CHANGED
            self.info = updated_info

        elif updated_status is AccountStatus.IN_MEMORY_CHANGE:
            previous_storage = _previous_storage_from_update(updated_storage)
            if status in (AccountStatus.LOADED, AccountStatus.IN_MEMORY_CHANGE):
                _extend_storage(self.storage, updated_storage)
                account_revert = info_revert
            elif status is AccountStatus.LOADED_EMPTY_EIP161:
                self.storage = updated_storage
                account_revert = info_revert
            elif status is AccountStatus.LOADED_NOT_EXISTING:
                self.storage = updated_storage
                account_revert = AccountInfoRevert.delete_it()
            else:
                raise InvalidTransitionError(
                    f"invalid transition to IN_MEMORY_CHANGE from {status.name}"
                )
            revert = AccountRevert(
                account=account_revert,
                storage=previous_storage,
                previous_status=status,
                wipe_storage=False,
            )
            self.status = AccountStatus.IN_MEMORY_CHANGE
            self.info = updated_info

        elif updated_status.not_modified():
            revert = None

        elif updated_status is AccountStatus.DESTROYED:
            this_storage = self.storage
            self.storage = {}
            if status in (
                AccountStatus.IN_MEMORY_CHANGE,
                AccountStatus.CHANGED,
                AccountStatus.LOADED,
                AccountStatus.LOADED_EMPTY_EIP161,
            ):
                revert = AccountRevert.new_selfdestructed(status, info_revert, this_storage)
            elif status is AccountStatus.LOADED_NOT_EXISTING:
                revert = None
            else:
                raise InvalidTransitionError(
                    f"invalid transition to DESTROYED from {status.name}"
                )
            if revert is not None:
                self.status = AccountStatus.DESTROYED
                self.info = None

        elif updated_status is AccountStatus.DESTROYED_CHANGED:
            revert = AccountRevert.new_selfdestructed_from_bundle(
                copy.copy(info_revert), self, updated_storage
            )
            if revert is not None:
                self.status = AccountStatus.DESTROYED_CHANGED
                self.info = updated_info
                self.storage = updated_storage
            else:
                if status in (AccountStatus.DESTROYED, AccountStatus.LOADED_NOT_EXISTING):
                    revert = AccountRevert(
                        account=AccountInfoRevert.delete_it(),
                        storage=_previous_storage_from_update(updated_storage),
                        previous_status=status,
                        wipe_storage=False,
                    )
                elif status is AccountStatus.DESTROYED_CHANGED:
                    if transition.storage_was_destroyed:
                        previous_storage = {
                            key: RevertToSlot(slot.present_value)
                            for key, slot in self.storage.items()
                        }
                        self.storage = {}
                        for key in updated_storage:
                            # Missing from the destroyed storage, so it was zero before.
                            previous_storage.setdefault(key, RevertToSlot.destroyed())
                    else:
                        previous_storage = _previous_storage_from_update(updated_storage)
                    revert = AccountRevert(
                        account=info_revert,
                        storage=previous_storage,
                        previous_status=AccountStatus.DESTROYED_CHANGED,
                        wipe_storage=False,
                    )
                elif status is AccountStatus.DESTROYED_AGAIN:
                    revert = AccountRevert.new_selfdestructed_again(
                        AccountStatus.DESTROYED_AGAIN,
                        AccountInfoRevert.delete_it(),
                        {},
                        dict(updated_storage),
                    )
                else:
                    raise InvalidTransitionError(
                        f"invalid transition to DESTROYED_CHANGED from {status.name}"
                    )
                self.status = AccountStatus.DESTROYED_CHANGED
                self.info = updated_info
                _extend_storage(self.storage, updated_storage)

        else:  # DESTROYED_AGAIN
            revert = AccountRevert.new_selfdestructed_from_bundle(info_revert, self, {})
            if revert is None:
                if status in (
                    AccountStatus.DESTROYED,
                    AccountStatus.DESTROYED_AGAIN,
                    AccountStatus.LOADED_NOT_EXISTING,
                ):
                    revert = None
                elif status is AccountStatus.DESTROYED_CHANGED:
                    base = self.info if self.info is not None else AccountInfo()
                    drained = self.storage
                    self.storage = {}
                    revert = AccountRevert.new_selfdestructed_again(
                        AccountStatus.DESTROYED_CHANGED,
                        AccountInfoRevert.revert_to(copy.copy(base)),
                        drained,
                        {},
                    )
                else:
                    raise InvalidTransitionError(
                        f"invalid transition to DESTROYED_AGAIN from {status.name}"
                    )
            self.status = AccountStatus.DESTROYED_AGAIN
            self.info = None
            self.storage = {}

        if revert is None or revert.is_empty():
            return None
        return revert