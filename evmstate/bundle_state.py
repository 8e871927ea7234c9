"""Bundle state: the net changes of one or more blocks, plus the reverts that undo them."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from evmstate.account_status import AccountStatus
from evmstate.bundle_account import BundleAccount
from evmstate.primitives import KECCAK_EMPTY, AccountInfo, Bytecode, StorageSlot
from evmstate.reverts import (
    AccountInfoRevert,
    AccountRevert,
    PlainStateReverts,
    PlainStorageChangeset,
    Reverts,
    RevertToSlot,
    StateChangeset,
)
from evmstate.transition import TransitionState

AccountRevertSpec = Union[AccountInfoRevert, AccountInfo, None]


class OriginalValuesKnown(Enum):
    """Whether the bundle's original values can be trusted when building plain state."""

    YES = "yes"
    NO = "no"

    def is_not_known(self) -> bool:
        return self is OriginalValuesKnown.NO


class BundleRetention(Enum):
    """What is kept when transitions are merged into the bundle."""

    PLAIN_STATE = "plain_state"
    REVERTS = "reverts"

    def includes_reverts(self) -> bool:
        return self is BundleRetention.REVERTS


def _info_revert(account: AccountRevertSpec) -> AccountInfoRevert:
    """None means nothing to do; an AccountInfo means revert to it."""
    if isinstance(account, AccountInfoRevert):
        return account
    if account is None:
        return AccountInfoRevert.do_nothing()
    return AccountInfoRevert.revert_to(account)


@dataclass
class BundleState:
    """Changed accounts with original and present values, contracts and reverts.

    Inside one block of reverts accounts are unique but not sorted by address.
    """

    state: Dict[bytes, BundleAccount] = field(default_factory=dict)
    contracts: Dict[bytes, Bytecode] = field(default_factory=dict)
    reverts: Reverts = field(default_factory=Reverts)
    state_size: int = 0
    reverts_size: int = 0

    @classmethod
    def new(
        cls,
        state: Iterable[
            Tuple[bytes, Optional[AccountInfo], Optional[AccountInfo], Dict[int, Tuple[int, int]]]
        ],
        reverts: Iterable[Iterable[Tuple[bytes, AccountRevertSpec, Iterable[Tuple[int, int]]]]],
        contracts: Iterable[Tuple[bytes, Bytecode]],
    ) -> BundleState:
        """Build from (address, original, present, {slot: (original, present)}) entries.

        Each revert entry is (address, account, [(slot, value)]); the account is
        None for nothing to do, an AccountInfo to revert to, or an AccountInfoRevert.
        """
        state_size = 0
        accounts: Dict[bytes, BundleAccount] = {}
        for address, original, present, storage in state:
            account = BundleAccount(
                info=present,
                original_info=original,
                storage={
                    key: StorageSlot.new_changed(original_value, present_value)
                    for key, (original_value, present_value) in dict(storage).items()
                },
                status=AccountStatus.CHANGED,
            )
            state_size += account.size_hint()
            accounts[address] = account

        reverts_size = 0
        blocks: List[List[Tuple[bytes, AccountRevert]]] = []
        for block_reverts in reverts:
            block: List[Tuple[bytes, AccountRevert]] = []
            for address, account_spec, storage in block_reverts:
                revert = AccountRevert(
                    account=_info_revert(account_spec),
                    storage={key: RevertToSlot(value) for key, value in storage},
                    previous_status=AccountStatus.CHANGED,
                    wipe_storage=False,
                )
                reverts_size += revert.size_hint()
                block.append((address, revert))
            blocks.append(block)

        return cls(
            state=accounts,
            contracts=dict(contracts),
            reverts=Reverts(blocks),
            state_size=state_size,
            reverts_size=reverts_size,
        )

    def size_hint(self) -> int:
        """Approximate number of changes; destroyed entries to remove are not counted."""
        return self.state_size + self.reverts_size + len(self.contracts)

    def __len__(self) -> int:
        return len(self.state)

    def is_empty(self) -> bool:
        return len(self) == 0

    def account(self, address: bytes) -> Optional[BundleAccount]:
        return self.state.get(address)

    def bytecode(self, code_hash: bytes) -> Optional[Bytecode]:
        return self.contracts.get(code_hash)

    def apply_transitions_and_create_reverts(
        self, transitions: TransitionState, retention: BundleRetention
    ) -> None:
        """Apply the transitions and record the reverts when ``retention`` asks for them."""
        include_reverts = retention.includes_reverts()
        block: List[Tuple[bytes, AccountRevert]] = []

        for address, transition in transitions.transitions.items():
            new_contract = transition.has_new_contract()
            if new_contract is not None:
                code_hash, code = new_contract
                self.contracts[code_hash] = code

            existing = self.state.get(address)
            if existing is not None:
                self.state_size -= existing.size_hint()
                revert = existing.update_and_create_revert(transition)
                self.state_size += existing.size_hint()
            else:
                present_bundle = transition.present_bundle_account()
                revert = transition.create_revert()
                if revert is not None:
                    self.state_size += present_bundle.size_hint()
                    self.state[address] = present_bundle

            if revert is not None and include_reverts:
                self.reverts_size += revert.size_hint()
                block.append((address, revert))

        self.reverts.push(block)

    def into_plain_state(self, is_value_known: OriginalValuesKnown) -> StateChangeset:
        """Flatten the present state into account, storage and contract changes."""
        not_known = is_value_known.is_not_known()
        accounts: List[Tuple[bytes, Optional[AccountInfo]]] = []
        storage: List[PlainStorageChangeset] = []

        for address, account in self.state.items():
            was_destroyed = account.was_destroyed()
            if not_known or account.is_info_changed():
                info = None if account.info is None else account.info.without_code()
                accounts.append((address, info))

            changed: List[Tuple[int, int]] = []
            for key, slot in account.storage.items():
                destroyed_and_not_zero = was_destroyed and slot.present_value != 0
                not_destroyed_and_changed = not was_destroyed and slot.is_changed()
                if not_known or destroyed_and_not_zero or not_destroyed_and_changed:
                    changed.append((key, slot.present_value))

            if changed or was_destroyed:
                storage.append(
                    PlainStorageChangeset(
                        address=address, wipe_storage=was_destroyed, storage=changed
                    )
                )

        contracts = [
            (code_hash, code)
            for code_hash, code in self.contracts.items()
            if code_hash != KECCAK_EMPTY
        ]
        return StateChangeset(accounts=accounts, storage=storage, contracts=contracts)

    def into_plain_state_and_reverts(
        self, is_value_known: OriginalValuesKnown
    ) -> Tuple[StateChangeset, PlainStateReverts]:
        """Split into plain state and plain reverts; the reverts are taken out."""
        reverts = self.take_all_reverts()
        plain_state = self.into_plain_state(is_value_known)
        return plain_state, reverts.into_plain_state_reverts()

    def extend(self, other: BundleState) -> None:
        """Extend with a bundle built on top of this one.

        When ``other`` wipes an account's storage, this bundle's storage of it
        moves into ``other``'s revert; if both bundles destroyed the account,
        the second wipe is dropped as the database is wiped only once.
        """
        other = copy.deepcopy(other)

        for block in other.reverts:
            for address, revert in block:
                if revert.wipe_storage:
                    this_account = self.state.get(address)
                    if this_account is not None:
                        for key, slot in this_account.storage.items():
                            revert.storage.setdefault(key, RevertToSlot(slot.present_value))
                        this_account.storage = {}
                        if this_account.was_destroyed():
                            revert.wipe_storage = False
                self.reverts_size += revert.size_hint()

        for address, other_account in other.state.items():
            this = self.state.get(address)
            if this is None:
                self.state_size += other_account.size_hint()
                self.state[address] = other_account
                continue

            self.state_size -= this.size_hint()
            if other_account.was_destroyed():
                this.storage = other_account.storage
            else:
                for key, slot in other_account.storage.items():
                    existing = this.storage.get(key)
                    if existing is None:
                        this.storage[key] = slot
                    else:
                        existing.present_value = slot.present_value
            this.info = other_account.info
            this.status = this.status.transition(other_account.status)
            self.state_size += this.size_hint()

        self.contracts.update(other.contracts)
        self.reverts.extend(other.reverts)

    def take_n_reverts(self, reverts_to_take: int) -> Reverts:
        """Detach and return the first ``reverts_to_take`` transitions of reverts."""
        if reverts_to_take > len(self.reverts):
            return self.take_all_reverts()
        detached, remaining = self.reverts.split_at(reverts_to_take)
        self.reverts_size = sum(
            revert.size_hint() for block in remaining for _, revert in block
        )
        self.reverts = remaining
        return detached

    def take_all_reverts(self) -> Reverts:
        """Return all reverts and leave none behind."""
        taken = self.reverts
        self.reverts = Reverts()
        self.reverts_size = 0
        return taken

    def revert_latest(self) -> bool:
        """Undo the latest transition; return False when there is none."""
        block = self.reverts.pop()
        if block is None:
            return False
        for address, revert in block:
            self.reverts_size -= revert.size_hint()
            account = self.state.get(address)
            if account is None:
                raise KeyError(f"account {address.hex()} for revert should exist")
            self.state_size -= account.size_hint()
            if account.revert(revert):
                del self.state[address]
            else:
                self.state_size += account.size_hint()
        return True

    def revert(self, num_transitions: int) -> None:
        """Undo up to ``num_transitions`` transitions, latest first."""
        if num_transitions <= 0:
            return
        while self.revert_latest():
            num_transitions -= 1
            if num_transitions == 0:
                break