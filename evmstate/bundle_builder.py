"""Step-by-step construction of a BundleState from plain values."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from evmstate.account_status import AccountStatus
from evmstate.bundle_account import BundleAccount
from evmstate.bundle_state import BundleState
from evmstate.primitives import AccountInfo, Bytecode, StorageSlot
from evmstate.reverts import AccountInfoRevert, AccountRevert, Reverts, RevertToSlot

RevertAccountSpec = Union[AccountInfoRevert, AccountInfo, None]


def _info_revert(account: RevertAccountSpec) -> AccountInfoRevert:
    """None means nothing to do; an AccountInfo means revert to it."""
    if isinstance(account, AccountInfoRevert):
        return account
    if account is None:
        return AccountInfoRevert.do_nothing()
    return AccountInfoRevert.revert_to(account)


class BundleBuilder:
    """Collects accounts, storage, reverts and contracts, then builds a BundleState.

    ``revert_range`` holds the block numbers for which reverts are kept; the
    built bundle has one (possibly empty) list of reverts for each of them,
    in ascending block order. Reverts for other block numbers are dropped.
    Every method that collects data returns the builder so calls can chain.
    """

    def __init__(self, revert_range: Iterable[int] = range(1)) -> None:
        self._revert_range: List[int] = sorted(set(revert_range))
        self._states: Dict[bytes, None] = {}
        self._state_original: Dict[bytes, AccountInfo] = {}
        self._state_present: Dict[bytes, AccountInfo] = {}
        self._state_storage: Dict[bytes, Dict[int, Tuple[int, int]]] = {}
        self._reverts: Set[Tuple[int, bytes]] = set()
        self._revert_account: Dict[Tuple[int, bytes], AccountInfoRevert] = {}
        self._revert_storage: Dict[Tuple[int, bytes], List[Tuple[int, int]]] = {}
        self._contracts: Dict[bytes, Bytecode] = {}

    def state_address(self, address: bytes) -> BundleBuilder:
        self._states[address] = None
        return self

    def state_original_account_info(
        self, address: bytes, original: AccountInfo
    ) -> BundleBuilder:
        self._states[address] = None
        self._state_original[address] = original
        return self

    def state_present_account_info(
        self, address: bytes, present: AccountInfo
    ) -> BundleBuilder:
        self._states[address] = None
        self._state_present[address] = present
        return self

    def state_storage(
        self, address: bytes, storage: Dict[int, Tuple[int, int]]
    ) -> BundleBuilder:
        """Storage given as ``{slot: (original, present)}``."""
        self._states[address] = None
        self._state_storage[address] = dict(storage)
        return self

    def revert_address(self, block_number: int, address: bytes) -> BundleBuilder:
        self._reverts.add((block_number, address))
        return self

    def revert_account_info(
        self, block_number: int, address: bytes, account: RevertAccountSpec
    ) -> BundleBuilder:
        """None for nothing to do, an AccountInfo to revert to, or an AccountInfoRevert."""
        key = (block_number, address)
        self._reverts.add(key)
        self._revert_account[key] = _info_revert(account)
        return self

    def revert_storage(
        self, block_number: int, address: bytes, storage: Iterable[Tuple[int, int]]
    ) -> BundleBuilder:
        key = (block_number, address)
        self._reverts.add(key)
        self._revert_storage[key] = list(storage)
        return self

    def contract(self, code_hash: bytes, bytecode: Bytecode) -> BundleBuilder:
        self._contracts[code_hash] = bytecode
        return self

    def build(self) -> BundleState:
        state_size = 0
        state: Dict[bytes, BundleAccount] = {}
        for address in self._states:
            storage = {
                key: StorageSlot.new_changed(original, present)
                for key, (original, present) in self._state_storage.get(address, {}).items()
            }
            account = BundleAccount(
                info=self._state_present.get(address),
                original_info=self._state_original.get(address),
                storage=storage,
                status=AccountStatus.CHANGED,
            )
            state_size += account.size_hint()
            state[address] = account

        reverts_size = 0
        blocks: Dict[int, List[Tuple[bytes, AccountRevert]]] = {
            number: [] for number in self._revert_range
        }
        for block_number, address in sorted(self._reverts):
            block = blocks.get(block_number)
            if block is None:
                continue
            key = (block_number, address)
            revert = AccountRevert(
                account=self._revert_account.get(key, AccountInfoRevert.do_nothing()),
                storage={
                    slot: RevertToSlot(value)
                    for slot, value in self._revert_storage.get(key, [])
                },
                previous_status=AccountStatus.CHANGED,
                wipe_storage=False,
            )
            reverts_size += revert.size_hint()
            block.append((address, revert))

        return BundleState(
            state=state,
            contracts=dict(self._contracts),
            reverts=Reverts(blocks.values()),
            state_size=state_size,
            reverts_size=reverts_size,
        )