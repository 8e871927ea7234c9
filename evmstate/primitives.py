"""Basic value types shared by the state databases."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from Crypto.Hash import keccak


def keccak256(data: bytes) -> bytes:
    """Return the 32-byte Keccak-256 digest of ``data``."""
    return keccak.new(digest_bits=256, data=bytes(data)).digest()


KECCAK_EMPTY: bytes = keccak256(b"")
ZERO_HASH: bytes = bytes(32)
ZERO_ADDRESS: bytes = bytes(20)


@dataclass(frozen=True)
class Bytecode:
    """Raw contract code."""

    raw: bytes = b""

    def __len__(self) -> int:
        return len(self.raw)

    def is_empty(self) -> bool:
        return not self.raw

    def hash_slow(self) -> bytes:
        """Hash the code; empty code hashes to ``KECCAK_EMPTY``."""
        if self.is_empty():
            return KECCAK_EMPTY
        return keccak256(self.raw)


@dataclass
class AccountInfo:
    """Balance, nonce and code of an account.

    Equality ignores ``code``: the code hash already identifies it.
    """

    balance: int = 0
    nonce: int = 0
    code_hash: bytes = KECCAK_EMPTY
    code: Optional[Bytecode] = field(default_factory=Bytecode, compare=False)

    def is_empty(self) -> bool:
        code_empty = self.code_hash in (KECCAK_EMPTY, ZERO_HASH)
        return code_empty and self.balance == 0 and self.nonce == 0

    def exists(self) -> bool:
        return not self.is_empty()

    def without_code(self) -> AccountInfo:
        """Return a copy with the code dropped."""
        return replace(self, code=None)


@dataclass
class StorageSlot:
    """A storage value together with the value it had before."""

    previous_or_original_value: int = 0
    present_value: int = 0

    @classmethod
    def new_changed(cls, original: int, present: int) -> StorageSlot:
        return cls(previous_or_original_value=original, present_value=present)

    def original_value(self) -> int:
        return self.previous_or_original_value

    def is_changed(self) -> bool:
        return self.previous_or_original_value != self.present_value


StorageWithOriginalValues = Dict[int, StorageSlot]
PlainStorage = Dict[int, int]


@dataclass
class Account:
    """An account as the EVM leaves it after executing a transaction."""

    info: AccountInfo = field(default_factory=AccountInfo)
    storage: StorageWithOriginalValues = field(default_factory=dict)
    touched: bool = False
    selfdestructed: bool = False
    created: bool = False

    def is_touched(self) -> bool:
        return self.touched

    def is_selfdestructed(self) -> bool:
        return self.selfdestructed

    def is_created(self) -> bool:
        return self.created

    def is_empty(self) -> bool:
        return self.info.is_empty()


@dataclass
class PlainAccount:
    """Account info with plain storage values."""

    info: AccountInfo = field(default_factory=AccountInfo)
    storage: PlainStorage = field(default_factory=dict)

    @classmethod
    def new_empty_with_storage(cls, storage: PlainStorage) -> PlainAccount:
        return cls(info=AccountInfo(), storage=storage)

    def into_components(self) -> Tuple[AccountInfo, PlainStorage]:
        return self.info, self.storage