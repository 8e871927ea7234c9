"""Lifecycle states an account can be in while blocks are executed over it."""

from __future__ import annotations

from enum import Enum


class AccountStatus(Enum):
    """Every state an in-memory account can reach after being loaded."""

    LOADED_NOT_EXISTING = "loaded_not_existing"
    LOADED = "loaded"
    LOADED_EMPTY_EIP161 = "loaded_empty_eip161"
    IN_MEMORY_CHANGE = "in_memory_change"
    CHANGED = "changed"
    DESTROYED = "destroyed"
    DESTROYED_CHANGED = "destroyed_changed"
    DESTROYED_AGAIN = "destroyed_again"

    def transition(self, other: AccountStatus) -> AccountStatus:
        """Return the status after extending this one with ``other``.

        A destroyed account extended by a non-destroyed one becomes
        ``DESTROYED_CHANGED``; an in-memory account extended by a
        non-destroyed one stays in memory; otherwise ``other`` wins.
        """
        this_destroyed = self.was_destroyed()
        other_destroyed = other.was_destroyed()
        if this_destroyed and not other_destroyed:
            return AccountStatus.DESTROYED_CHANGED
        if (
            not this_destroyed
            and not other_destroyed
            and self is AccountStatus.IN_MEMORY_CHANGE
        ):
            return AccountStatus.IN_MEMORY_CHANGE
        return other

    def not_modified(self) -> bool:
        """Account was only loaded from the database."""
        return self in _NOT_MODIFIED

    def was_destroyed(self) -> bool:
        """Account was destroyed by SELFDESTRUCT; its whole state is in memory."""
        return self in _DESTROYED

    def storage_known(self) -> bool:
        """Full storage is known: newly created or wiped."""
        return self in _STORAGE_KNOWN

    def modified_but_not_destroyed(self) -> bool:
        """Account changed, and some of its storage may still live in the database."""
        return self in (AccountStatus.CHANGED, AccountStatus.IN_MEMORY_CHANGE)


_NOT_MODIFIED = frozenset(
    {
        AccountStatus.LOADED_NOT_EXISTING,
        AccountStatus.LOADED,
        AccountStatus.LOADED_EMPTY_EIP161,
    }
)

_DESTROYED = frozenset(
    {
        AccountStatus.DESTROYED,
        AccountStatus.DESTROYED_CHANGED,
        AccountStatus.DESTROYED_AGAIN,
    }
)

_STORAGE_KNOWN = frozenset(
    {
        AccountStatus.LOADED_NOT_EXISTING,
        AccountStatus.IN_MEMORY_CHANGE,
        AccountStatus.DESTROYED,
        AccountStatus.DESTROYED_CHANGED,
        AccountStatus.DESTROYED_AGAIN,
    }
)