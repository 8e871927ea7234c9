import pytest

from evmstate.account_status import AccountStatus
from evmstate.cache import CacheState
from evmstate.primitives import Account, AccountInfo, StorageSlot

ADDR1 = bytes([0x01] * 20)
ADDR2 = bytes([0x02] * 20)


def _info(nonce=1, balance=10):
    return AccountInfo(balance=balance, nonce=nonce)


def test_default_has_state_clear():
    cache = CacheState()
    assert cache.has_state_clear is True
    cache.set_state_clear_flag(False)
    assert cache.has_state_clear is False


def test_insert_account_statuses():
    cache = CacheState()
    cache.insert_account(ADDR1, _info())
    cache.insert_account(ADDR2, AccountInfo())
    assert cache.accounts[ADDR1].status is AccountStatus.LOADED
    assert cache.accounts[ADDR2].status is AccountStatus.LOADED_EMPTY_EIP161


def test_insert_not_existing():
    cache = CacheState()
    cache.insert_not_existing(ADDR1)
    assert cache.accounts[ADDR1].status is AccountStatus.LOADED_NOT_EXISTING
    assert cache.accounts[ADDR1].account_info() is None


def test_insert_account_with_storage():
    cache = CacheState()
    cache.insert_account_with_storage(ADDR1, _info(), {4: 40})
    assert cache.accounts[ADDR1].storage_slot(4) == 40


def test_trie_account_skips_not_existing():
    cache = CacheState()
    cache.insert_account(ADDR1, _info())
    cache.insert_not_existing(ADDR2)
    accounts = dict(cache.trie_account())
    assert list(accounts) == [ADDR1]
    assert accounts[ADDR1].info == _info()


def test_untouched_accounts_are_ignored():
    cache = CacheState()
    cache.insert_account(ADDR1, _info())
    transitions = cache.apply_evm_state({ADDR1: Account(info=_info(nonce=5))})
    assert transitions == []
    assert cache.accounts[ADDR1].status is AccountStatus.LOADED


def test_missing_account_raises():
    cache = CacheState()
    with pytest.raises(KeyError):
        cache.apply_evm_state({ADDR1: Account(touched=True)})


def test_selfdestruct_is_applied():
    cache = CacheState()
    cache.insert_account(ADDR1, _info())
    transitions = cache.apply_evm_state(
        {ADDR1: Account(info=_info(), touched=True, selfdestructed=True)}
    )
    assert [address for address, _ in transitions] == [ADDR1]
    assert transitions[0][1].status is AccountStatus.DESTROYED
    assert cache.accounts[ADDR1].account is None


def test_created_account():
    cache = CacheState()
    cache.insert_not_existing(ADDR1)
    storage = {1: StorageSlot.new_changed(0, 11)}
    transitions = cache.apply_evm_state(
        {ADDR1: Account(info=_info(), storage=storage, touched=True, created=True)}
    )
    transition = transitions[0][1]
    assert transition.status is AccountStatus.IN_MEMORY_CHANGE
    assert transition.storage == storage
    assert cache.accounts[ADDR1].storage_slot(1) == 11


def test_touched_empty_with_state_clear_is_removed():
    cache = CacheState()
    cache.insert_account(ADDR1, AccountInfo())
    transitions = cache.apply_evm_state({ADDR1: Account(info=AccountInfo(), touched=True)})
    assert transitions[0][1].status is AccountStatus.DESTROYED
    assert transitions[0][1].storage_was_destroyed


def test_touched_empty_without_state_clear_is_created():
    cache = CacheState(has_state_clear=False)
    cache.insert_not_existing(ADDR1)
    transitions = cache.apply_evm_state({ADDR1: Account(info=AccountInfo(), touched=True)})
    assert transitions[0][1].status is AccountStatus.IN_MEMORY_CHANGE
    assert transitions[0][1].info == AccountInfo()


def test_touched_empty_not_existing_with_state_clear_gives_nothing():
    cache = CacheState()
    cache.insert_not_existing(ADDR1)
    transitions = cache.apply_evm_state({ADDR1: Account(info=AccountInfo(), touched=True)})
    assert transitions == []


def test_changed_account():
    cache = CacheState()
    cache.insert_account(ADDR1, _info())
    new = _info(nonce=2)
    transitions = cache.apply_evm_state({ADDR1: Account(info=new, touched=True)})
    transition = transitions[0][1]
    assert transition.status is AccountStatus.CHANGED
    assert transition.info == new
    assert transition.previous_info == _info()
    assert cache.accounts[ADDR1].account_info() == new