from evmstate.account_status import AccountStatus
from evmstate.bundle_account import BundleAccount
from evmstate.primitives import AccountInfo, Bytecode, StorageSlot
from evmstate.reverts import AccountInfoRevert, AccountRevert, RevertToSlot
from evmstate.transition import TransitionAccount, TransitionState

ADDR1 = bytes([0x1] * 20)
ADDR2 = bytes([0x2] * 20)
ADDR3 = bytes([0x3] * 20)


def test_new_empty_eip161():
    storage = {1: StorageSlot(0, 2)}
    transition = TransitionAccount.new_empty_eip161(storage)
    assert transition.info == AccountInfo()
    assert transition.status is AccountStatus.IN_MEMORY_CHANGE
    assert transition.previous_status is AccountStatus.LOADED_NOT_EXISTING
    assert transition.previous_info is None
    assert transition.storage == storage


def test_has_new_contract():
    code = Bytecode(b"\x60\x00")
    info = AccountInfo(nonce=1, code_hash=code.hash_slow(), code=code)
    transition = TransitionAccount(info=info, status=AccountStatus.IN_MEMORY_CHANGE)
    assert transition.has_new_contract() == (code.hash_slow(), code)

    unchanged = TransitionAccount(
        info=info, status=AccountStatus.CHANGED, previous_info=AccountInfo(code_hash=code.hash_slow())
    )
    assert unchanged.has_new_contract() is None


def test_update_destroyed_replaces_storage():
    transition = TransitionAccount(
        info=AccountInfo(nonce=1), status=AccountStatus.CHANGED, storage={1: StorageSlot(0, 5)}
    )
    transition.update(TransitionAccount(info=None, status=AccountStatus.DESTROYED))
    assert transition.storage == {}
    assert transition.storage_was_destroyed is True
    assert transition.info is None


def test_update_removes_slot_back_to_original():
    transition = TransitionAccount(status=AccountStatus.CHANGED, storage={1: StorageSlot(3, 5)})
    transition.update(
        TransitionAccount(status=AccountStatus.CHANGED, storage={1: StorageSlot(5, 3)})
    )
    assert transition.storage == {}


def test_take_and_single():
    transition = TransitionAccount(info=AccountInfo(nonce=1))
    state = TransitionState.single(ADDR1, transition)
    taken = state.take()
    assert taken.transitions == {ADDR1: transition}
    assert state.transitions == {}


def _reverts_for(state):
    return {address: t.create_revert() for address, t in state.transitions.items()}


def test_reverts_preserve_old_values():
    state = TransitionState()
    slot1, slot2, slot3 = 1, 2, 3
    created = AccountInfo(nonce=1, balance=1)
    changed = AccountInfo(nonce=2, balance=1)
    changed2 = AccountInfo(nonce=3, balance=1)
    initial = AccountInfo(nonce=1)
    initial_storage = {slot1: 100, slot2: 200}
    existing_changed = AccountInfo(nonce=2)

    state.add_transitions([
        (ADDR1, TransitionAccount(
            status=AccountStatus.IN_MEMORY_CHANGE, info=created,
            previous_status=AccountStatus.LOADED_NOT_EXISTING, previous_info=None)),
        (ADDR2, TransitionAccount(
            status=AccountStatus.IN_MEMORY_CHANGE, info=existing_changed,
            previous_status=AccountStatus.LOADED, previous_info=initial,
            storage={slot1: StorageSlot(initial_storage[slot1], 1000)})),
    ])
    state.add_transitions([
        (ADDR1, TransitionAccount(
            status=AccountStatus.IN_MEMORY_CHANGE, info=changed,
            previous_status=AccountStatus.IN_MEMORY_CHANGE, previous_info=created)),
    ])
    state.add_transitions([
        (ADDR1, TransitionAccount(
            status=AccountStatus.IN_MEMORY_CHANGE, info=changed2,
            previous_status=AccountStatus.IN_MEMORY_CHANGE, previous_info=changed,
            storage={slot1: StorageSlot(0, 1)})),
        (ADDR2, TransitionAccount(
            status=AccountStatus.IN_MEMORY_CHANGE, info=existing_changed,
            previous_status=AccountStatus.IN_MEMORY_CHANGE, previous_info=existing_changed,
            storage={
                slot1: StorageSlot(100, 1000),
                slot2: StorageSlot(initial_storage[slot2], 2000),
                slot3: StorageSlot(0, 3000),
            })),
    ])

    reverts = _reverts_for(state)
    assert reverts[ADDR1] == AccountRevert(
        account=AccountInfoRevert.delete_it(),
        previous_status=AccountStatus.LOADED_NOT_EXISTING,
        storage={slot1: RevertToSlot(0)},
        wipe_storage=False,
    )
    assert reverts[ADDR2] == AccountRevert(
        account=AccountInfoRevert.revert_to(initial),
        previous_status=AccountStatus.LOADED,
        storage={
            slot1: RevertToSlot(initial_storage[slot1]),
            slot2: RevertToSlot(initial_storage[slot2]),
            slot3: RevertToSlot(0),
        },
        wipe_storage=False,
    )

    assert state.transitions[ADDR1].present_bundle_account() == BundleAccount(
        info=changed2,
        original_info=None,
        status=AccountStatus.IN_MEMORY_CHANGE,
        storage={slot1: StorageSlot(0, 1)},
    )
    assert state.transitions[ADDR2].present_bundle_account() == BundleAccount(
        info=existing_changed,
        original_info=initial,
        status=AccountStatus.IN_MEMORY_CHANGE,
        storage={
            slot1: StorageSlot(initial_storage[slot1], 1000),
            slot2: StorageSlot(initial_storage[slot2], 2000),
            slot3: StorageSlot(0, 3000),
        },
    )


def test_bundle_scoped_reverts_collapse():
    state = TransitionState()
    created = AccountInfo(nonce=1, balance=1)
    initial = AccountInfo(nonce=1)
    updated = AccountInfo(nonce=1, balance=1)
    with_storage = AccountInfo(nonce=1)
    slot1, slot2 = 1, 2

    state.add_transitions([
        (ADDR1, TransitionAccount(
            status=AccountStatus.IN_MEMORY_CHANGE, info=created,
            previous_status=AccountStatus.LOADED_NOT_EXISTING)),
        (ADDR2, TransitionAccount(
            status=AccountStatus.CHANGED, info=updated,
            previous_status=AccountStatus.LOADED, previous_info=initial)),
        (ADDR3, TransitionAccount(
            status=AccountStatus.CHANGED, info=with_storage,
            previous_status=AccountStatus.LOADED, previous_info=with_storage,
            storage={slot1: StorageSlot(1, 10), slot2: StorageSlot(0, 20)})),
    ])
    state.add_transitions([
        (ADDR1, TransitionAccount(
            status=AccountStatus.DESTROYED, info=None,
            previous_status=AccountStatus.IN_MEMORY_CHANGE, previous_info=created)),
        (ADDR2, TransitionAccount(
            status=AccountStatus.CHANGED, info=initial,
            previous_status=AccountStatus.CHANGED, previous_info=updated)),
        (ADDR3, TransitionAccount(
            status=AccountStatus.CHANGED, info=with_storage,
            previous_status=AccountStatus.CHANGED, previous_info=with_storage,
            storage={slot1: StorageSlot(10, 1), slot2: StorageSlot(20, 0)})),
    ])

    reverts = _reverts_for(state)
    assert reverts == {ADDR1: None, ADDR2: None, ADDR3: None}


def test_selfdestruct_state_and_reverts():
    state = TransitionState()
    info = AccountInfo(nonce=1)
    slot1, slot2 = 1, 2

    state.add_transitions([(ADDR1, TransitionAccount(
        status=AccountStatus.DESTROYED, info=None,
        previous_status=AccountStatus.LOADED, previous_info=info,
        storage_was_destroyed=True))])
    state.add_transitions([(ADDR1, TransitionAccount(
        status=AccountStatus.DESTROYED_CHANGED, info=info,
        previous_status=AccountStatus.DESTROYED, previous_info=None,
        storage={slot1: StorageSlot(0, 1)}))])
    state.add_transitions([(ADDR1, TransitionAccount(
        status=AccountStatus.DESTROYED_AGAIN, info=None,
        previous_status=AccountStatus.DESTROYED_CHANGED, previous_info=info,
        storage_was_destroyed=True))])
    state.add_transitions([(ADDR1, TransitionAccount(
        status=AccountStatus.DESTROYED_CHANGED, info=info,
        previous_status=AccountStatus.DESTROYED_AGAIN, previous_info=None,
        storage={slot2: StorageSlot(0, 2)}))])

    transition = state.transitions[ADDR1]
    assert transition.present_bundle_account() == BundleAccount(
        info=info,
        original_info=info,
        storage={slot2: StorageSlot(0, 2)},
        status=AccountStatus.DESTROYED_CHANGED,
    )
    assert transition.create_revert() == AccountRevert(
        account=AccountInfoRevert.do_nothing(),
        previous_status=AccountStatus.LOADED,
        storage={slot2: RevertToSlot.destroyed()},
        wipe_storage=True,
    )


def test_create_revert_leaves_transition_intact():
    transition = TransitionAccount(
        info=AccountInfo(nonce=1),
        status=AccountStatus.IN_MEMORY_CHANGE,
        storage={4: StorageSlot(0, 6)},
    )
    transition.create_revert()
    assert transition.storage == {4: StorageSlot(0, 6)}
    assert transition.info == AccountInfo(nonce=1)