# evmstate

Account state handling for an Ethereum virtual machine, kept entirely in memory:
the per-block cache of accounts, the transitions that execution produces, and
bundles of changes that can be reverted and flattened into changesets.

## Modules

- `evmstate.primitives`: value types. `AccountInfo` (balance, nonce, code hash,
  code; equality ignores the code), `Bytecode`, `StorageSlot` (previous and
  present value), `Account` (an account as left by execution, with `touched`,
  `selfdestructed` and `created` flags), `PlainAccount`, the `keccak256`
  function and the `KECCAK_EMPTY` hash of empty code.
- `evmstate.account_status`: `AccountStatus`, the lifecycle of an account in
  memory (`LOADED`, `CHANGED`, `IN_MEMORY_CHANGE`, `DESTROYED`, …), with
  `transition`, `not_modified`, `was_destroyed`, `storage_known` and
  `modified_but_not_destroyed`.
- `evmstate.cache_account`: `CacheAccount`, a plain account and its status.
  `change`, `newly_created`, `selfdestruct`, `touch_empty_eip161`,
  `touch_create_pre_eip161`, `increment_balance` and `drain_balance` update it
  and return a `TransitionAccount`.
- `evmstate.cache`: `CacheState`, the accounts of the current block.
  `apply_evm_state` applies execution output and returns the transitions.
  `has_state_clear` switches EIP-161 empty-account clearing on (the default) or off.
- `evmstate.transition`: `TransitionAccount` and `TransitionState`, which
  merges the transitions of several transactions per account.
- `evmstate.bundle_account`: `BundleAccount`, original and present state of an
  account, with `update_and_create_revert` and `revert`. An impossible status
  change raises `InvalidTransitionError`.
- `evmstate.bundle_state`: `BundleState`. It applies a `TransitionState`
  (`apply_transitions_and_create_reverts`, keeping reverts when given
  `BundleRetention.REVERTS`), reverts transitions (`revert_latest`, `revert`),
  extends one bundle with another (`extend`), detaches reverts
  (`take_n_reverts`, `take_all_reverts`) and exports a `StateChangeset` and
  `PlainStateReverts` (`into_plain_state`, `into_plain_state_and_reverts`,
  guided by `OriginalValuesKnown`).
- `evmstate.bundle_builder`: `BundleBuilder`, which assembles a `BundleState`
  piece by piece with chained calls.
- `evmstate.reverts`: `Reverts`, `AccountRevert`, `AccountInfoRevert`,
  `RevertToSlot` and the plain changeset types.

Addresses and hashes are `bytes`; balances, storage slots and values are `int`.

## Installation

```
pip install evmstate
```

## Example

From execution output to a changeset:

```python
from evmstate.bundle_state import BundleRetention, BundleState, OriginalValuesKnown
from evmstate.cache import CacheState
from evmstate.primitives import Account, AccountInfo
from evmstate.transition import TransitionState

address = bytes([0x2A] * 20)

cache = CacheState()
cache.insert_account(address, AccountInfo(balance=5, nonce=1))

transitions = cache.apply_evm_state(
    {address: Account(info=AccountInfo(balance=7, nonce=1), touched=True)}
)

block = TransitionState()
block.add_transitions(transitions)

bundle = BundleState()
bundle.apply_transitions_and_create_reverts(block, BundleRetention.REVERTS)

changeset = bundle.into_plain_state(OriginalValuesKnown.YES)
assert changeset.accounts[0][1].balance == 7
```

Reverting a transition:

```python
from evmstate.account_status import AccountStatus
from evmstate.bundle_state import BundleRetention, BundleState
from evmstate.primitives import AccountInfo
from evmstate.transition import TransitionAccount, TransitionState

address = bytes([0x01] * 20)
transition = TransitionAccount(
    info=AccountInfo(balance=10, nonce=1),
    status=AccountStatus.IN_MEMORY_CHANGE,
    previous_info=None,
    previous_status=AccountStatus.LOADED_NOT_EXISTING,
)

bundle = BundleState()
bundle.apply_transitions_and_create_reverts(
    TransitionState.single(address, transition), BundleRetention.REVERTS
)
bundle.revert_latest()
assert bundle.is_empty()
```

## What it does not do

The package has no database layer. Nothing here loads accounts, code, storage
or block hashes from a backing store, and nothing writes a `StateChangeset` to
one: accounts must be put into a `CacheState` by the caller
(`insert_account`, `insert_account_with_storage`, `insert_not_existing`), and
the changesets it produces are plain values for the caller to persist. It does
not execute transactions either; it takes execution output as `Account` values.

## Running the tests

```
pip install -e ".[test]"
pytest
```