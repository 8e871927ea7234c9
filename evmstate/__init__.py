"""In-memory EVM account state: caches, bundle states, transitions and reverts."""

__version__ = "0.1.0"

__all__ = [
    "account_status",
    "primitives",
    "reverts",
    "bundle_account",
    "transition",
    "bundle_state",
    "bundle_builder",
    "cache_account",
    "cache",
]