from .hashing import HASH_LENGTH, compute_hash

__all__ = ["HASH_LENGTH", "compute_hash"]
