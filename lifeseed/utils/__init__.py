"""Utility functions for lifeseed.

    from lifeseed.utils import hash_chain, isodatetime, uid
    digest = hash_chain.compute_block_hash("0", {"message": "Genesis"}, 1700000000000)
    stamp = isodatetime.from_millis(1700000000000)
    tree_id = uid.generate_uuid()
"""

from . import hash_chain, isodatetime, uid

__all__ = ["hash_chain", "isodatetime", "uid"]
