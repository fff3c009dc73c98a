"""
Merkle tree over identity commitments.

Leaves and nodes are SHA-256 with domain separation; the root digest is
mapped into the SNARK field so it can be used as a public proof input.
A level with an odd node count pairs its last node with itself.
"""

from __future__ import annotations

import hashlib
from typing import Dict, List, Sequence, Tuple

from .hashing import field_to_bytes

LEAF_DOMAIN = b"ZK_AIRDROP_MERKLE_LEAF_V1"
NODE_DOMAIN = b"ZK_AIRDROP_MERKLE_NODE_V1"
EMPTY_DOMAIN = b"ZK_AIRDROP_MERKLE_EMPTY_V1"

# (sibling digest, sibling is on the left)
AuthPath = List[Tuple[bytes, bool]]


def hash_leaf(commitment: int) -> bytes:
    return hashlib.sha256(LEAF_DOMAIN + field_to_bytes(commitment)).digest()


def hash_node(left: bytes, right: bytes) -> bytes:
    """Parent digest; children are ordered, never sorted."""
    return hashlib.sha256(NODE_DOMAIN + left + right).digest()


def tree_levels(leaves: Sequence[bytes]) -> List[List[bytes]]:
    """
    Every level of the tree, leaves first and the root level last.

    Raises:
        ValueError: If ``leaves`` is empty.
    """
    if not leaves:
        raise ValueError("Cannot build tree with zero leaves")
    levels = [list(leaves)]
    while len(levels[-1]) > 1:
        below = levels[-1]
        levels.append(
            [
                hash_node(below[i], below[i + 1] if i + 1 < len(below) else below[i])
                for i in range(0, len(below), 2)
            ]
        )
    return levels


def auth_path(levels: List[List[bytes]], index: int) -> AuthPath:
    path: AuthPath = []
    for level in levels[:-1]:
        sibling = index ^ 1
        if sibling < len(level):
            path.append((level[sibling], sibling < index))
        else:
            path.append((level[index], False))
        index //= 2
    return path


def build_tree(leaves: Sequence[bytes]) -> Tuple[bytes, Dict[int, AuthPath]]:
    """Root digest and the authentication path of every leaf."""
    levels = tree_levels(leaves)
    return levels[-1][0], {i: auth_path(levels, i) for i in range(len(leaves))}


def verify_path(leaf_hash: bytes, path: AuthPath, root: bytes) -> bool:
    current = leaf_hash
    for sibling, sibling_is_left in path:
        current = hash_node(sibling, current) if sibling_is_left else hash_node(current, sibling)
    return current == root


def digest_to_field(digest: bytes) -> int:
    return int.from_bytes(digest, "big") >> 8


EMPTY_ROOT = digest_to_field(hashlib.sha256(EMPTY_DOMAIN).digest())


def compute_root(commitments: Sequence[int]) -> int:
    """
    Field-encoded root for an ordered list of commitments.

    An empty group has the fixed ``EMPTY_ROOT``.
    """
    if not commitments:
        return EMPTY_ROOT
    return digest_to_field(tree_levels([hash_leaf(c) for c in commitments])[-1][0])


def membership_path(commitments: Sequence[int], index: int) -> Tuple[bytes, AuthPath]:
    """Return (root_digest, auth_path) for the commitment at ``index``."""
    if not 0 <= index < len(commitments):
        raise IndexError("commitment index out of range")
    levels = tree_levels([hash_leaf(c) for c in commitments])
    return levels[-1][0], auth_path(levels, index)
