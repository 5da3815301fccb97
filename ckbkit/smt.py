"""Sparse Merkle tree over 256-bit keys with compiled proofs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from .hashing import blake2b_256

_ZERO = bytes(32)
_MERGE_NORMAL = 1
_MERGE_ZEROS = 2

_OP_LEAF = 0x4C
_OP_PROOF = 0x50
_OP_PROOF_ZEROS = 0x51
_OP_MERGE = 0x48
_OP_ZEROS = 0x4F


class SmtError(Exception):
    """Raised for empty key sets and malformed proofs."""


def _h256(data: bytes, what: str) -> bytes:
    value = bytes(data)
    if len(value) != 32:
        raise ValueError(f"{what} must be 32 bytes, got {len(value)}")
    return value


def _to_int(data: bytes) -> int:
    return int.from_bytes(data, "little")


def _to_bytes(value: int) -> bytes:
    return value.to_bytes(32, "little")


def _parent_path(key: int, height: int) -> int:
    shift = height + 1
    return (key >> shift) << shift


def _is_right(key: int, height: int) -> bool:
    return (key >> height) & 1 == 1


def _fork_height(a: int, b: int) -> int:
    diff = a ^ b
    return diff.bit_length() - 1 if diff else 0


@dataclass(frozen=True)
class _Node:
    value: bytes = _ZERO
    base_node: bytes | None = None
    zero_bits: int = 0
    zero_count: int = 0

    @property
    def is_zero(self) -> bool:
        return self.base_node is None and self.value == _ZERO

    def hash(self) -> bytes:
        if self.base_node is None:
            return self.value
        return blake2b_256(
            bytes([_MERGE_ZEROS])
            + self.base_node
            + _to_bytes(self.zero_bits)
            + bytes([self.zero_count])
        )

    def encode(self) -> bytes:
        if self.base_node is None:
            return bytes([_OP_PROOF]) + self.value
        return (
            bytes([_OP_PROOF_ZEROS, self.zero_count])
            + self.base_node
            + _to_bytes(self.zero_bits)
        )


_ZERO_NODE = _Node()


def _merge_with_zero(height: int, node_key: int, node: _Node, set_bit: bool) -> _Node:
    bit = 1 << height if set_bit else 0
    if node.base_node is None:
        base = blake2b_256(bytes([height]) + _to_bytes(node_key) + node.value)
        return _Node(base_node=base, zero_bits=bit, zero_count=1)
    return _Node(
        base_node=node.base_node,
        zero_bits=node.zero_bits | bit,
        zero_count=(node.zero_count + 1) & 0xFF,
    )


def _merge(height: int, node_key: int, lhs: _Node, rhs: _Node) -> _Node:
    if lhs.is_zero and rhs.is_zero:
        return _ZERO_NODE
    if lhs.is_zero:
        return _merge_with_zero(height, node_key, rhs, True)
    if rhs.is_zero:
        return _merge_with_zero(height, node_key, lhs, False)
    digest = blake2b_256(
        bytes([_MERGE_NORMAL, height]) + _to_bytes(node_key) + lhs.hash() + rhs.hash()
    )
    return _Node(value=digest)


def _merge_pair(height: int, key: int, node: _Node, sibling: _Node) -> tuple[int, _Node]:
    parent = _parent_path(key, height)
    if _is_right(key, height):
        return parent, _merge(height, parent, sibling, node)
    return parent, _merge(height, parent, node, sibling)


class SparseMerkleTree:
    """An in-memory sparse Merkle tree of height 256 with 32-byte values."""

    def __init__(self) -> None:
        self._leaves: dict[int, bytes] = {}
        self._branches: dict[tuple[int, int], tuple[_Node, _Node]] = {}
        self._root = _ZERO

    def __len__(self) -> int:
        return len(self._leaves)

    def root(self) -> bytes:
        """The current root hash; all zeros for an empty tree."""
        return self._root

    def get(self, key: bytes) -> bytes:
        """The value stored under key, or 32 zero bytes."""
        return self._leaves.get(_to_int(_h256(key, "key")), _ZERO)

    def update(self, key: bytes, value: bytes) -> bytes:
        """Set key to value (a zero value deletes it) and return the new root."""
        key_int = _to_int(_h256(key, "key"))
        value = _h256(value, "value")
        current = _Node(value=value)
        if current.is_zero:
            self._leaves.pop(key_int, None)
        else:
            self._leaves[key_int] = value

        current_key = key_int
        for height in range(256):
            parent_key = _parent_path(current_key, height)
            branch_key = (height, parent_key)
            branch = self._branches.get(branch_key)
            right = _is_right(current_key, height)
            if branch is not None:
                left_node, right_node = (branch[0], current) if right else (current, branch[1])
            elif right:
                left_node, right_node = _ZERO_NODE, current
            else:
                left_node, right_node = current, _ZERO_NODE
            if left_node.is_zero and right_node.is_zero:
                self._branches.pop(branch_key, None)
            else:
                self._branches[branch_key] = (left_node, right_node)
            current_key = parent_key
            current = _merge(height, parent_key, left_node, right_node)
        self._root = current.hash()
        return self._root

    def _sibling(self, key: int, height: int) -> _Node | None:
        branch = self._branches.get((height, _parent_path(key, height)))
        if branch is None:
            return None
        sibling = branch[0] if _is_right(key, height) else branch[1]
        return None if sibling.is_zero else sibling

    def compiled_proof(self, keys: Iterable[bytes]) -> bytes:
        """Build a compiled Merkle proof covering the given keys."""
        leaf_keys = sorted(_to_int(_h256(key, "key")) for key in keys)
        if not leaf_keys:
            raise SmtError("empty keys")

        proof = bytearray()
        fork_stack: list[int] = []
        for position, leaf_key in enumerate(leaf_keys):
            last = position + 1 == len(leaf_keys)
            fork_height = 255 if last else _fork_height(leaf_key, leaf_keys[position + 1])
            proof.append(_OP_LEAF)
            zero_count = 0
            for height in range(fork_height + 1 if last else fork_height):
                if fork_stack and fork_stack[-1] == height:
                    fork_stack.pop()
                    op = bytes([_OP_MERGE])
                else:
                    sibling = self._sibling(leaf_key, height)
                    if sibling is None:
                        zero_count += 1
                        continue
                    op = sibling.encode()
                if zero_count:
                    proof += bytes([_OP_ZEROS, zero_count % 256])
                    zero_count = 0
                proof += op
            if zero_count:
                proof += bytes([_OP_ZEROS, zero_count % 256])
            fork_stack.append(fork_height)

        if len(fork_stack) != 1:
            raise SmtError("corrupted proof")
        return bytes(proof)


def _take(data: bytes, pos: int, size: int) -> bytes:
    if pos + size > len(data):
        raise SmtError("corrupted proof: truncated data")
    return data[pos : pos + size]


def _compute_root(proof: bytes, leaves: Iterable[tuple[bytes, bytes]]) -> bytes:
    items = sorted(
        ((_to_int(_h256(key, "key")), _h256(value, "value")) for key, value in leaves),
        key=lambda item: item[0],
    )
    data = bytes(proof)
    pos = 0
    leaf_index = 0
    stack: list[tuple[int, int, _Node]] = []

    while pos < len(data):
        code = data[pos]
        pos += 1
        if code == _OP_LEAF:
            if leaf_index >= len(items):
                raise SmtError("corrupted stack: not enough leaves")
            key, value = items[leaf_index]
            stack.append((0, key, _Node(value=value)))
            leaf_index += 1
        elif code in (_OP_PROOF, _OP_PROOF_ZEROS):
            if not stack:
                raise SmtError("corrupted stack: empty")
            if code == _OP_PROOF:
                sibling = _Node(value=_take(data, pos, 32))
                pos += 32
            else:
                chunk = _take(data, pos, 65)
                pos += 65
                sibling = _Node(
                    base_node=chunk[1:33],
                    zero_bits=_to_int(chunk[33:65]),
                    zero_count=chunk[0],
                )
            height, key, node = stack.pop()
            if height > 255:
                raise SmtError("corrupted proof: height overflow")
            parent, merged = _merge_pair(height, key, node, sibling)
            stack.append((height + 1, parent, merged))
        elif code == _OP_MERGE:
            if len(stack) < 2:
                raise SmtError("corrupted stack: nothing to merge")
            height_b, key_b, node_b = stack.pop()
            height_a, key_a, node_a = stack.pop()
            if height_a != height_b or height_a > 255:
                raise SmtError("corrupted proof: mismatched heights")
            if _parent_path(key_a, height_a) != _parent_path(key_b, height_a):
                raise SmtError("corrupted proof: mismatched parents")
            parent, merged = _merge_pair(height_a, key_a, node_a, node_b)
            stack.append((height_a + 1, parent, merged))
        elif code == _OP_ZEROS:
            if not stack:
                raise SmtError("corrupted stack: empty")
            count = _take(data, pos, 1)[0] or 256
            pos += 1
            height, key, node = stack.pop()
            for level in range(height, height + count):
                if level > 255:
                    raise SmtError("corrupted proof: height overflow")
                _, node = _merge_pair(level, key, node, _ZERO_NODE)
            stack.append((height + count, key, node))
        else:
            raise SmtError(f"invalid proof code: {code:#04x}")

    if len(stack) != 1:
        raise SmtError("corrupted stack: unbalanced proof")
    if stack[0][0] != 256:
        raise SmtError("corrupted proof: incomplete path")
    if leaf_index != len(items):
        raise SmtError("corrupted stack: unused leaves")
    return stack[0][2].hash()


def verify_compiled_proof(
    proof: bytes, root: bytes, leaves: Iterable[tuple[bytes, bytes]]
) -> bool:
    """Check that the leaves, with the proof, hash to the given root."""
    return _compute_root(proof, leaves) == _h256(root, "root")