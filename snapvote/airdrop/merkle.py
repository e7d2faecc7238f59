"""
Standard Merkle Tree

Merkle trees compatible with the widely used "standard" JavaScript
format, so roots and proofs built here verify on-chain and vice versa:

  - leaf = keccak256(keccak256(abi.encode(types, value)))
  - leaves sorted by hash, laid out right-to-left at the end of a flat
    array of length 2n-1
  - internal node = keccak256 of the two children in ascending order
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Sequence, Tuple, Union

from eth_abi import encode
from eth_abi.exceptions import EncodingError
from eth_utils import keccak

from ..constants import MERKLE_TREE_FORMAT
from ..crypto.hashing import to_bytes32
from ..exceptions import ValidationError

BytesLike = Union[bytes, str]


class MerkleTreeError(ValidationError):
    """Malformed tree, value or proof."""


def _normalize(leaf_encoding: Sequence[str], value: Sequence[Any]) -> Tuple[Any, ...]:
    """Coerce JSON-friendly values (decimal strings for integers) for eth_abi."""
    if len(value) != len(leaf_encoding):
        raise MerkleTreeError(
            f"Value has {len(value)} fields, encoding expects {len(leaf_encoding)}"
        )
    out = []
    for abi_type, item in zip(leaf_encoding, value):
        if abi_type.startswith(("uint", "int")) and isinstance(item, str):
            try:
                item = int(item, 0)
            except ValueError as exc:
                raise MerkleTreeError(f"Bad {abi_type} value {item!r}") from exc
        out.append(item)
    return tuple(out)


def leaf_hash(leaf_encoding: Sequence[str], value: Sequence[Any]) -> bytes:
    """Double keccak of the ABI encoding, which keeps leaves distinct from nodes."""
    value = _normalize(leaf_encoding, value)
    try:
        encoded = encode(list(leaf_encoding), list(value))
    except EncodingError as exc:
        raise MerkleTreeError(f"Cannot encode leaf {value!r}: {exc}") from exc
    return keccak(keccak(encoded))


def _node(value: BytesLike) -> bytes:
    try:
        return to_bytes32(value)
    except (ValueError, TypeError, OverflowError) as exc:
        raise MerkleTreeError(f"Malformed tree node {value!r}: {exc}") from exc


def hash_pair(a: bytes, b: bytes) -> bytes:
    return keccak(b"".join(sorted((a, b))))


def process_proof(leaf: BytesLike, proof: Sequence[BytesLike]) -> bytes:
    """Fold *proof* into *leaf*, returning the implied root."""
    computed = _node(leaf)
    for sibling in proof:
        computed = hash_pair(computed, _node(sibling))
    return computed


def verify_proof(proof: Sequence[BytesLike], root: BytesLike, leaf: BytesLike) -> bool:
    return process_proof(leaf, proof) == _node(root)


# ── Flat-array tree helpers ───────────────────────────────────────────

def _left_child(i: int) -> int:
    return 2 * i + 1


def _right_child(i: int) -> int:
    return 2 * i + 2


def _parent(i: int) -> int:
    if i <= 0:
        raise MerkleTreeError("Root has no parent")
    return (i - 1) // 2


def _sibling(i: int) -> int:
    if i <= 0:
        raise MerkleTreeError("Root has no siblings")
    return i + 1 if i % 2 else i - 1


def make_merkle_tree(leaves: Sequence[bytes]) -> List[bytes]:
    if not leaves:
        raise MerkleTreeError("Expected non-zero number of leaves")
    tree: List[bytes] = [b""] * (2 * len(leaves) - 1)
    for i, leaf in enumerate(leaves):
        tree[len(tree) - 1 - i] = leaf
    for i in range(len(tree) - 1 - len(leaves), -1, -1):
        tree[i] = hash_pair(tree[_left_child(i)], tree[_right_child(i)])
    return tree


def _tree_proof(tree: Sequence[bytes], index: int) -> List[bytes]:
    proof = []
    while index > 0:
        proof.append(tree[_sibling(index)])
        index = _parent(index)
    return proof


# ══════════════════════════════════════════════════════════════════════
#  STANDARD MERKLE TREE
# ══════════════════════════════════════════════════════════════════════

@dataclass
class _IndexedValue:
    value: Tuple[Any, ...]
    tree_index: int


class StandardMerkleTree:
    """
    Merkle tree over typed tuples.

    >>> tree = StandardMerkleTree.of([(alice, 100), (bob, 50)], ["address", "uint256"])
    >>> proof = tree.get_proof(0)
    >>> tree.verify(0, proof)
    True
    """

    def __init__(
        self,
        tree: List[bytes],
        values: List[_IndexedValue],
        leaf_encoding: Sequence[str],
    ):
        self._tree = tree
        self._values = values
        self.leaf_encoding = list(leaf_encoding)

    @classmethod
    def of(cls, values: Sequence[Sequence[Any]], leaf_encoding: Sequence[str]) -> "StandardMerkleTree":
        normalized = [_normalize(leaf_encoding, v) for v in values]
        hashed = sorted(
            ((leaf_hash(leaf_encoding, v), i) for i, v in enumerate(normalized)),
            key=lambda pair: pair[0],
        )
        tree = make_merkle_tree([h for h, _ in hashed])

        indexed = [_IndexedValue(v, 0) for v in normalized]
        for leaf_index, (_, value_index) in enumerate(hashed):
            indexed[value_index].tree_index = len(tree) - leaf_index - 1
        return cls(tree, indexed, leaf_encoding)

    @classmethod
    def load(cls, data: Dict[str, Any]) -> "StandardMerkleTree":
        if data.get("format") != MERKLE_TREE_FORMAT:
            raise MerkleTreeError(f"Unknown format {data.get('format')!r}")
        encoding = data["leafEncoding"]
        tree = cls(
            [to_bytes32(node) for node in data["tree"]],
            [
                _IndexedValue(_normalize(encoding, entry["value"]), entry["treeIndex"])
                for entry in data["values"]
            ],
            encoding,
        )
        tree.validate()
        return tree

    def dump(self) -> Dict[str, Any]:
        def jsonable(item):
            if isinstance(item, bytes):
                return "0x" + item.hex()
            if isinstance(item, int) and not isinstance(item, bool):
                return str(item)
            return item

        return {
            "format": MERKLE_TREE_FORMAT,
            "leafEncoding": list(self.leaf_encoding),
            "tree": ["0x" + node.hex() for node in self._tree],
            "values": [
                {"value": [jsonable(x) for x in entry.value], "treeIndex": entry.tree_index}
                for entry in self._values
            ],
        }

    # ── Queries ───────────────────────────────────────────────────────

    @property
    def root(self) -> bytes:
        return self._tree[0]

    def __len__(self) -> int:
        return len(self._values)

    def at(self, index: int) -> Tuple[Any, ...]:
        return self._values[index].value

    def entries(self) -> Iterator[Tuple[int, Tuple[Any, ...]]]:
        for i, entry in enumerate(self._values):
            yield i, entry.value

    def leaf_hash(self, value: Sequence[Any]) -> bytes:
        return leaf_hash(self.leaf_encoding, value)

    def leaf_lookup(self, value: Sequence[Any]) -> int:
        target = self.leaf_hash(value)
        for i, entry in enumerate(self._values):
            if self._tree[entry.tree_index] == target:
                return i
        raise MerkleTreeError("Leaf is not in tree")

    def get_proof(self, index_or_value: Union[int, Sequence[Any]]) -> List[bytes]:
        """Sibling path from a leaf (by value index or by value) to the root."""
        if isinstance(index_or_value, int):
            index = index_or_value
        else:
            index = self.leaf_lookup(index_or_value)
        if not 0 <= index < len(self._values):
            raise MerkleTreeError(f"Index {index} out of range")
        tree_index = self._values[index].tree_index
        proof = _tree_proof(self._tree, tree_index)
        if not verify_proof(proof, self.root, self._tree[tree_index]):
            raise MerkleTreeError("Unable to prove value")
        return proof

    def verify(self, index_or_value: Union[int, Sequence[Any]], proof: Sequence[BytesLike]) -> bool:
        value = self.at(index_or_value) if isinstance(index_or_value, int) else index_or_value
        return verify_proof(proof, self.root, self.leaf_hash(value))

    def validate(self) -> None:
        """Check every value hashes into its slot and every node matches its children."""
        for i, entry in enumerate(self._values):
            if self._tree[entry.tree_index] != self.leaf_hash(entry.value):
                raise MerkleTreeError(f"Value {i} does not match its leaf")
        for i in range(len(self._tree)):
            left = _left_child(i)
            if left >= len(self._tree):
                break
            if self._tree[i] != hash_pair(self._tree[left], self._tree[_right_child(i)]):
                raise MerkleTreeError(f"Node {i} does not match its children")

    def __repr__(self) -> str:
        return f"<StandardMerkleTree root=0x{self.root.hex()} leaves={len(self)}>"
