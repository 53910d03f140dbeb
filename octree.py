"""
Octree color quantization.

Pixels are routed through a tree that splits RGB space one bit per channel at
a time. Leaves accumulate channel sums and pixel counts; reduction folds the
deepest leaf groups into their parents until the palette is small enough.
"""

import weakref
from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

import numpy as np

from color_space import Color, ColorCount


# =============================================================================
# Constants
# =============================================================================

LEAF_DEPTH = 7  # Nodes created at this depth are always leaves
CHILDREN_PER_NODE = 8


def child_index(r: int, g: int, b: int, level: int) -> int:
    """3-bit child slot for a color at `level`, from bit (7 - level) of each channel."""
    shift = 7 - level
    return (((r >> shift) & 1) << 2) | (((g >> shift) & 1) << 1) | ((b >> shift) & 1)


# =============================================================================
# Nodes
# =============================================================================

@dataclass(eq=False)
class ColorNode:
    """One cell of the octree: internal (children) or leaf (sums and count)."""
    depth: int
    is_leaf: bool = False
    parent: Optional[weakref.ref] = field(default=None, repr=False)
    children: Optional[list] = field(default=None, repr=False)
    r: int = 0
    g: int = 0
    b: int = 0
    pixel_count: int = 0

    def __post_init__(self):
        if not self.is_leaf and self.children is None:
            self.children = [None] * CHILDREN_PER_NODE

    def add(self, r: int, g: int, b: int, count: int = 1) -> None:
        """Accumulate `count` pixels of color (r, g, b)."""
        self.r += r * count
        self.g += g * count
        self.b += b * count
        self.pixel_count += count

    def is_reducible(self) -> bool:
        """True for an internal node with at least one child, all of them leaves."""
        if self.is_leaf:
            return False
        present = [child for child in self.children if child is not None]
        return bool(present) and all(child.is_leaf for child in present)

    def fold(self) -> int:
        """
        Merge every child's statistics into this node and turn it into a leaf.

        Returns:
            Number of children folded in.
        """
        folded = 0
        for child in self.children:
            if child is None:
                continue
            self.r += child.r
            self.g += child.g
            self.b += child.b
            self.pixel_count += child.pixel_count
            folded += 1

        self.children = None
        self.is_leaf = True
        return folded

    def average(self) -> Color:
        # Floor division per channel
        return Color(
            self.r // self.pixel_count,
            self.g // self.pixel_count,
            self.b // self.pixel_count,
        )

    def iter_leaves(self) -> Iterator['ColorNode']:
        """Depth-first, children in slot order 0..7."""
        if self.is_leaf:
            yield self
            return
        for child in self.children:
            if child is not None:
                yield from child.iter_leaves()


# =============================================================================
# Tree
# =============================================================================

class OcTree:
    """
    Octree over 24-bit RGB space.

    Attributes:
        root: Root node, internal until the whole tree is folded into it
        leaf_count: Number of leaves currently reachable from the root
        pixel_count: Number of pixels inserted so far
        to_reduce: Per depth 0..6, weak references to nodes whose children
            are all leaves, in the order they qualified
    """

    def __init__(self):
        self.root = ColorNode(depth=0)
        self.leaf_count = 0
        self.pixel_count = 0
        self.to_reduce = [deque() for _ in range(LEAF_DEPTH)]

    def _register(self, node: ColorNode) -> None:
        self.to_reduce[node.depth].append(weakref.ref(node))

    def _create_node(self, parent: ColorNode, depth: int) -> ColorNode:
        node = ColorNode(
            depth=depth,
            is_leaf=depth == LEAF_DEPTH,
            parent=weakref.ref(parent),
        )
        if node.is_leaf:
            self.leaf_count += 1
        elif depth == LEAF_DEPTH - 1:
            # Only leaves can ever hang below this depth
            self._register(node)
        return node

    # -------------------------------------------------------------------------
    # Insertion
    # -------------------------------------------------------------------------

    def insert(self, color) -> None:
        """Add one pixel, given as a Color or an (r, g, b) triple."""
        if isinstance(color, Color):
            r, g, b = color.as_tuple()
        else:
            r, g, b = (int(channel) for channel in color)
        self._insert_rgb(r, g, b)

    def insert_many(self, pixels: Iterable) -> None:
        """Add pixels in order; accepts an (N, 3) array or any iterable of triples."""
        if isinstance(pixels, np.ndarray):
            self._insert_array(pixels)
            return

        insert_rgb = self._insert_rgb
        for pixel in pixels:
            if isinstance(pixel, Color):
                insert_rgb(*pixel.as_tuple())
            else:
                r, g, b = pixel
                insert_rgb(int(r), int(g), int(b))

    def _insert_array(self, pixels: np.ndarray) -> None:
        """
        Insert each distinct color once, weighted by its pixel count.

        Distinct colors go in order of first appearance, so nodes are created
        and registered in the same order as pixel-by-pixel insertion.
        """
        flat = pixels.reshape(-1, 3).astype(np.uint32)
        keys = (flat[:, 0] << 16) | (flat[:, 1] << 8) | flat[:, 2]
        unique_keys, first_index, counts = np.unique(keys, return_index=True, return_counts=True)
        order = np.argsort(first_index, kind='stable')

        # Plain ints: numpy scalars would overflow in the sums
        insert_rgb = self._insert_rgb
        for key, count in zip(unique_keys[order].tolist(), counts[order].tolist()):
            insert_rgb(key >> 16, (key >> 8) & 0xFF, key & 0xFF, count)

    def _insert_rgb(self, r: int, g: int, b: int, count: int = 1) -> None:
        node = self.root
        level = 0
        while not node.is_leaf:
            index = child_index(r, g, b, level)
            child = node.children[index]
            if child is None:
                child = self._create_node(node, level + 1)
                node.children[index] = child
            node = child
            level += 1

        node.add(r, g, b, count)
        self.pixel_count += count

    # -------------------------------------------------------------------------
    # Reduction
    # -------------------------------------------------------------------------

    def reduce_steps(self, target_leaf_count: int) -> Iterator[tuple]:
        """
        Fold candidates deepest level first until at most `target_leaf_count`
        leaves remain or nothing is left to fold.

        Returns:
            Iterator of (children_folded, leaf_count_after), one per fold

        Raises:
            ValueError: Immediately, if `target_leaf_count` is below 1
        """
        if target_leaf_count < 1:
            raise ValueError(f"Reduction target must be at least 1, got {target_leaf_count}")
        return self._fold_candidates(target_leaf_count)

    def _fold_candidates(self, target_leaf_count: int) -> Iterator[tuple]:
        for level in range(LEAF_DEPTH - 1, -1, -1):
            queue = self.to_reduce[level]
            while queue and self.leaf_count > target_leaf_count:
                node = queue.popleft()()
                if node is None or not node.is_reducible():
                    continue

                folded = node.fold()
                self.leaf_count -= folded - 1

                # The parent qualifies once its last internal child is folded
                parent = node.parent() if node.parent is not None else None
                if parent is not None and parent.is_reducible():
                    self._register(parent)

                yield folded, self.leaf_count

            if self.leaf_count <= target_leaf_count:
                return

    def reduce(self, target_leaf_count: int) -> int:
        """
        Reduce the tree to at most `target_leaf_count` leaves.

        Returns:
            Number of merges, i.e. folds of nodes with two or more children.
            Folding a single-child node leaves `leaf_count` unchanged and is
            not counted.
        """
        merges = 0
        for folded, _ in self.reduce_steps(target_leaf_count):
            if folded > 1:
                merges += 1
        return merges

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    def leaves(self) -> list:
        return list(self.root.iter_leaves())

    def extract(self) -> list[ColorCount]:
        """
        Average color and pixel count of every leaf, largest count first.

        Equal counts keep depth-first order.
        """
        palette = []
        total = 0
        for leaf in self.root.iter_leaves():
            palette.append(ColorCount(color=leaf.average(), count=leaf.pixel_count))
            total += leaf.pixel_count

        if len(palette) != self.leaf_count or total != self.pixel_count:
            raise RuntimeError(
                f"Octree bookkeeping mismatch: {len(palette)} leaves holding {total} pixels, "
                f"expected {self.leaf_count} leaves holding {self.pixel_count} pixels"
            )

        palette.sort(key=lambda entry: entry.count, reverse=True)
        return palette
