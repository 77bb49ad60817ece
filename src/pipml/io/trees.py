"""
Phylogenetic tree parsing, serialisation and rearrangement.
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# Lower bound for branch lengths; optimisation works on log(branch length).
MIN_BRANCH_LENGTH = 1e-6
DEFAULT_BRANCH_LENGTH = 0.1


@dataclass(eq=False)
class TreeNode:
    """
    Phylogenetic tree node.

    Attributes
    ----------
    id : int
        Node identifier
    name : Optional[str]
        Node name (for leaves)
    parent : Optional[TreeNode]
        Parent node
    children : list[TreeNode]
        Child nodes
    branch_length : Optional[float]
        Branch length to parent (None when the Newick string had none)
    """

    id: int
    name: Optional[str] = None
    parent: Optional["TreeNode"] = field(default=None, repr=False)
    children: list["TreeNode"] = field(default_factory=list, repr=False)
    branch_length: Optional[float] = None

    @property
    def is_leaf(self) -> bool:
        """Check if node is a leaf."""
        return len(self.children) == 0

    @property
    def is_root(self) -> bool:
        """Check if node is the root."""
        return self.parent is None


@dataclass(eq=False)
class Tree:
    """
    Rooted phylogenetic tree.

    Attributes
    ----------
    root : TreeNode
        Root node of the tree
    n_nodes : int
        Total number of nodes
    n_leaves : int
        Number of leaf nodes
    leaf_names : list[str]
        Names of leaf nodes
    """

    root: TreeNode
    n_nodes: int
    n_leaves: int
    leaf_names: list[str]

    @classmethod
    def from_root(cls, root: TreeNode) -> "Tree":
        """Build a tree around ``root``, counting nodes and leaves."""
        tree = cls(root=root, n_nodes=0, n_leaves=0, leaf_names=[])
        nodes = tree.postorder()
        tree.n_nodes = len(nodes)
        tree.leaf_names = [
            node.name if node.name else str(node.id) for node in nodes if node.is_leaf
        ]
        tree.n_leaves = len(tree.leaf_names)
        return tree

    @classmethod
    def from_file(cls, filepath: Path | str) -> "Tree":
        """Read the first tree of a Newick file."""
        with open(filepath, 'r') as f:
            return cls.from_newick(f.read())

    @classmethod
    def from_newick(cls, newick_string: str) -> "Tree":
        """
        Parse Newick format tree string.

        Parameters
        ----------
        newick_string : str
            Newick format tree

        Returns
        -------
        Tree
            Parsed tree

        Raises
        ------
        ValueError
            If the string is not a valid Newick tree
        """
        # Remove [...] comments and surrounding whitespace
        newick = re.sub(r'\[.*?\]', '', newick_string, flags=re.DOTALL).strip()

        if ';' not in newick:
            raise ValueError("Invalid Newick format: missing semicolon")

        tree_line = newick[:newick.index(';')]
        tree_line = tree_line.replace('\n', '').replace('\t', '').replace('\r', '')
        if not tree_line.strip():
            raise ValueError("Invalid Newick format: no tree found")

        node_id_counter = [0]

        def skip_whitespace(s: str, pos: int) -> int:
            """Skip whitespace characters."""
            while pos < len(s) and s[pos] in ' \t\n\r':
                pos += 1
            return pos

        def parse_node(s: str, start: int, parent: Optional[TreeNode] = None) -> tuple[TreeNode, int]:
            """Parse a node from position start in string s."""
            node = TreeNode(id=node_id_counter[0])
            node_id_counter[0] += 1
            node.parent = parent
            pos = skip_whitespace(s, start)

            # Internal node: parse children
            if pos < len(s) and s[pos] == '(':
                pos = skip_whitespace(s, pos + 1)
                while True:
                    child, pos = parse_node(s, pos, node)
                    node.children.append(child)
                    pos = skip_whitespace(s, pos)

                    if pos < len(s) and s[pos] == ',':
                        pos = skip_whitespace(s, pos + 1)
                        continue
                    elif pos < len(s) and s[pos] == ')':
                        pos = skip_whitespace(s, pos + 1)
                        break
                    else:
                        raise ValueError(f"Expected ',' or ')' at position {pos}")

            # Node name (leaves) or support label (internal nodes)
            name_start = pos
            while pos < len(s) and s[pos] not in ',:(); \t\n\r':
                pos += 1
            if pos > name_start:
                node.name = s[name_start:pos].strip("'\"")

            pos = skip_whitespace(s, pos)

            # Branch length (e.g., :0.123 or : 0.123)
            if pos < len(s) and s[pos] == ':':
                pos = skip_whitespace(s, pos + 1)
                length_start = pos
                while pos < len(s) and s[pos] not in ',(); \t\n\r':
                    pos += 1
                try:
                    node.branch_length = float(s[length_start:pos])
                except ValueError:
                    raise ValueError(f"Invalid branch length: {s[length_start:pos]}")
                if node.branch_length < 0:
                    raise ValueError(f"Negative branch length: {node.branch_length}")

            if node.is_leaf and not node.name:
                raise ValueError(f"Unnamed leaf at position {name_start}")

            return node, pos

        root, pos = parse_node(tree_line, 0, None)
        if skip_whitespace(tree_line, pos) != len(tree_line):
            raise ValueError(f"Unexpected text after tree at position {pos}")

        tree = cls.from_root(root)
        if len(set(tree.leaf_names)) != tree.n_leaves:
            duplicates = sorted({n for n in tree.leaf_names if tree.leaf_names.count(n) > 1})
            raise ValueError(f"Duplicate leaf names: {duplicates}")
        return tree

    def postorder(self) -> list[TreeNode]:
        """
        Return nodes in post-order traversal (leaves to root).

        Returns
        -------
        list[TreeNode]
            Nodes in post-order
        """
        result = []
        stack = [(self.root, False)]
        while stack:
            node, visited = stack.pop()
            if visited:
                result.append(node)
            else:
                stack.append((node, True))
                for child in reversed(node.children):
                    stack.append((child, False))
        return result

    def preorder(self) -> list[TreeNode]:
        """Return nodes in pre-order traversal (root to leaves)."""
        result = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(node.children))
        return result

    def node_map(self) -> dict[int, TreeNode]:
        """Mapping from node id to node."""
        return {node.id: node for node in self.preorder()}

    def leaves(self) -> list[TreeNode]:
        return [node for node in self.preorder() if node.is_leaf]

    def get_branches(self) -> list[tuple[TreeNode, TreeNode]]:
        """
        Get all branches as (parent, child) pairs.

        Returns
        -------
        list[tuple[TreeNode, TreeNode]]
            List of (parent, child) tuples for each branch
        """
        return [(node.parent, node) for node in self.preorder() if node.parent is not None]

    def branch_lengths(self) -> list[float]:
        return [child.branch_length or 0.0 for _, child in self.get_branches()]

    def total_length(self) -> float:
        """Sum of all branch lengths."""
        return float(sum(self.branch_lengths()))

    def is_binary(self) -> bool:
        return all(len(node.children) in (0, 2) for node in self.preorder())

    def copy(self) -> "Tree":
        """Deep copy preserving node ids and child order."""
        def clone(node: TreeNode, parent: Optional[TreeNode]) -> TreeNode:
            new = TreeNode(
                id=node.id, name=node.name, parent=parent, branch_length=node.branch_length
            )
            new.children = [clone(child, new) for child in node.children]
            return new

        return Tree(
            root=clone(self.root, None),
            n_nodes=self.n_nodes,
            n_leaves=self.n_leaves,
            leaf_names=list(self.leaf_names),
        )

    def standardise(
        self,
        default_length: float = DEFAULT_BRANCH_LENGTH,
        min_length: float = MIN_BRANCH_LENGTH,
    ) -> "Tree":
        """
        Return a rooted binary copy ready for likelihood calculation.

        Single-child nodes are collapsed into their child, polytomies are
        resolved into a ladder of new internal nodes with branch length
        ``min_length``, missing lengths become ``default_length``, all
        lengths are clamped to at least ``min_length``, and nodes are
        renumbered 0..n-1 in pre-order. Internal node labels are dropped.
        """
        tree = self.copy()

        # Collapse unary nodes (keep a unary root's child as the new root)
        for node in tree.postorder():
            if len(node.children) != 1:
                continue
            child = node.children[0]
            if node.is_root:
                child.parent = None
                tree.root = child
            else:
                parent = node.parent
                parent.children[parent.children.index(node)] = child
                child.parent = parent
                child.branch_length = (child.branch_length or 0.0) + (node.branch_length or 0.0)

        # Resolve polytomies: (a, b, c, d) -> (((a, b), c), d)
        for node in tree.postorder():
            while len(node.children) > 2:
                first, second = node.children[0], node.children[1]
                joined = TreeNode(id=-1, parent=node, branch_length=min_length)
                joined.children = [first, second]
                first.parent = joined
                second.parent = joined
                node.children = [joined] + node.children[2:]

        for i, node in enumerate(tree.preorder()):
            node.id = i
            if node.is_root:
                node.branch_length = 0.0
            else:
                if node.branch_length is None:
                    node.branch_length = default_length
                node.branch_length = max(node.branch_length, min_length)
            if not node.is_leaf:
                node.name = None

        return Tree.from_root(tree.root)

    def with_branch_length(self, node_id: int, length: float) -> "Tree":
        """Copy of the tree with one branch length replaced."""
        tree = self.copy()
        tree.node_map()[node_id].branch_length = length
        return tree

    def subtree_ids(self, node_id: int) -> set[int]:
        """Ids of ``node_id`` and all its descendants."""
        start = self.node_map()[node_id]
        ids = set()
        stack = [start]
        while stack:
            node = stack.pop()
            ids.add(node.id)
            stack.extend(node.children)
        return ids

    def spr_candidates(self, prune_id: int) -> list[int]:
        """
        Regraft targets for pruning the subtree below ``prune_id``.

        A target is a node whose parent branch receives the pruned subtree.
        Targets exclude the pruned subtree itself, its parent and sibling
        (which would rebuild the same tree) and the root.
        """
        nodes = self.node_map()
        pruned = nodes[prune_id]
        if pruned.is_root:
            return []
        parent = pruned.parent
        excluded = self.subtree_ids(prune_id) | {parent.id, self.root.id}
        excluded |= {child.id for child in parent.children}
        return sorted(node_id for node_id in nodes if node_id not in excluded)

    def spr(self, prune_id: int, regraft_id: int) -> "Tree":
        """
        Subtree prune and regraft.

        The subtree below ``prune_id`` is cut together with its parent node,
        the sibling takes the parent's place, and the parent node is
        reinserted halfway along the branch above ``regraft_id``. Node ids are
        preserved, so node-indexed data stays valid.

        Raises
        ------
        ValueError
            If ``regraft_id`` is not a valid target for ``prune_id``
        """
        if regraft_id not in self.spr_candidates(prune_id):
            raise ValueError(f"Invalid SPR move: prune {prune_id}, regraft {regraft_id}")

        tree = self.copy()
        nodes = tree.node_map()
        pruned = nodes[prune_id]
        target = nodes[regraft_id]
        joint = pruned.parent
        sibling = next(child for child in joint.children if child is not pruned)
        grandparent = joint.parent

        # Detach the joint node, the sibling takes its place
        if grandparent is None:
            tree.root = sibling
            sibling.parent = None
            sibling.branch_length = 0.0
        else:
            grandparent.children[grandparent.children.index(joint)] = sibling
            sibling.parent = grandparent
            sibling.branch_length += joint.branch_length

        # Reinsert the joint node above the target
        above = target.parent
        half = max(target.branch_length / 2.0, MIN_BRANCH_LENGTH)
        above.children[above.children.index(target)] = joint
        joint.parent = above
        joint.children = [target, pruned]
        target.parent = joint
        joint.branch_length = half
        target.branch_length = half

        return tree

    def to_newick(self, precision: int = 6) -> str:
        """
        Serialise the tree in Newick format with branch lengths.

        Parameters
        ----------
        precision : int
            Number of decimals for branch lengths

        Returns
        -------
        str
            Newick string terminated by ';'
        """
        def render(node: TreeNode) -> str:
            if node.is_leaf:
                text = node.name or str(node.id)
            else:
                text = "(" + ",".join(render(child) for child in node.children) + ")"
                if node.name:
                    text += node.name
            if node.parent is not None and node.branch_length is not None:
                text += f":{node.branch_length:.{precision}f}"
            return text

        return render(self.root) + ";"

    def __repr__(self) -> str:
        return f"Tree(n_leaves={self.n_leaves}, n_nodes={self.n_nodes})"
