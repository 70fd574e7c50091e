"""
Computation-graph utilities.

Walk a Result/RResult graph backwards from an output node and report its
structure (node count, edges, fan-in, operation breakdown).
"""

import numpy as np
from typing import Dict, List, Union
from collections import Counter

from .result import Result, RResult

Node = Union[Result, RResult]


def _collect(root: Node) -> List[Node]:
    """Every node reachable from ``root`` through ``inputs()``, each once, root first."""
    seen = set()
    order = []
    stack = [root]
    while stack:
        node = stack.pop()
        if id(node) in seen:
            continue
        seen.add(id(node))
        order.append(node)
        stack.extend(reversed(list(node.inputs())))
    return order


def get_graph_stats(root: Node) -> Dict:
    """
    Graph statistics (no printing).

    Returns:
        dict with 'nodes', 'edges', 'leaves', 'max_fan_in', 'avg_fan_in',
        'operations' (op_tag -> count)
    """
    nodes = _collect(root)
    fan_ins = [len(node.inputs()) for node in nodes]
    op_counter = Counter(node.op_tag for node in nodes)

    return {
        'nodes': len(nodes),
        'edges': sum(fan_ins),
        'leaves': sum(1 for f in fan_ins if f == 0),
        'max_fan_in': max(fan_ins),
        'avg_fan_in': float(np.mean(fan_ins)),
        'operations': dict(op_counter),
    }


def print_graph_summary(root: Node, detailed: bool = False) -> Dict:
    """
    Print a summary of the graph rooted at ``root``.

    Args:
        root: output node of the graph
        detailed: also list every node (only for graphs of <= 100 nodes)

    Returns:
        the same dictionary as :func:`get_graph_stats`
    """
    stats = get_graph_stats(root)

    print("\n" + "=" * 70)
    print("COMPUTATION GRAPH SUMMARY")
    print("=" * 70)
    print(f"Total nodes:        {stats['nodes']:,}")
    print(f"Total edges:        {stats['edges']:,}")
    print(f"Leaf nodes:         {stats['leaves']:,}")
    print(f"Max fan-in:         {stats['max_fan_in']}")
    print(f"Avg fan-in:         {stats['avg_fan_in']:.2f}")
    print()
    print("Operation breakdown:")
    for op_type, count in Counter(stats['operations']).most_common(10):
        pct = 100.0 * count / stats['nodes']
        print(f"  {op_type:12s}: {count:6,} ({pct:5.1f}%)")

    if detailed and stats['nodes'] <= 100:
        nodes = _collect(root)
        index = {id(n): i for i, n in enumerate(nodes)}
        print()
        for i, node in enumerate(nodes):
            parent_info = ", ".join(f"Node{index[id(p)]}" for p in node.inputs())
            print(f"Node {i:3d}: {node.op_tag:12s} len={len(node.output):<5d} <- [{parent_info}]")

    print("=" * 70 + "\n")
    return stats
