"""Consolidation services.

Leaf-first: inventory -> lineage -> planning -> machines -> merging,
composed by the orchestrator.
"""

from .inventory import Inventory, build_inventory
from .lineage import Grouping, group_by_root, resolve_root
from .machines import MachineStateController
from .merging import MergeExecutor
from .orchestrator import RunOrchestrator
from .planning import plan_merges


__all__ = [
    "Grouping",
    "Inventory",
    "MachineStateController",
    "MergeExecutor",
    "RunOrchestrator",
    "build_inventory",
    "group_by_root",
    "plan_merges",
    "resolve_root",
]
