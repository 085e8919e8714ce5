"""
Built-in diagnostic rules.

Importing this package registers every rule with the global registry.
Registration order is evaluation order.
"""

from planscope.analyzer.rules.base import Rule, RuleConfig
from planscope.analyzer.rules.large_scan import LargeScan, LargeScanConfig
from planscope.analyzer.rules.large_clustered_scan import (
    LargeClusteredScan,
    LargeClusteredScanConfig,
)
from planscope.analyzer.rules.hot_lookup import HotLookup, HotLookupConfig
from planscope.analyzer.rules.expensive_sort import ExpensiveSort, ExpensiveSortConfig
from planscope.analyzer.rules.large_hash_join import LargeHashJoin, LargeHashJoinConfig
from planscope.analyzer.rules.dominant_cost import DominantCost, DominantCostConfig
from planscope.analyzer.rules.estimate_mismatch import (
    EstimateMismatch,
    EstimateMismatchConfig,
)

__all__ = [
    "Rule",
    "RuleConfig",
    "LargeScan",
    "LargeScanConfig",
    "LargeClusteredScan",
    "LargeClusteredScanConfig",
    "HotLookup",
    "HotLookupConfig",
    "ExpensiveSort",
    "ExpensiveSortConfig",
    "LargeHashJoin",
    "LargeHashJoinConfig",
    "DominantCost",
    "DominantCostConfig",
    "EstimateMismatch",
    "EstimateMismatchConfig",
]
