from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Any, List
import pandas as pd

@dataclass
class MetricsStore:
    network_rows: List[Dict[str, Any]] = field(default_factory=list)
    pool_rows: List[Dict[str, Any]] = field(default_factory=list)
    target_rows: List[Dict[str, Any]] = field(default_factory=list)

    def add_network(self, row: Dict[str, Any]) -> None:
        self.network_rows.append(row)

    def add_pool_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.pool_rows.extend(rows)

    def add_target_rows(self, rows: List[Dict[str, Any]]) -> None:
        self.target_rows.extend(rows)

    def network_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.network_rows)

    def pool_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.pool_rows)

    def target_df(self) -> pd.DataFrame:
        return pd.DataFrame(self.target_rows)

    def weights_wide(self) -> pd.DataFrame:
        """Aggregate weight per target, one column per target, indexed by tick."""
        df = self.target_df()
        if df.empty:
            return df
        return df.pivot_table(index="tick", columns="target", values="weight", aggfunc="last").fillna(0.0)
