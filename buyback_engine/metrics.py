"""Polars-based metrics for simulated treasury runs.

Uses group_by_dynamic and declarative expressions for time-based aggregations.
"""

import json
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import polars as pl

from .state import TreasurySnapshot


def snapshots_to_dataframe(snapshots: List[TreasurySnapshot]) -> pl.DataFrame:
    """Convert a list of TreasurySnapshot objects to a polars DataFrame."""
    if not snapshots:
        return pl.DataFrame()

    data = {
        # Timing
        "timestamp": [s.timestamp for s in snapshots],
        "now": [s.now for s in snapshots],

        # Treasury flows
        "inflow": [s.inflow for s in snapshots],
        "balance_before": [s.balance_before for s in snapshots],
        "balance_after": [s.balance_after for s in snapshots],

        # Schedule decisions
        "executed": [s.executed for s in snapshots],
        "eligible_by_time": [s.eligible_by_time for s in snapshots],
        "eligible_by_balance": [s.eligible_by_balance for s in snapshots],
        "last_execution_ts": [s.last_execution_ts for s in snapshots],

        # Allocation buckets
        "buyback_amount": [s.buyback_amount for s in snapshots],
        "lp_amount": [s.lp_amount for s in snapshots],
        "distribution_amount": [s.distribution_amount for s in snapshots],
    }

    df = pl.DataFrame(data)

    df = df.with_columns([
        (pl.col("timestamp") // 60).alias("hour"),
        (pl.col("timestamp") // (60 * 24)).alias("day"),
        (pl.col("buyback_amount") + pl.col("lp_amount") + pl.col("distribution_amount")).alias("disbursed"),
    ])
    df = df.with_columns(
        pl.when(pl.col("executed"))
        .then(pl.col("balance_before") - pl.col("disbursed"))
        .otherwise(0)
        .alias("retained_on_execution")
    )

    return df


def calculate_key_metrics(snapshots: List[TreasurySnapshot]) -> Dict[str, Any]:
    """Calculate headline metrics for a simulation run."""
    if not snapshots:
        return {}

    df = snapshots_to_dataframe(snapshots)

    aggregates = df.select([
        pl.col("inflow").sum().alias("total_inflow"),
        pl.col("executed").sum().alias("executions"),
        pl.col("buyback_amount").sum().alias("total_buyback"),
        pl.col("lp_amount").sum().alias("total_lp"),
        pl.col("distribution_amount").sum().alias("total_distribution"),
        pl.col("disbursed").sum().alias("total_disbursed"),
        pl.col("retained_on_execution").sum().alias("total_retained_on_execution"),

        # Which threshold opened the executed windows
        (pl.col("executed") & pl.col("eligible_by_time")).sum().alias("time_triggered_executions"),
        (pl.col("executed") & pl.col("eligible_by_balance") & ~pl.col("eligible_by_time"))
        .sum().alias("balance_triggered_executions"),

        pl.col("balance_after").mean().alias("avg_treasury_balance"),
        pl.col("balance_after").max().alias("max_treasury_balance"),
    ]).to_dicts()[0]

    metrics: Dict[str, Any] = dict(aggregates)

    simulation_hours = len(snapshots) / 60
    metrics.update({
        "simulation_hours": simulation_hours,
        "executions_per_hour": metrics["executions"] / max(simulation_hours, 1 / 60),
        "final_treasury_balance": snapshots[-1].balance_after,
        "final_last_execution_ts": snapshots[-1].last_execution_ts,
    })

    if metrics["total_inflow"] > 0:
        metrics["disbursed_share_of_inflow"] = metrics["total_disbursed"] / metrics["total_inflow"]
    else:
        metrics["disbursed_share_of_inflow"] = 0.0

    metrics.update(calculate_execution_intervals(snapshots))
    return metrics


def calculate_execution_intervals(snapshots: List[TreasurySnapshot]) -> Dict[str, float]:
    """Statistics of the time between consecutive executions, in seconds."""
    executed_at = [s.now for s in snapshots if s.executed]
    if len(executed_at) < 2:
        return {"mean_interval_seconds": 0.0, "min_interval_seconds": 0.0, "max_interval_seconds": 0.0}

    gaps = pl.Series("gap", executed_at).diff().drop_nulls()
    return {
        "mean_interval_seconds": float(gaps.mean()),
        "min_interval_seconds": float(gaps.min()),
        "max_interval_seconds": float(gaps.max()),
    }


def calculate_time_aggregates(snapshots: List[TreasurySnapshot], timeframe: str = "1h") -> List[Dict[str, Any]]:
    """Calculate time-based aggregates using polars group_by_dynamic.

    Args:
        snapshots: List of simulation snapshots
        timeframe: Time period for aggregation ("1h", "1d", "1w")

    Returns:
        List of aggregated metrics for each time period
    """
    if not snapshots:
        return []

    df = snapshots_to_dataframe(snapshots)
    df = df.with_columns([
        (pl.datetime(2024, 1, 1) + pl.col("timestamp") * pl.duration(minutes=1)).alias("datetime")
    ])

    agg_exprs = [
        pl.col("inflow").sum().alias("inflow"),
        pl.col("executed").sum().alias("executions"),
        pl.col("buyback_amount").sum().alias("buyback_amount"),
        pl.col("lp_amount").sum().alias("lp_amount"),
        pl.col("distribution_amount").sum().alias("distribution_amount"),
        pl.col("disbursed").sum().alias("disbursed"),
        pl.col("balance_after").mean().alias("avg_treasury_balance"),
        pl.col("balance_after").last().alias("final_treasury_balance"),
    ]

    result_df = (df
                 .sort("datetime")
                 .group_by_dynamic("datetime", every=timeframe, closed="left")
                 .agg(agg_exprs)
                 .sort("datetime"))

    return result_df.to_dicts()


def calculate_hourly_aggregates(snapshots: List[TreasurySnapshot]) -> List[Dict[str, Any]]:
    return calculate_time_aggregates(snapshots, "1h")


def calculate_daily_aggregates(snapshots: List[TreasurySnapshot]) -> List[Dict[str, Any]]:
    return calculate_time_aggregates(snapshots, "1d")


def export_metrics_to_file(snapshots: List[TreasurySnapshot], file_path: Optional[str] = None) -> str:
    """Export summary metrics and aggregates to a JSON file; return its path."""
    metrics_data = {
        "summary": calculate_key_metrics(snapshots),
        "aggregates": {
            "hourly": calculate_hourly_aggregates(snapshots),
            "daily": calculate_daily_aggregates(snapshots),
        },
    }

    if not file_path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        file_path = os.path.join("experiments", "outputs", "data", f"engine_metrics_{timestamp}.json")

    directory = os.path.dirname(file_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(file_path, "w", encoding="utf-8") as handle:
        json.dump(metrics_data, handle, indent=2, default=str)
    return file_path
