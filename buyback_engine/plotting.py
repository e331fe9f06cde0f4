"""Visualization and reporting for simulated treasury runs with seaborn styling."""

import logging
import os
from datetime import datetime
from typing import Optional

import pandas as pd

from .metrics import calculate_key_metrics
from .state import SimulationResults

logger = logging.getLogger(__name__)


def _results_frame(results: SimulationResults) -> pd.DataFrame:
    rows = []
    for s in results.snapshots:
        rows.append({
            "hours": s.timestamp / 60,
            "balance_before": s.balance_before,
            "balance_after": s.balance_after,
            "executed": s.executed,
            "buyback_amount": s.buyback_amount,
            "lp_amount": s.lp_amount,
            "distribution_amount": s.distribution_amount,
        })
    df = pd.DataFrame(rows)
    for column in ("buyback_amount", "lp_amount", "distribution_amount"):
        df[f"{column}_cumulative"] = df[column].cumsum()
    return df


def create_summary_plots(results: SimulationResults, save_path: Optional[str] = None) -> Optional[str]:
    """
    Create summary plots of a simulation run.

    Args:
        results: Simulation results to plot
        save_path: Where to save the PNG (defaults to experiments/outputs/plots/)

    Returns:
        Path of the written figure, or None when there is nothing to plot
    """
    import matplotlib

    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    import seaborn as sns

    if not results.snapshots:
        logger.info("No data to plot")
        return None

    sns.set_style("whitegrid")
    sns.set_palette("husl")

    df = _results_frame(results)

    fig, axes = plt.subplots(1, 3, figsize=(18, 5))
    fig.suptitle("Buyback Engine Simulation", fontsize=16, y=1.02)

    # Plot 1: Treasury balance with execution markers
    sns.lineplot(data=df, x="hours", y="balance_after", linewidth=2, ax=axes[0], label="Treasury")
    executed = df[df["executed"]]
    if len(executed) > 0:
        axes[0].scatter(executed["hours"], executed["balance_before"], color="crimson", s=12, label="Execution")
    axes[0].set_xlabel("Hours")
    axes[0].set_ylabel("Lamports")
    axes[0].set_title("Treasury Balance")
    axes[0].legend()

    # Plot 2: Cumulative routing per bucket (stacked)
    buyback = df["buyback_amount_cumulative"]
    lp = buyback + df["lp_amount_cumulative"]
    distribution = lp + df["distribution_amount_cumulative"]
    palette = sns.color_palette()
    axes[1].fill_between(df["hours"], 0, buyback, alpha=0.7, label="Buyback", color=palette[0])
    axes[1].fill_between(df["hours"], buyback, lp, alpha=0.7, label="Liquidity", color=palette[1])
    axes[1].fill_between(df["hours"], lp, distribution, alpha=0.7, label="Distribution", color=palette[2])
    axes[1].set_xlabel("Hours")
    axes[1].set_ylabel("Lamports")
    axes[1].set_title("Cumulative Routing (Stacked)")
    axes[1].legend()

    # Plot 3: Executions per hour
    hourly = df.groupby(df["hours"].astype(int))["executed"].sum().reset_index()
    sns.barplot(data=hourly, x="hours", y="executed", color="crimson", alpha=0.7, ax=axes[2])
    axes[2].set_xlabel("Hour")
    axes[2].set_ylabel("Executions")
    axes[2].set_title(f"Executions ({int(df['executed'].sum())} total)")

    plt.tight_layout()

    if not save_path:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        save_path = os.path.join("experiments", "outputs", "plots", f"engine_summary_{timestamp}.png")
    directory = os.path.dirname(save_path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    plt.savefig(save_path, dpi=150, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    logger.info("Plots saved to %s", save_path)
    return save_path


def generate_summary_report(results: SimulationResults, file_path: Optional[str] = None) -> str:
    """Generate a markdown summary report; write it to ``file_path`` if given."""
    metrics = calculate_key_metrics(results.snapshots)
    config = results.config

    report = f"""# Buyback Engine Simulation Report

## Configuration
- **Minimum Interval**: {config.min_interval_seconds} s
- **Minimum Accumulated**: {config.min_accumulated_lamports:,} lamports
- **Routing**: buyback {config.buyback_bps} bps / lp {config.lp_bps} bps / distribution {config.distribution_bps} bps

## Activity
- **Duration**: {metrics.get('simulation_hours', 0):.1f} hours
- **Executions**: {metrics.get('executions', 0)} ({metrics.get('executions_per_hour', 0):.2f} per hour)
- **Time-triggered**: {metrics.get('time_triggered_executions', 0)}
- **Balance-triggered**: {metrics.get('balance_triggered_executions', 0)}
- **Mean Interval**: {metrics.get('mean_interval_seconds', 0):,.0f} s

## Flows
- **Total Inflow**: {metrics.get('total_inflow', 0):,} lamports
- **Buyback**: {metrics.get('total_buyback', 0):,} lamports
- **Liquidity**: {metrics.get('total_lp', 0):,} lamports
- **Distribution**: {metrics.get('total_distribution', 0):,} lamports
- **Retained on Execution**: {metrics.get('total_retained_on_execution', 0):,} lamports
- **Final Treasury Balance**: {metrics.get('final_treasury_balance', 0):,} lamports
"""

    if file_path:
        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as handle:
            handle.write(report)
        logger.info("Report saved to %s", file_path)

    return report
