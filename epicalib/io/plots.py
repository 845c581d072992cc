from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import List, Sequence

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd


def plot_posterior_marginals(particles: np.ndarray, names: List[str], out_dir: str | Path) -> None:
    out_dir = Path(out_dir)
    n = len(names)
    fig, axes = plt.subplots(n, 1, figsize=(6, 2.2 * max(n, 1)), squeeze=False)
    for i, name in enumerate(names):
        ax = axes[i, 0]
        ax.hist(particles[:, i], bins=20, alpha=0.7)
        ax.axvline(np.median(particles[:, i]), color="black", linestyle="--", linewidth=1)
        ax.set_title(name, fontsize=9)
    fig.tight_layout()
    fig.savefig(out_dir / "posterior_marginals.png", dpi=150)
    plt.close(fig)


def plot_fit(
    days: Sequence[date],
    observed: Sequence[int],
    simulated: Sequence[int],
    out_dir: str | Path,
) -> None:
    out_dir = Path(out_dir)
    fig, ax = plt.subplots(figsize=(8, 4))
    ax.bar(pd.to_datetime(list(days)), observed, alpha=0.4, label="observed")
    ax.plot(pd.to_datetime(list(days)), simulated, color="black", label="simulated (posterior median)")
    ax.set_title("Daily New Positives")
    ax.set_xlabel("Date")
    ax.set_ylabel("New Positives")
    ax.legend(loc="upper left", fontsize=8)
    fig.autofmt_xdate()
    fig.tight_layout()
    fig.savefig(out_dir / "fit.png", dpi=150)
    plt.close(fig)
