"""
Plotting of Effect Trajectories.

Author: N-of-1 G-Formula Study
"""

from __future__ import annotations

from typing import Optional

import matplotlib.pyplot as plt
from matplotlib.axes import Axes

from nof1_gformula.intervals import EffectReport


def plot_effect_report(
    report: EffectReport,
    ax: Optional[Axes] = None,
    drop_anchor: bool = True,
    color: str = 'C0',
    title: Optional[str] = None,
) -> Axes:
    """
    Plot the point effect per period with its shaded Wald interval.

    Parameters
    ----------
    report : EffectReport
        Result of build_effect_report.
    ax : matplotlib Axes or None
        Axes to draw on; a new figure is created when omitted.
    drop_anchor : bool, default True
        Skip period 1, where the effect is zero by construction.
    color : str, default 'C0'
        Line and band colour.
    title : str or None
        Axes title.

    Returns
    -------
    ax : matplotlib Axes
    """
    if ax is None:
        _, ax = plt.subplots(figsize=(10, 5))

    df = report.informative() if drop_anchor else report.to_frame()
    pct = int(round(report.confidence * 100))

    ax.plot(df['index'], df['point'], marker='o', markersize=3,
            color=color, label='Point estimate')
    ax.fill_between(df['index'], df['lower'], df['upper'],
                    color=color, alpha=0.2, label=f'{pct}% CI')
    ax.axhline(0.0, color='gray', linestyle='--', linewidth=1)

    ax.set_xlabel('Period')
    ax.set_ylabel('Effect (always − never treat)')
    ax.set_title(title or f'Individual treatment effect (B = {report.n_replicates})')
    ax.legend(loc='best')
    ax.grid(True, alpha=0.3)
    return ax
