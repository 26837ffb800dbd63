"""
===============================================================================
GRID DP PROJECT - Trajectory Visualization
===============================================================================
Stem plots of the optimal state trajectory x(k), k = 0..kf, and of the
optimal control sequence u(k), k = 0..kf-1, stacked in one figure.
===============================================================================
"""

import os
from typing import Optional, Sequence

import numpy as np
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt


COLORS = {
    'state': '#2c3e50',
    'control': '#e74c3c',
    'target': '#27ae60',
}


def plot_trajectory(
    x_opt: Sequence[float],
    u_opt: Sequence[float],
    output_path: Optional[str] = None,
    x_target: Optional[float] = None,
    title: str = 'Grid DP Optimal Solution',
):
    """
    Plot the optimal state trajectory and control sequence as stem plots.

    Args:
        x_opt: N+1 realized states
        u_opt: N controls
        output_path: If given, the figure is saved there and closed
        x_target: Optional terminal target drawn as a dashed line
        title: Figure title

    Returns:
        The matplotlib Figure (already closed when saved to disk)
    """
    x_opt = np.asarray(x_opt, dtype=float)
    u_opt = np.asarray(u_opt, dtype=float)
    if x_opt.shape[0] != u_opt.shape[0] + 1:
        raise ValueError(
            f"x_opt must have one more entry than u_opt "
            f"({x_opt.shape[0]} vs {u_opt.shape[0]})"
        )
    kf = u_opt.shape[0]

    fig, (ax_x, ax_u) = plt.subplots(2, 1, figsize=(8, 6), sharex=True)
    fig.suptitle(title)

    markers, stems, base = ax_x.stem(np.arange(kf + 1), x_opt)
    plt.setp(markers, color=COLORS['state'])
    plt.setp(stems, color=COLORS['state'], linewidth=2)
    if x_target is not None:
        ax_x.axhline(x_target, color=COLORS['target'], linestyle='--',
                     linewidth=1, label=f'target = {x_target:g}')
        ax_x.legend(loc='best')
    ax_x.set_title('Optimal State Trajectory')
    ax_x.set_ylabel('State x(k)')
    ax_x.grid(True, alpha=0.3)

    if kf > 0:
        markers, stems, base = ax_u.stem(np.arange(kf), u_opt)
        plt.setp(markers, color=COLORS['control'])
        plt.setp(stems, color=COLORS['control'], linewidth=2)
    ax_u.set_title('Optimal Control Sequence')
    ax_u.set_xlabel('Time step k')
    ax_u.set_ylabel('Control u(k)')
    ax_u.grid(True, alpha=0.3)

    fig.tight_layout()

    if output_path is not None:
        directory = os.path.dirname(output_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        fig.savefig(output_path, dpi=150, bbox_inches='tight',
                    facecolor='white', edgecolor='none')
        plt.close(fig)
    return fig
