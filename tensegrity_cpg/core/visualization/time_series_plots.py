"""
Time-Series Plots for CPG Gait Debugging

This module provides time-series visualizations for diagnosing the CPG
controller: oscillator phase evolution, commanded muscle lengths against
their bounds, and setpoint saturation.

Every plot is meant to answer one debugging question:
- Do the oscillators lock into the intended phase pattern?
- Are the commanded lengths inside the physical bounds?
- When, and how often, do setpoints saturate?
"""

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.gridspec import GridSpec
from typing import Optional, Dict, List, Tuple, Union
import pandas as pd
import warnings


def _indexed_columns(df: pd.DataFrame, prefix: str) -> List[str]:
    cols = [c for c in df.columns if c.startswith(prefix)]
    return sorted(cols, key=lambda c: int(c[len(prefix):]))


class TimelinePlotter:
    """
    Time-series plotter for CPG controller telemetry.

    Usage:
    ------
    >>> plotter = TimelinePlotter()
    >>> fig = plotter.plot_full_suite(runner.log_data)
    >>> plt.savefig('gait_timeline.png', dpi=300)
    >>>
    >>> # Or individual plots
    >>> fig, axes = plotter.plot_phases(telemetry)
    >>> fig, ax = plotter.plot_setpoints(telemetry, bounds=(0.5, 1.5))
    """

    def __init__(
        self,
        figure_size: Tuple[int, int] = (14, 10),
        time_unit: str = 's',  # 's' or 'ms'
    ):
        """
        Parameters
        ----------
        figure_size : tuple
            Default figure size (width, height) in inches
        time_unit : str
            Time axis unit: 's' (seconds) or 'ms' (milliseconds)
        """
        self.figure_size = figure_size
        self.time_unit = time_unit
        self.time_scale = 1000.0 if time_unit == 'ms' else 1.0
        self.time_label = 'Time (ms)' if time_unit == 'ms' else 'Time (s)'

    def plot_phases(
        self,
        telemetry: Union[Dict[str, List[float]], pd.DataFrame],
        time_window: Optional[Tuple[float, float]] = None,
        title: Optional[str] = None,
        ax: Optional[List[plt.Axes]] = None
    ) -> Tuple[plt.Figure, List[plt.Axes]]:
        """
        Plot oscillator phases and the network synchrony.

        Parameters
        ----------
        telemetry : dict or DataFrame
            Telemetry containing 'time', 'phase_<i>' and optionally 'synchrony'
        time_window : tuple, optional
            (start, end) time range [s]
        title : str, optional
            Plot title
        ax : list of 2 plt.Axes, optional
            Existing axes (phases, synchrony)

        Returns
        -------
        fig : plt.Figure
        axes : list of plt.Axes
        """
        df = self._to_dataframe(telemetry, time_window)
        time = df['time'].values * self.time_scale

        if ax is None:
            fig, axes = plt.subplots(2, 1, figsize=self.figure_size, sharex=True)
        else:
            fig = ax[0].figure
            axes = ax

        phase_cols = _indexed_columns(df, 'phase_')
        if not phase_cols:
            warnings.warn("No phase data found, skipping phase panel")
        for col in phase_cols:
            axes[0].plot(time, df[col].values, linewidth=1.2, label=f'Node {col[len("phase_"):]}')
        axes[0].set_ylim(0.0, 2.0 * np.pi)
        axes[0].set_yticks([0.0, np.pi / 2, np.pi, 3 * np.pi / 2, 2 * np.pi])
        axes[0].set_yticklabels(['0', 'π/2', 'π', '3π/2', '2π'])
        axes[0].set_ylabel('Phase (rad)', fontsize=11, fontweight='bold')
        if phase_cols:
            axes[0].legend(loc='upper right', fontsize=9)
        axes[0].grid(True, alpha=0.3)

        if 'synchrony' in df.columns:
            axes[1].plot(time, df['synchrony'].values, 'g-', linewidth=1.5, label='Order parameter')
        axes[1].set_ylim(0.0, 1.05)
        axes[1].set_ylabel('Synchrony', fontsize=11, fontweight='bold')
        axes[1].set_xlabel(self.time_label, fontsize=11, fontweight='bold')
        axes[1].grid(True, alpha=0.3)

        axes[0].set_title(title or 'CPG Phases', fontsize=13, fontweight='bold')
        plt.tight_layout()
        return fig, axes

    def plot_setpoints(
        self,
        telemetry: Union[Dict[str, List[float]], pd.DataFrame],
        bounds: Optional[Tuple[float, float]] = None,
        muscles: Optional[List[int]] = None,
        time_window: Optional[Tuple[float, float]] = None,
        title: Optional[str] = None,
        ax: Optional[plt.Axes] = None
    ) -> Tuple[plt.Figure, plt.Axes]:
        """
        Plot commanded muscle rest lengths against the length bounds.

        Parameters
        ----------
        telemetry : dict or DataFrame
            Telemetry containing 'time' and 'target_length_<k>'
        bounds : tuple, optional
            (min_length, max_length) drawn as limit lines
        muscles : list of int, optional
            Muscle indices to draw (default: all)
        time_window : tuple, optional
            Time range
        title : str, optional
            Plot title
        ax : plt.Axes, optional
            Existing axes

        Returns
        -------
        fig : plt.Figure
        ax : plt.Axes
        """
        df = self._to_dataframe(telemetry, time_window)
        time = df['time'].values * self.time_scale

        if ax is None:
            fig, ax = plt.subplots(figsize=self.figure_size)
        else:
            fig = ax.figure

        cols = _indexed_columns(df, 'target_length_')
        if muscles is not None:
            cols = [c for c in cols if int(c[len('target_length_'):]) in muscles]
        if not cols:
            warnings.warn("No setpoint data found, skipping setpoint plot")
        for col in cols:
            ax.plot(time, df[col].values, linewidth=1.2, alpha=0.8,
                    label=f'Muscle {col[len("target_length_"):]}')

        if bounds is not None:
            ax.axhline(bounds[0], color='red', linestyle='--', linewidth=1.5, label='Length bounds')
            ax.axhline(bounds[1], color='red', linestyle='--', linewidth=1.5)

        ax.set_ylabel('Target Length', fontsize=11, fontweight='bold')
        ax.set_xlabel(self.time_label, fontsize=11, fontweight='bold')
        ax.set_title(title or 'Muscle Length Setpoints', fontsize=13, fontweight='bold')
        if cols:
            ax.legend(loc='upper right', fontsize=8, ncol=2)
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig, ax

    def plot_saturation(
        self,
        telemetry: Union[Dict[str, List[float]], pd.DataFrame],
        time_window: Optional[Tuple[float, float]] = None,
        title: Optional[str] = None,
        ax: Optional[plt.Axes] = None
    ) -> Tuple[plt.Figure, plt.Axes]:
        """
        Plot the number of saturated setpoints per sample.

        Saturated intervals are shaded and the overall saturation share is
        annotated.

        Parameters
        ----------
        telemetry : dict or DataFrame
            Telemetry containing 'time' and 'n_saturated'
        time_window : tuple, optional
            Time range
        title : str, optional
            Plot title
        ax : plt.Axes, optional
            Existing axes

        Returns
        -------
        fig : plt.Figure
        ax : plt.Axes
        """
        df = self._to_dataframe(telemetry, time_window)
        time = df['time'].values * self.time_scale

        if ax is None:
            fig, ax = plt.subplots(figsize=self.figure_size)
        else:
            fig = ax.figure

        if 'n_saturated' not in df.columns:
            warnings.warn("No saturation data found, skipping saturation plot")
            return fig, ax

        n_saturated = df['n_saturated'].values
        ax.step(time, n_saturated, 'r-', where='post', linewidth=1.5, label='Saturated muscles')

        saturated = n_saturated > 0
        if np.any(saturated):
            regions = self._get_contiguous_regions(saturated)
            for start_idx, end_idx in regions:
                ax.axvspan(time[start_idx], time[end_idx - 1], alpha=0.2, color='red')

            n_muscles = len(_indexed_columns(df, 'target_length_'))
            if n_muscles:
                sat_pct = 100.0 * n_saturated.sum() / (len(n_saturated) * n_muscles)
                ax.text(
                    0.98, 0.95, f'Saturation: {sat_pct:.1f}%',
                    transform=ax.transAxes,
                    verticalalignment='top', horizontalalignment='right',
                    bbox=dict(boxstyle='round', facecolor='wheat', alpha=0.8),
                    fontsize=9, fontweight='bold'
                )

        ax.set_ylabel('Saturated Setpoints', fontsize=11, fontweight='bold')
        ax.set_xlabel(self.time_label, fontsize=11, fontweight='bold')
        ax.set_title(title or 'Setpoint Saturation', fontsize=13, fontweight='bold')
        ax.legend(loc='upper left', fontsize=9)
        ax.grid(True, alpha=0.3)

        plt.tight_layout()
        return fig, ax

    def plot_full_suite(
        self,
        telemetry: Union[Dict[str, List[float]], pd.DataFrame],
        bounds: Optional[Tuple[float, float]] = None,
        time_window: Optional[Tuple[float, float]] = None,
        save_path: Optional[str] = None
    ) -> plt.Figure:
        """
        Phases, synchrony, setpoints and saturation in one figure.

        Parameters
        ----------
        telemetry : dict or DataFrame
            Complete telemetry data
        bounds : tuple, optional
            (min_length, max_length) for the setpoint panel
        time_window : tuple, optional
            Time range
        save_path : str, optional
            If provided, save figure to this path

        Returns
        -------
        fig : plt.Figure
        """
        df = self._to_dataframe(telemetry, time_window)

        fig = plt.figure(figsize=(16, 12))
        gs = GridSpec(4, 1, figure=fig, hspace=0.35)

        ax1 = fig.add_subplot(gs[0])
        ax2 = fig.add_subplot(gs[1], sharex=ax1)
        self.plot_phases(df, ax=[ax1, ax2])

        ax3 = fig.add_subplot(gs[2], sharex=ax1)
        self.plot_setpoints(df, bounds=bounds, ax=ax3)

        ax4 = fig.add_subplot(gs[3], sharex=ax1)
        self.plot_saturation(df, ax=ax4)

        fig.suptitle('Tensegrity CPG Gait Timeline', fontsize=16, fontweight='bold', y=0.995)

        if save_path is not None:
            fig.savefig(save_path, dpi=300, bbox_inches='tight')
            print(f"Gait timeline saved to {save_path}")

        return fig

    def _to_dataframe(
        self,
        telemetry: Union[Dict, pd.DataFrame],
        time_window: Optional[Tuple[float, float]]
    ) -> pd.DataFrame:
        """Convert telemetry to DataFrame and apply time window."""
        if isinstance(telemetry, pd.DataFrame):
            df = telemetry.copy()
        else:
            df = pd.DataFrame(telemetry)

        if time_window is not None:
            mask = (df['time'] >= time_window[0]) & (df['time'] <= time_window[1])
            df = df[mask].reset_index(drop=True)

        return df

    def _get_contiguous_regions(self, condition: np.ndarray) -> List[Tuple[int, int]]:
        """
        Find contiguous regions where condition is True.

        Returns list of (start_idx, end_idx) tuples, end exclusive.
        """
        d = np.diff(np.concatenate(([False], condition, [False])).astype(int))
        starts = np.where(d == 1)[0]
        ends = np.where(d == -1)[0]
        return list(zip(starts, ends))
