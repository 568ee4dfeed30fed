"""
Gait Performance Analyzer for the Tensegrity Digital Twin

Computes actuation and coordination metrics from simulation telemetry. These
are the quantities evaluation or learning code scores a CPG parameter set
with; the search over parameters itself lives outside this package.

Key Metrics:
-----------
1. Setpoint saturation: share of muscle commands clipped to length bounds (%)
2. Synchrony: Kuramoto order parameter of the oscillator phases
3. Inter-segment phase lag: circular mean of θᵢ - θᵢ₊₁ (traveling wave)
4. Length offset: RMS commanded rest-length offset
5. Tension: RMS and peak cable tension
"""

import numpy as np
import pandas as pd
from typing import Dict, List, Optional, Any, Union
from dataclasses import dataclass, field, asdict
import warnings


@dataclass
class GaitMetrics:
    """
    Container for computed gait metrics.

    Lengths in model length units, tensions in N, angles in rad.
    """
    # Actuation feasibility
    saturation_percentage: float = 0.0  # %
    saturated_samples: int = 0

    # Coordination
    mean_synchrony: float = 0.0
    final_synchrony: float = 0.0
    mean_phase_lag: float = 0.0  # rad, circular mean of θᵢ - θᵢ₊₁

    # Commands and effort
    rms_length_offset: float = 0.0
    peak_length_offset: float = 0.0
    rms_tension: float = 0.0
    peak_tension: float = 0.0

    # Time-domain stats
    total_duration: float = 0.0  # s
    sample_count: int = 0
    n_nodes: int = 0
    n_muscles: int = 0

    # Pass/fail flags
    meets_saturation_requirement: bool = False

    metadata: Dict[str, Any] = field(default_factory=dict)


def _columns(frame: pd.DataFrame, prefix: str) -> List[str]:
    cols = [c for c in frame.columns if c.startswith(prefix)]
    return sorted(cols, key=lambda c: int(c[len(prefix):]))


class GaitAnalyzer:
    """
    Gait metrics from CPG/actuator telemetry.

    Usage:
    ------
    >>> analyzer = GaitAnalyzer(saturation_limit=5.0)
    >>> metrics = analyzer.analyze(runner.log_data)
    >>> print(f"Saturation: {metrics.saturation_percentage:.1f} %")
    """

    def __init__(self, saturation_limit: float = 5.0):
        """
        Parameters
        ----------
        saturation_limit : float
            Maximum acceptable setpoint saturation [%]
        """
        self.saturation_limit = saturation_limit

    def analyze(
        self,
        telemetry: Union[Dict[str, List[float]], pd.DataFrame],
        start_time: float = 0.0,
        end_time: Optional[float] = None
    ) -> GaitMetrics:
        """
        Compute gait metrics from telemetry.

        Parameters
        ----------
        telemetry : Dict[str, List[float]] or pd.DataFrame
            Required key: 'time'.
            Optional keys: 'n_saturated', 'synchrony', 'phase_<i>',
            'offset_<k>', 'target_length_<k>', 'tension_<k>'.
        start_time : float
            Start of analysis window [s]
        end_time : Optional[float]
            End of analysis window [s] (None = use all data)

        Returns
        -------
        GaitMetrics
        """
        frame = pd.DataFrame(telemetry)
        metrics = GaitMetrics()

        if 'time' not in frame:
            raise ValueError("Telemetry must contain 'time' key")
        if frame.empty:
            warnings.warn("Empty telemetry, returning zero metrics")
            return metrics

        if end_time is None:
            end_time = frame['time'].iloc[-1]
        window = frame[(frame['time'] >= start_time) & (frame['time'] <= end_time)]
        if window.empty:
            warnings.warn("Empty time window, returning zero metrics")
            return metrics

        phase_cols = _columns(window, 'phase_')
        offset_cols = _columns(window, 'offset_')
        tension_cols = _columns(window, 'tension_')
        target_cols = _columns(window, 'target_length_')

        metrics.sample_count = len(window)
        metrics.total_duration = float(window['time'].iloc[-1] - window['time'].iloc[0])
        metrics.n_nodes = len(phase_cols)
        metrics.n_muscles = len(target_cols) or len(offset_cols)

        # 1. Saturation
        if 'n_saturated' in window and metrics.n_muscles > 0:
            saturated = window['n_saturated'].to_numpy()
            metrics.saturated_samples = int(saturated.sum())
            metrics.saturation_percentage = 100.0 * saturated.sum() / (len(window) * metrics.n_muscles)

        # 2. Coordination
        if phase_cols:
            phases = window[phase_cols].to_numpy()
            order = np.abs(np.mean(np.exp(1j * phases), axis=1))
            metrics.mean_synchrony = float(np.mean(order))
            metrics.final_synchrony = float(order[-1])
            if len(phase_cols) > 1:
                lags = phases[:, :-1] - phases[:, 1:]
                metrics.mean_phase_lag = float(np.angle(np.mean(np.exp(1j * lags))))
        elif 'synchrony' in window:
            metrics.mean_synchrony = float(window['synchrony'].mean())
            metrics.final_synchrony = float(window['synchrony'].iloc[-1])

        # 3. Commands and effort
        if offset_cols:
            offsets = window[offset_cols].to_numpy()
            metrics.rms_length_offset = float(np.sqrt(np.mean(offsets ** 2)))
            metrics.peak_length_offset = float(np.max(np.abs(offsets)))
        if tension_cols:
            tensions = window[tension_cols].to_numpy()
            metrics.rms_tension = float(np.sqrt(np.mean(tensions ** 2)))
            metrics.peak_tension = float(np.max(tensions))

        metrics.meets_saturation_requirement = metrics.saturation_percentage <= self.saturation_limit
        metrics.metadata['start_time'] = start_time
        metrics.metadata['end_time'] = float(end_time)
        return metrics

    def summary_table(
        self,
        metrics_list: List[GaitMetrics],
        labels: Optional[List[str]] = None
    ) -> pd.DataFrame:
        """
        Tabulate several runs side by side.

        Parameters
        ----------
        metrics_list : List[GaitMetrics]
            Metrics of each run
        labels : List[str], optional
            Row labels (default: run_0, run_1, ...)

        Returns
        -------
        pd.DataFrame
            One row per run, one column per scalar metric
        """
        if labels is None:
            labels = [f"run_{i}" for i in range(len(metrics_list))]
        if len(labels) != len(metrics_list):
            raise ValueError("labels and metrics_list must have the same length")

        rows = []
        for m in metrics_list:
            row = asdict(m)
            row.pop('metadata')
            rows.append(row)
        return pd.DataFrame(rows, index=labels)
