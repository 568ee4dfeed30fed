"""
Visualization Module for the Tensegrity CPG Digital Twin

Modules:
--------
- time_series_plots: Phase, setpoint and saturation timelines
"""

from .time_series_plots import TimelinePlotter

__all__ = [
    'TimelinePlotter',
]
