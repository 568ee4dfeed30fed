#!/usr/bin/env python3
"""
Command-line runner for the Tensegrity CPG simulation.

Builds a SimulationConfig from the command line, runs the host simulation
loop with a chain-coupled traveling-wave gait and prints a summary.

Usage:
    python -m tensegrity_cpg.runner --segments 4 --duration 10 --plot
"""

import argparse
import sys

import numpy as np

from tensegrity_cpg.core.simulation.simulation_runner import SimulationRunner, SimulationConfig


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Tensegrity CPG Digital Twin - Coupled-Oscillator Gait Simulation",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument("--duration", type=float, default=5.0,
                        help="Duration of the simulation in seconds")
    parser.add_argument("--dt", type=float, default=0.001,
                        help="Control/physics time step in seconds")
    parser.add_argument("--segments", type=int, default=3,
                        help="Number of controllable segments (one oscillator each)")
    parser.add_argument("--muscles", type=int, default=4,
                        help="Muscles per segment")
    parser.add_argument("--frequency", type=float, default=1.0,
                        help="Oscillator frequency in Hz")
    parser.add_argument("--amplitude", type=float, default=0.1,
                        help="Muscle length amplitude")
    parser.add_argument("--coupling", type=float, default=2.0,
                        help="Chain coupling weight (0 = uncoupled)")
    parser.add_argument("--phase-lag", type=float, default=90.0,
                        help="Phase lag between neighboring segments in degrees")
    parser.add_argument("--integrator", type=str, default="euler", choices=["euler", "rk4"],
                        help="CPG integration scheme")
    parser.add_argument("--ramp-rate", type=float, default=0.0,
                        help="Amplitude ramp rate in 1/s (0 = start at full amplitude)")
    parser.add_argument("--log-period", type=float, default=None,
                        help="Telemetry logging period in seconds (default: every step)")
    parser.add_argument("--seed", type=int, default=42,
                        help="Random seed for initial phases")
    parser.add_argument("--csv", type=str, default=None,
                        help="Write telemetry to this CSV file")
    parser.add_argument("--plot", action="store_true",
                        help="Show telemetry plots after the run")
    parser.add_argument("--quiet", action="store_true",
                        help="Suppress progress output")
    return parser


def config_from_args(args: argparse.Namespace) -> SimulationConfig:
    return SimulationConfig(
        dt=args.dt,
        duration=args.duration,
        n_segments=args.segments,
        muscles_per_segment=args.muscles,
        frequency=2.0 * np.pi * args.frequency,
        amplitude=args.amplitude,
        coupling_weight=args.coupling,
        phase_lag=np.deg2rad(args.phase_lag),
        controller_config={
            'integrator': args.integrator,
            'amplitude_ramp_rate': args.ramp_rate,
        },
        log_period=args.log_period,
        seed=args.seed,
        verbose=not args.quiet,
        enable_plotting=args.plot,
    )


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    print("=" * 60)
    print(f"Initializing Tensegrity CPG Digital Twin ({args.segments} segments)")
    print("=" * 60)

    try:
        runner = SimulationRunner(config_from_args(args))
        results = runner.run_simulation()
    except ValueError as e:
        print(f"\nConfiguration Error: {e}")
        return 1
    except KeyboardInterrupt:
        print("\nSimulation interrupted by user.")
        return 0

    metrics = results['metrics']
    print("\n" + "=" * 30)
    print(" GAIT SUMMARY")
    print("=" * 30)
    print(f"Steps:              {results['steps']}")
    print(f"Saturation:         {results['saturation_percentage']:.2f}%")
    print(f"Final Synchrony:    {results['final_synchrony']:.3f}")
    if metrics is not None:
        print(f"Mean Phase Lag:     {np.rad2deg(metrics.mean_phase_lag):.1f} deg")
        print(f"RMS Tension:        {metrics.rms_tension:.2f} N")
        print(f"Peak Tension:       {metrics.peak_tension:.2f} N")
    print("=" * 30 + "\n")

    if args.csv is not None:
        runner.telemetry_frame().to_csv(args.csv, index=False)
        print(f"Telemetry written to {args.csv}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
