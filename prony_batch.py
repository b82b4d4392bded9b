"""
prony_batch.py
Run Prony identification on one or more signal files.

Each file holds one signal per column (whitespace separated, '#' comments
ignored). Every file is identified with the same control settings; the
per-file models go to a JSON file and a flat per-mode summary to a CSV
file next to it.

Usage:
    python prony_batch.py responses/*.txt --sample-period 1e-3 --modes 6 --shift 20
"""
import argparse
import json
import logging
from pathlib import Path
from typing import Dict, List

import numpy as np
import pandas as pd

from config_manager import ConfigManager
from prony_analysis import model_blocks, prony_identify
from prony_config import ControlVector, PronyLimits, DEFAULT_LIMITS
from prony_errors import PronyArgumentError

BLOCK_COLUMNS = ('damping', 'frequency', 'amplitude', 'phase',
                 'residue_real', 'residue_imag', 'relative_energy', 'afpe')


def load_signal_file(filepath: str) -> np.ndarray:
    """
    Load signal data from a whitespace separated text file.

    Returns:
        signals: shape (n_samples, n_signals)
    """
    return np.loadtxt(filepath, comments='#', ndmin=2)


def load_pulse_file(filepath: str) -> np.ndarray:
    """Pulse train as (end time, amplitude) rows."""
    return np.loadtxt(filepath, comments='#', ndmin=2)


def build_control(args, defaults: ControlVector) -> ControlVector:
    """Command line overrides on top of the stored control defaults."""
    values = defaults.to_dict()
    overrides = {
        'modes': args.modes,
        'scaling': 1.0 if args.scale else None,
        'lp_order': args.order,
        'pinv_rank': args.rank,
        'lp_direction': 1 if args.backward else None,
        'ordering': args.ordering,
        'trim_residue': args.trim_residue,
    }
    for key, value in overrides.items():
        if value is not None:
            values[key] = value
    return ControlVector.from_dict(values)


def analyze_single_file(filepath: str, args, control: ControlVector, pulses: np.ndarray,
                        limits: PronyLimits = DEFAULT_LIMITS) -> Dict:
    """Run Prony identification on a single file."""
    print(f"\nProcessing: {Path(filepath).name}")
    print("=" * 70)

    try:
        signals = load_signal_file(filepath)
    except (OSError, ValueError) as e:
        print(f"  ERROR: {e}")
        return {'filename': Path(filepath).name, 'success': False, 'error': str(e)}

    n_signals = signals.shape[1]
    shift_length = np.tile([[args.shift], [args.length]], n_signals)
    print(f"  Signals: {n_signals}, samples: {signals.shape[0]}")

    try:
        result = prony_identify(signals, args.sample_period, shift_length, pulses, [], control,
                                limits=limits)
    except PronyArgumentError as e:
        print(f"  ERROR: {e.message}")
        return {'filename': Path(filepath).name, 'success': False, 'error': e.message}

    for message in result.warnings:
        print(f"  WARNING: {message}")
    if not result.ok:
        print(f"  FATAL: {result.fatal}")
        return {'filename': Path(filepath).name, 'success': False, 'error': result.fatal}

    print(f"  Identified modes: {result.control.achieved_modes} / {result.control.total_modes}")
    blocks = model_blocks(result)
    return {
        'filename': Path(filepath).name,
        'success': True,
        'control': result.control.as_array().tolist(),
        'warnings': result.warnings,
        'signals': [
            {name: blocks[:, col, idx].tolist() for col, name in enumerate(BLOCK_COLUMNS)}
            for idx in range(n_signals)
        ],
    }


def summary_rows(results: List[Dict]) -> List[Dict]:
    """One row per (file, signal, mode)."""
    rows = []
    for r in results:
        if not r.get('success'):
            continue
        for signal_idx, table in enumerate(r['signals']):
            for mode_idx in range(len(table['frequency'])):
                row = {'filename': r['filename'], 'signal': signal_idx, 'mode_idx': mode_idx}
                row.update({name: table[name][mode_idx] for name in BLOCK_COLUMNS})
                row['frequency_hz'] = row['frequency'] / (2 * np.pi)
                rows.append(row)
    return rows


def main(argv=None):
    parser = argparse.ArgumentParser(description='Batch Prony identification')
    parser.add_argument('files', nargs='+', help='Signal files')
    parser.add_argument('--sample-period', '-T', type=float, required=True, help='Sample period (s)')
    parser.add_argument('--modes', '-n', type=int, default=None,
                        help='Modes to identify (negative: automatic)')
    parser.add_argument('--order', type=int, default=None, help='Linear prediction order')
    parser.add_argument('--rank', type=int, default=None, help='Pseudo-inverse rank')
    parser.add_argument('--backward', action='store_true', help='Backward linear prediction')
    parser.add_argument('--ordering', type=int, choices=[0, 1, 2], default=None,
                        help='Mode ordering: 0 energy, 1 frequency, 2 damping')
    parser.add_argument('--trim-residue', type=float, default=None,
                        help='Drop modes below this energy share')
    parser.add_argument('--scale', action='store_true', help='Scale signals to unit peak')
    parser.add_argument('--shift', type=int, default=0, help='Samples skipped before the fit window')
    parser.add_argument('--length', type=int, default=-1, help='Fit window length (-1: to the end)')
    parser.add_argument('--pulses', type=str, default=None, help='Pulse train file (end time, amplitude)')
    parser.add_argument('--config', type=str, default=None, help='JSON file with control and limits defaults')
    parser.add_argument('--output', '-o', type=str, default='prony_results.json',
                        help='Output JSON file')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')

    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format='%(levelname)s %(name)s: %(message)s')

    manager = ConfigManager(args.config)
    control = build_control(args, manager.load_control())
    limits = manager.load_limits()
    pulses = load_pulse_file(args.pulses) if args.pulses else np.zeros((0, 2))

    print("=" * 70)
    print("BATCH PRONY IDENTIFICATION")
    print("=" * 70)
    print(f"Files: {len(args.files)}")
    print(f"Modes: {'automatic' if control.auto_modes else control.modes}")
    print(f"Pulses: {len(pulses)}")

    results = [analyze_single_file(filepath, args, control, pulses, limits) for filepath in args.files]

    output_data = {
        'parameters': {
            'sample_period': args.sample_period,
            'shift': args.shift,
            'length': args.length,
            'control': control.to_dict(),
            'limits': limits.to_dict(),
            'pulses': pulses.tolist(),
        },
        'results': results,
    }

    output_path = Path(args.output)
    with open(output_path, 'w') as f:
        json.dump(output_data, f, indent=2)

    print(f"\n" + "=" * 70)
    print(f"Results saved to: {output_path}")
    print("=" * 70)

    rows = summary_rows(results)
    if rows:
        csv_path = output_path.with_suffix('.csv')
        pd.DataFrame(rows).to_csv(csv_path, index=False)
        print(f"Summary CSV saved to: {csv_path}")

    successful = sum(1 for r in results if r.get('success'))
    return 0 if successful == len(results) else 1


if __name__ == "__main__":
    raise SystemExit(main())
