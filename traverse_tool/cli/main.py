"""
Traverse Tool - Main Entry Point

Command-line interface for the traverse adjustment engine.

Input files are CSV tables of already parsed station records:

    stations: run, index, back_code, fore_code, back_reading, fore_reading,
              back_distance, fore_distance [, delta_h, line_number, active]
    heights:  code, height [, system]
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd

from ..config.models import (
    Station, Run, CalculationContext, TraverseCalculationRequest, TraverseCalculationResult
)
from ..config.settings import AdjustmentMode, get_settings
from ..config.leveling_classes import (
    get_method_option, get_class_option, METHOD_REGISTRY, CLASS_REGISTRY, list_options
)
from ..engine.errors import InvalidRequestError
from ..engine.connectivity import find_shared_points, SystemConnectivityAnalyzer
from ..engine.workflow import TraverseCalculationWorkflow


logger = logging.getLogger(__name__)

STATION_COLUMNS = ['run', 'index', 'back_code', 'fore_code']
FALSE_VALUES = {'0', 'false', 'no', 'n'}


def _value(row: pd.Series, column: str) -> Optional[object]:
    """Cell value, None for missing columns and empty cells."""
    if column not in row.index:
        return None
    value = row[column]
    if pd.isna(value):
        return None
    return value


def _float(row: pd.Series, column: str) -> Optional[float]:
    value = _value(row, column)
    return None if value is None else float(value)


def _text(row: pd.Series, column: str) -> Optional[str]:
    value = _value(row, column)
    if value is None:
        return None
    return str(value).strip() or None


def _flag(row: pd.Series, column: str, default: bool = True) -> bool:
    value = _text(row, column)
    if value is None:
        return default
    return value.lower() not in FALSE_VALUES


def load_stations(filepath: str) -> Tuple[List[Station], List[Run]]:
    """
    Load station records from a CSV file.

    Args:
        filepath: Path to the stations CSV

    Returns:
        (stations, runs) with one Run per distinct run index

    Raises:
        ValueError: If required columns are missing
    """
    df = pd.read_csv(filepath, dtype=str)
    df.columns = [str(c).strip().lower() for c in df.columns]

    missing = [c for c in STATION_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{filepath}: missing columns {missing}")

    stations = []
    runs: Dict[int, Run] = {}

    for _, row in df.iterrows():
        run_index = int(row['run'])
        stations.append(Station(
            run_index=run_index,
            index=int(row['index']),
            back_code=_text(row, 'back_code'),
            fore_code=_text(row, 'fore_code'),
            back_reading=_float(row, 'back_reading'),
            fore_reading=_float(row, 'fore_reading'),
            back_distance=_float(row, 'back_distance'),
            fore_distance=_float(row, 'fore_distance'),
            delta_h=_float(row, 'delta_h'),
        ))

        if run_index not in runs:
            runs[run_index] = Run(
                index=run_index,
                original_line_number=_text(row, 'line_number'),
                is_active=_flag(row, 'active'),
            )

    logger.info(f"Loaded {len(stations)} stations in {len(runs)} runs from {Path(filepath).name}")
    return stations, [runs[i] for i in sorted(runs)]


def load_heights(filepath: str) -> Tuple[Dict[str, float], Dict[str, str]]:
    """
    Load known heights from a CSV file.

    Returns:
        (code -> height, code -> system id for rows that name one)
    """
    df = pd.read_csv(filepath, dtype=str)
    df.columns = [str(c).strip().lower() for c in df.columns]

    heights = {}
    systems = {}
    for _, row in df.iterrows():
        code = _text(row, 'code')
        height = _float(row, 'height')
        if code is None or height is None:
            continue
        heights[code] = height
        system_id = _text(row, 'system')
        if system_id:
            systems[code] = system_id

    logger.info(f"Loaded {len(heights)} known heights from {Path(filepath).name}")
    return heights, systems


def build_context(
    heights: Dict[str, float],
    benchmark_systems: Dict[str, str],
    disabled: List[str],
    runs: List[Run],
    stations: List[Station]
) -> CalculationContext:
    """Context with the given shared points disconnected."""
    context = CalculationContext(known_heights=heights, benchmark_systems=benchmark_systems)
    if not disabled:
        return context

    names = {run.index: run.name for run in runs}
    shared = {p.code: p for p in find_shared_points(stations, context)}

    for code in disabled:
        point = shared.get(code.strip().upper())
        if point is None:
            logger.warning(f"{code} is not shared between runs, ignored")
            continue
        context = context.with_shared_point_disabled(
            point.code, [names[i] for i in point.run_indexes]
        )
    return context


def print_summary(result: TraverseCalculationResult):
    """Print run and overall summaries."""
    decimals = get_settings().decimal_places

    print("\n" + "=" * 80)
    print("TRAVERSE SUMMARY")
    print("=" * 80)

    print(f"\n{'Run':<12}{'System':<18}{'Stations':>9}{'Mode':>8}{'Closure mm':>12}{'Allow mm':>10}  {'Status'}")
    print("-" * 80)

    for run in result.runs:
        closure_result = run.closure_result
        closure = f"{run.closure * 1000:.1f}" if run.closure is not None else "-"
        allowable = (
            f"{closure_result.allowable_closure * 1000:.1f}"
            if closure_result and closure_result.allowable_closure is not None else "-"
        )
        status = closure_result.status.value if closure_result else "inactive"
        if run.is_relative_only:
            status += " (relative)"
        print(
            f"{run.name:<12}"
            f"{run.system_id or '':<18}"
            f"{run.station_count:>9}"
            f"{run.closure_mode.value:>8}"
            f"{closure:>12}"
            f"{allowable:>10}"
            f"  {status}"
        )

    print("-" * 80)
    print(f"Stations: {result.stations_count}")
    print(f"Back distance: {result.total_back_distance:.2f} m, fore distance: {result.total_fore_distance:.2f} m")
    if result.closure.closure is not None:
        print(f"Overall closure: {result.closure.closure:.{decimals}f} m")
    print(result.closure.verdict)


def run_adjust(args) -> int:
    stations, runs = load_stations(args.stations)
    heights, benchmark_systems = ({}, {})
    if args.heights:
        heights, benchmark_systems = load_heights(args.heights)

    context = build_context(heights, benchmark_systems, args.disable or [], runs, stations)

    request = TraverseCalculationRequest(
        stations=stations,
        runs=runs,
        context=context,
        method_option=get_method_option(args.method),
        class_option=get_class_option(args.leveling_class),
        adjustment_mode=AdjustmentMode(args.mode),
    )

    try:
        result = TraverseCalculationWorkflow().calculate(request)
    except InvalidRequestError as e:
        logger.error(f"Invalid input: {e}")
        return 1

    print_summary(result)

    if args.output:
        result.stations_to_dataframe().to_csv(args.output, index=False)
        logger.info(f"Exported stations to {args.output}")

    if result.closure.is_within_tolerance is False:
        return 2
    return 0


def run_systems(args) -> int:
    stations, runs = load_stations(args.stations)
    context = build_context({}, {}, args.disable or [], runs, stations)

    shared_points = find_shared_points(stations, context)
    connectivity = SystemConnectivityAnalyzer().analyze(
        [run.index for run in runs], shared_points
    )

    names = {run.index: run.name for run in runs}
    print(f"\n{'Shared point':<16}{'Enabled':<10}Runs")
    print("-" * 60)
    for point in shared_points:
        run_names = ", ".join(names[i] for i in point.run_indexes)
        print(f"{point.code:<16}{'yes' if point.is_enabled else 'no':<10}{run_names}")

    print(f"\n{'Run':<12}System")
    print("-" * 60)
    for run in runs:
        print(f"{run.name:<12}{connectivity.run_to_system.get(run.index, '')}")

    print(f"\nSystems: {len(connectivity.system_ids)}")
    return 0


def run_classes(args) -> int:
    print(f"\n{'Code':<12}{'Formula':<12}{'k (mm)':>8}  Description")
    print("-" * 70)
    for option in list_options():
        formula = "k·√n" if option.mode.value == "by_station_count" else "k·√L"
        print(f"{option.code:<12}{formula:<12}{option.coefficient * 1000:>8.1f}  {option.description}")
    return 0


def create_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Leveling Traverse Adjustment Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Adjust runs against known benchmarks
  traverse-cli adjust stations.csv --heights benchmarks.csv --class IV

  # Disconnect a shared point and show the resulting systems
  traverse-cli systems stations.csv --disable P2

  # List tolerance options
  traverse-cli classes
        """
    )
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Command to run')

    # Adjust command
    adjust_parser = subparsers.add_parser('adjust', help='Adjust runs and report closures')
    adjust_parser.add_argument('stations', help='Stations CSV')
    adjust_parser.add_argument('--heights', help='Known heights CSV (code, height[, system])')
    adjust_parser.add_argument(
        '--method',
        type=str.upper,
        choices=list(METHOD_REGISTRY),
        default=get_settings().default_method,
        help='Leveling method'
    )
    adjust_parser.add_argument(
        '--class',
        dest='leveling_class',
        type=str.upper,
        choices=list(CLASS_REGISTRY),
        default=get_settings().default_class,
        help='Accuracy class'
    )
    adjust_parser.add_argument(
        '--mode',
        choices=[m.value for m in AdjustmentMode],
        default=AdjustmentMode.LOCAL.value,
        help='Adjustment mode'
    )
    adjust_parser.add_argument('--disable', nargs='*', metavar='CODE', help='Shared points to disconnect')
    adjust_parser.add_argument('-o', '--output', help='Write adjusted stations to CSV')

    # Systems command
    systems_parser = subparsers.add_parser('systems', help='Show traverse systems')
    systems_parser.add_argument('stations', help='Stations CSV')
    systems_parser.add_argument('--disable', nargs='*', metavar='CODE', help='Shared points to disconnect')

    # Classes command
    subparsers.add_parser('classes', help='List leveling methods and classes')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == 'adjust':
        return run_adjust(args)

    elif args.command == 'systems':
        return run_systems(args)

    elif args.command == 'classes':
        return run_classes(args)

    return 0


if __name__ == '__main__':
    sys.exit(main())
