#!/usr/bin/env python3
"""
Roast Telemetry - Command Line Pipeline

Imports every .alog roast log in a folder through the telemetry service
(into an in-memory store), reports per-file results and repair warnings,
and prints a cross-roast comparison. Optionally exports the comparison
table to CSV and saves a PNG preview per roast.

Version: 0.1.0
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from roast_telemetry import (
    AnalysisSettings,
    ImportResult,
    InMemoryTelemetryStore,
    RoastChartData,
    RoastTelemetryService,
    get_comparison_summary,
    load_settings,
    looks_like_alog,
    summarize_roasts,
)
from roast_telemetry.analytics import format_time_display

CSV_OUTPUT = "roast_analysis_results.csv"


def _print_import_result(result: ImportResult) -> None:
    if result.success:
        print(f"  ✓ {result.filename}: {result.sample_count} samples, "
              f"{result.milestone_count} milestones, {result.event_count} events")
    else:
        print(f"  ✗ {result.filename}: import failed")
        for reason in result.errors:
            print(f"      - {reason}")
        if result.offset is not None and result.offset >= 0:
            print(f"      at offset {result.offset}: ...{result.context}...")
    for warning in result.warnings:
        print(f"      ! {warning}")


async def _import_folder(
    service: RoastTelemetryService, files: List[Path]
) -> Dict[str, RoastChartData]:
    analyses: Dict[str, RoastChartData] = {}
    for roast_id, path in enumerate(files, start=1):
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            text = f.read()
        if not looks_like_alog(text):
            print(f"  - {path.name}: not a roast log, skipped")
            continue

        result = await service.import_document(roast_id, text, filename=path.name)
        _print_import_result(result)
        if result.success:
            analyses[path.name] = await service.get_chart_data(roast_id)
    return analyses


def analyze_roasts(data_folder: str, options: Dict[str, Any]) -> Optional[pd.DataFrame]:
    """
    Complete import and comparison pipeline.

    Args:
        data_folder: Path to folder containing .alog files
        options: 'settings', 'export_csv' and 'save_plots' entries

    Returns:
        Comparison DataFrame, or None if no roast imported
    """
    settings: AnalysisSettings = options["settings"]
    unit = settings.canonical_unit

    print("=" * 60)
    print("ROAST TELEMETRY PIPELINE")
    print("=" * 60)

    # Step 1: Import
    files = sorted(Path(data_folder).glob("*.alog"))
    print(f"\n1. Importing {len(files)} roast logs from {data_folder}...")
    service = RoastTelemetryService(InMemoryTelemetryStore(), settings)
    analyses = asyncio.run(_import_folder(service, files))

    if not analyses:
        print("ERROR: No roast logs imported!")
        return None
    print(f"✓ Imported {len(analyses)} of {len(files)} roasts")

    # Step 2: Compare
    print("\n2. Comparing roasts...")
    df = summarize_roasts(analyses)
    summary = get_comparison_summary(df)
    print(f"  - Roasts: {summary['total_roasts']}")
    if summary["avg_duration"] is not None:
        print(f"  - Average duration: {format_time_display(summary['avg_duration'] * 1000)}")
    if summary["avg_drop_temp"] is not None:
        print(f"  - Average drop temp: {summary['avg_drop_temp']:.1f}°{unit}")
    if summary["avg_development_percent"] is not None:
        print(f"  - Average development: {summary['avg_development_percent']:.1f}%")
    if summary["avg_peak_ror"] is not None:
        print(f"  - Average peak RoR: {summary['avg_peak_ror']:.1f}°{unit}/min")

    print("  Phases per roast (drying / maillard / development):")
    for _, row in df.iterrows():
        print(f"    {row['filename']}: {row['drying_percent']:.1f}% / "
              f"{row['maillard_percent']:.1f}% / {row['development_percent']:.1f}%")

    # Step 3: Export data (if requested)
    if options.get("export_csv"):
        print("\n3. Exporting data to CSV...")
        df.to_csv(CSV_OUTPUT, index=False)
        print(f"✓ Results exported to {CSV_OUTPUT}")

    # Step 4: Save previews (if requested)
    plot_output_dir = options.get("save_plots")
    if plot_output_dir:
        print("\n4. Saving roast previews...")
        from roast_telemetry.plotting import plot_roast_chart

        Path(plot_output_dir).mkdir(parents=True, exist_ok=True)
        for filename, chart in analyses.items():
            save_path = os.path.join(plot_output_dir, f"{Path(filename).stem}.png")
            plot_roast_chart(chart, title=filename, save_path=save_path, unit=unit,
                             max_ror=settings.max_ror)
            print(f"  - {save_path}")
        print("✓ Previews saved")

    print("\n" + "=" * 60)
    print("ANALYSIS COMPLETE!")
    print("=" * 60)

    return df


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Import and compare coffee roast logs (.alog files)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                           # Import data/ folder
  python main.py data --unit C             # Normalize temperatures to Celsius
  python main.py data --save-plots plots/  # Save a preview per roast
  python main.py data --config roast.yaml  # Override analysis settings
        """
    )

    parser.add_argument(
        "data_folder",
        nargs="?",
        default="data",
        help="Path to folder containing .alog files (default: data)"
    )

    parser.add_argument(
        "--config",
        metavar="FILE",
        help="YAML file overriding analysis settings"
    )

    parser.add_argument(
        "--unit",
        choices=["F", "C"],
        help="Canonical temperature unit (default: from settings, F)"
    )

    parser.add_argument(
        "--save-plots",
        metavar="DIR",
        help="Save roast previews to specified directory"
    )

    parser.add_argument(
        "--export-csv",
        action="store_true",
        help="Export comparison table to CSV file"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log pipeline details to stderr"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    # Check if data folder exists
    if not os.path.exists(args.data_folder):
        print(f"ERROR: Data folder '{args.data_folder}' does not exist!")
        sys.exit(1)

    # Check if data folder contains .alog files
    alog_files = list(Path(args.data_folder).glob("*.alog"))
    if not alog_files:
        print(f"ERROR: No .alog files found in '{args.data_folder}'!")
        sys.exit(1)

    try:
        settings = load_settings(args.config)
        if args.unit:
            settings = settings.replace(canonical_unit=args.unit)
    except (FileNotFoundError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print(f"Found {len(alog_files)} .alog files in {args.data_folder}")

    options = {
        "settings": settings,
        "save_plots": args.save_plots,
        "export_csv": args.export_csv,
    }

    try:
        result_df = analyze_roasts(args.data_folder, options)
    except KeyboardInterrupt:
        print("\n\nAnalysis interrupted by user.")
        sys.exit(1)

    if result_df is None:
        print("\nAnalysis failed!")
        sys.exit(1)
    print(f"\nAnalysis successful! Imported {len(result_df)} roasts.")


if __name__ == "__main__":
    main()
