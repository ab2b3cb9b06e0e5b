#!/usr/bin/env python3
"""CLI tool to run the validation engine on a JSON dataset.

Usage:
    python run_checks.py <dataset.json>                        # Run checks
    python run_checks.py <dataset.json> --trace                # Run with PINTAE_TRACE
    python run_checks.py <dataset.json> --checks custom.json   # Add custom checks
    python run_checks.py <dataset.json> --json                 # Output raw JSON
    python run_checks.py <dataset.json> --matrix               # Print DR coverage gaps
    python run_checks.py <dataset.json> --export-csv out.csv   # Write traceability report

The dataset file holds {"buyers": [...], "headers": [...], "lines": [...]}.
"""

import argparse
import json
import os
import sys
from pathlib import Path

# Ensure the backend package is importable
sys.path.insert(0, str(Path(__file__).resolve().parent))


def load_json(path_ref: str):
    path = Path(path_ref)
    if not path.exists():
        print(f"File '{path_ref}' not found.")
        sys.exit(1)
    return json.loads(path.read_text(encoding="utf-8"))


def run_checks(
    dataset: dict,
    custom_checks: list,
    trace: bool = False,
    output_json: bool = False,
    show_matrix: bool = False,
    export_csv: str = None,
):
    """Run built-in, PINT-AE and custom checks, then optionally the DR matrix."""
    if trace:
        os.environ["PINTAE_TRACE"] = "1"
        import importlib
        import pintae.config
        importlib.reload(pintae.config)

    import logging
    if trace:
        logging.basicConfig(level=logging.DEBUG, format="%(message)s")
    else:
        logging.basicConfig(level=logging.WARNING)

    from pintae.coverage.conformance import compute_traceability_matrix, exception_counts_by_dr
    from pintae.coverage.export import export_traceability_csv
    from pintae.coverage.population import compute_all_dataset_populations
    from pintae.engine.builtin_checks import run_all_checks
    from pintae.engine.check_pack import UAE_UC1_CHECK_PACK
    from pintae.engine.custom_checks import CheckConfigError, load_check_configs, run_custom_checks
    from pintae.engine.datasets import data_context_from_dict
    from pintae.engine.pint_ae_checks import run_all_pint_ae_checks
    from pintae.engine.scoring import summarize_run

    try:
        custom = load_check_configs(custom_checks)
    except CheckConfigError as e:
        print(f"Invalid custom check: {e}")
        sys.exit(1)

    data = data_context_from_dict(dataset)
    results = run_all_checks(data)
    custom_exceptions = run_custom_checks(custom, data)
    pint_exceptions = run_all_pint_ae_checks(UAE_UC1_CHECK_PACK, data)
    summary = summarize_run(results, custom_exceptions + pint_exceptions, total_invoices=len(data.headers))

    conformance = None
    if show_matrix or export_csv or output_json:
        populations = compute_all_dataset_populations(dataset)
        counts = exception_counts_by_dr(pint_exceptions, len(data.headers))
        conformance = compute_traceability_matrix(populations, counts)

    if export_csv:
        Path(export_csv).write_text(export_traceability_csv(conformance.rows), encoding="utf-8")

    if output_json:
        output = {
            "check_results": [r.to_dict() for r in results],
            "custom_exceptions": [e.to_dict() for e in custom_exceptions],
            "pint_ae_exceptions": [e.to_dict() for e in pint_exceptions],
            "summary": summary,
            "gaps": conformance.gaps.to_dict(),
        }
        print(json.dumps(output, indent=2, default=str))
        return

    # ── Pretty print results ──
    print(f"\n{'═' * 70}")
    print(f"  PINT-AE Check Runner — {len(data.headers)} invoice(s), "
          f"{len(data.lines)} line(s), {len(data.buyers)} buyer(s)")
    print(f"{'═' * 70}\n")

    sev_icon = {"Critical": "🔴", "High": "🟠", "Medium": "🟡", "Low": "🟢"}

    print(f"  BUILT-IN CHECKS ({len(results)} checks)")
    print(f"  {'─' * 60}")
    for r in results:
        status_icon = "✗" if r.failed else "✓"
        print(f"  {status_icon} {sev_icon.get(r.severity, '⚪')} [{r.check_id}] {r.check_name}: {r.failed} failed")
        for e in r.exceptions[:5]:
            print(f"    {e.message[:120]}")
    print()

    for title, exceptions in (("CUSTOM CHECKS", custom_exceptions), ("PINT-AE CHECKS", pint_exceptions)):
        print(f"  {title} ({len(exceptions)} exceptions)")
        print(f"  {'─' * 60}")
        if not exceptions:
            print("  No issues found.\n")
            continue
        for e in exceptions:
            print(f"  {sev_icon.get(e.severity, '⚪')} [{e.check_id}] {e.message[:120]}")
        print()

    print("  SUMMARY")
    print(f"  {'─' * 60}")
    print(f"  Exceptions: {summary['total_exceptions']}  "
          f"Pass rate: {summary['pass_rate']}%  Score: {summary['score']}")
    print()

    if show_matrix:
        gaps = conformance.gaps
        print(f"  DR COVERAGE ({conformance.spec_version})")
        print(f"  {'─' * 60}")
        print(f"  Covered: {gaps.drs_covered}/{gaps.total_drs}   Mandatory: {gaps.mandatory_drs}")
        print(f"  Mandatory not in template: {gaps.mandatory_not_in_template}")
        print(f"  Mandatory not ingestible:  {gaps.mandatory_not_ingestible}")
        print(f"  Mandatory low population:  {gaps.mandatory_low_population} (< {gaps.population_threshold:g}%)")
        print(f"  DRs with no rules:         {gaps.drs_with_no_rules}")
        print(f"  DRs with no controls:      {gaps.drs_with_no_controls}")
        print()

    if export_csv:
        print(f"  Traceability report written to {export_csv}\n")


def main():
    parser = argparse.ArgumentParser(
        description="Run PINT-AE validation checks on a JSON dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("dataset", help="Path to a {buyers, headers, lines} JSON file")
    parser.add_argument("--checks", help="Path to a JSON list of custom check configs")
    parser.add_argument("--trace", action="store_true", help="Enable PINTAE_TRACE debug output")
    parser.add_argument("--json", action="store_true", help="Output raw JSON")
    parser.add_argument("--matrix", action="store_true", help="Print DR coverage gaps")
    parser.add_argument("--export-csv", metavar="PATH", help="Write the DR traceability report")

    args = parser.parse_args()

    dataset = load_json(args.dataset)
    custom_checks = load_json(args.checks) if args.checks else []
    run_checks(
        dataset,
        custom_checks,
        trace=args.trace,
        output_json=args.json,
        show_matrix=args.matrix,
        export_csv=args.export_csv,
    )


if __name__ == "__main__":
    main()
