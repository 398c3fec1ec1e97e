#!/usr/bin/env python3
"""Command-line utility to work out which ADMX templates a GPO needs.

Usage:
    gpotools analyze <gpo-folder> --admx-store <dir> [--report gpo.xml]
    gpotools analyze --guid <GUID> --sysvol <root> --domain <domain> --admx-store <dir>
    gpotools decode <registry.pol> [--scope User]
    gpotools locate --sysvol <root> --domain <domain> (--guid <GUID> | --name <name>)

Exit codes:
    0 - Success (an empty result is still a success)
    1 - Nothing usable to analyze (no decodable policy file, no input),
        or a policy file / GPO that could not be decoded or found
    2 - File not found or invalid configuration/report
"""

import argparse
import csv
import json
import logging
import sys
from pathlib import Path

import yaml

from .. import logging as gpotools_logging
from ..exceptions import ConfigError, PolFormatError, ReportParseError
from .defaults import load_context
from .lgpo import parse_lgpo_text, validate_lgpo_text
from .migrate import (
    MigrationReport,
    analyze_gpo,
    copy_required_files,
    entry_to_dict,
    report_to_dict,
)
from .polfile import read_pol_file
from .report import load_gpo_report
from .sysvol import (
    find_gpo_by_name,
    find_policy_files,
    gpo_folder,
    policies_folder,
)
from .types import MigrationContext, Scope

CSV_FIELDS = [
    "admx_file",
    "policy",
    "strategy",
    "scope",
    "key",
    "value_name",
    "type",
    "data",
    "setting",
]


# =============================================================================
# Output helpers
# =============================================================================


def dump(data, fmt: str) -> str:
    """Serialize plain data as JSON or YAML."""
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    return json.dumps(data, indent=2, ensure_ascii=False)


def format_entry(entry) -> str:
    """Format a registry entry for human-readable output."""
    return f"{entry.scope.value}: {entry.registry_key}\\{entry.value_name} = {entry.value_data!r}"


def format_match(match) -> str:
    """Format a match for human-readable output."""
    if match.entry is not None:
        subject = f"{match.entry.scope.value} {match.entry.registry_key}\\{match.entry.value_name}"
    elif match.setting is not None:
        subject = f"setting '{match.setting.name}'"
    else:
        subject = "?"
    return f"{match.admx_file}: {match.policy_name} [{match.strategy.value}] <- {subject}"


def match_rows(matches) -> list[dict]:
    """Flatten matches into CSV rows."""
    rows = []
    for m in matches:
        row = {
            "admx_file": m.admx_file,
            "policy": m.policy_name,
            "strategy": m.strategy.value,
            "scope": "",
            "key": "",
            "value_name": "",
            "type": "",
            "data": "",
            "setting": "",
        }
        if m.entry is not None:
            row.update(
                scope=m.entry.scope.value,
                key=m.entry.registry_key,
                value_name=m.entry.value_name,
                type=m.entry.value_type,
                data="" if m.entry.value_data is None else m.entry.value_data,
            )
        if m.setting is not None:
            row["setting"] = m.setting.name
            if m.setting.scope is not None:
                row["scope"] = m.setting.scope.value
        rows.append(row)
    return rows


def write_matches_csv(matches, path: Path) -> None:
    """Write the match list to a CSV file."""
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS)
        writer.writeheader()
        writer.writerows(match_rows(matches))


def print_report(report: MigrationReport, verbose: bool = False) -> None:
    """Print analysis results in human-readable format."""
    title = report.gpo_name or report.gpo_path or "(LGPO input)"
    print(f"GPO: {title}")
    for scope in Scope:
        if scope in report.missing_scopes:
            status = "no registry.pol"
        elif scope in report.failed_scopes:
            status = "registry.pol could not be decoded"
        else:
            status = f"{len(report.entries.get(scope, []))} entries"
        print(f"  {scope.value}: {status}")
    if report.settings:
        print(f"  Report: {len(report.settings)} configured setting(s)")
    print()

    summary = report.summary
    print(f"Scanned {summary.files_scanned} ADMX file(s), {summary.policies_scanned} policies")
    if summary.files_failed:
        print(f"FAILED to parse {len(summary.files_failed)} ADMX file(s):")
        for name in summary.files_failed:
            print(f"  {name}")
    print()

    if report.required.files:
        print(f"Required ADMX files (ADML language: {report.required.language}):")
        print("-" * 60)
        for item in report.required.files:
            print(f"  {item.admx_file:<40} {item.adml_file:<40} {item.status.value}")
        print()

    if verbose and report.matches:
        print("Matches:")
        print("-" * 60)
        for match in report.matches:
            print(f"  {format_match(match)}")
        print()

    if verbose:
        matched = {m.entry for m in report.matches if m.entry is not None}
        unmatched = [e for e in report.all_entries if e not in matched]
        if unmatched:
            print("Registry entries with no ADMX policy:")
            print("-" * 60)
            for entry in unmatched:
                print(f"  {format_entry(entry)}")
            print()

    missing = len(report.required.missing)
    print(
        f"Summary: {len(report.all_entries)} entries decoded, "
        f"{summary.matches} match(es), "
        f"{len(report.required)} ADMX file(s) required"
        + (f" ({missing} missing ADML)" if missing else "")
        + (f", {len(summary.files_failed)} ADMX file(s) skipped" if summary.files_failed else "")
    )


# =============================================================================
# Commands
# =============================================================================


def resolve_gpo_dir(args, ctx: MigrationContext) -> Path | None:
    """Work out the GPO folder from a path, a GUID or a display name."""
    if args.gpo_dir is not None:
        return args.gpo_dir
    if not (args.guid or args.gpo_name):
        return None
    if ctx.sysvol_root is None or not ctx.domain:
        raise ConfigError("--guid/--name need --sysvol and --domain (or a config file)")
    if args.guid:
        return gpo_folder(ctx.sysvol_root, ctx.domain, args.guid)
    found = find_gpo_by_name(policies_folder(ctx.sysvol_root, ctx.domain), args.gpo_name)
    if found is None:
        raise FileNotFoundError(f"No GPO named '{args.gpo_name}' under {ctx.sysvol_root}")
    return found


def cmd_analyze(args) -> int:
    try:
        ctx = load_context(
            args.config,
            admx_store=args.admx_store,
            language=args.language,
            sysvol=args.sysvol,
            domain=args.domain,
        )
        gpo_dir = resolve_gpo_dir(args, ctx)
    except (ConfigError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if gpo_dir is None and args.lgpo_text is None:
        print("Error: give a GPO folder, --guid, --name or --lgpo-text", file=sys.stderr)
        return 2
    if gpo_dir is not None and not gpo_dir.is_dir():
        print(f"Error: GPO folder not found: {gpo_dir}", file=sys.stderr)
        return 2
    if not ctx.admx_store.is_dir():
        print(f"Error: ADMX store not found: {ctx.admx_store}", file=sys.stderr)
        return 2

    report = None
    if args.report is not None:
        if not args.report.is_file():
            print(f"Error: Report file not found: {args.report}", file=sys.stderr)
            return 2
        try:
            report = load_gpo_report(args.report)
        except (ReportParseError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    extra_entries = []
    if args.lgpo_text is not None:
        if not args.lgpo_text.is_file():
            print(f"Error: LGPO text file not found: {args.lgpo_text}", file=sys.stderr)
            return 2
        try:
            text = args.lgpo_text.read_text(encoding="utf-8-sig", errors="replace")
        except OSError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2
        for line_num, line, _ in validate_lgpo_text(text):
            print(f"Warning: invalid LGPO record on line {line_num}: {line}", file=sys.stderr)
        extra_entries = parse_lgpo_text(text)

    progress = None
    if args.verbose:
        def progress(index, total, name):
            print(f"  [{index}/{total}] {name}", file=sys.stderr)

    result = analyze_gpo(
        ctx,
        gpo_dir,
        report=report,
        extra_entries=extra_entries,
        progress=progress,
    )

    if args.format == "text":
        if not args.quiet:
            print_report(result, verbose=args.verbose)
    else:
        print(dump(report_to_dict(result), args.format))

    if args.csv is not None:
        write_matches_csv(result.matches, args.csv)

    if args.copy_to is not None:
        copied = copy_required_files(result.required, ctx, args.copy_to)
        if not args.quiet:
            print(f"Copied {len(copied)} file(s) to {args.copy_to}", file=sys.stderr)

    if not result.has_input:
        print("No registry policy data found for this GPO.", file=sys.stderr)
        return 1
    return 0


def cmd_decode(args) -> int:
    if not args.policy_file.is_file():
        print(f"Error: File not found: {args.policy_file}", file=sys.stderr)
        return 2

    scope = Scope(args.scope)
    try:
        entries = read_pol_file(args.policy_file, scope)
    except PolFormatError as e:
        print(f"Error: {args.policy_file}: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.format == "text":
        for entry in entries:
            print(format_entry(entry))
        print(f"\n{len(entries)} entries")
    else:
        print(dump([entry_to_dict(e) for e in entries], args.format))
    return 0


def cmd_locate(args) -> int:
    try:
        if args.guid:
            gpo_dir = gpo_folder(args.sysvol, args.domain, args.guid)
        else:
            gpo_dir = find_gpo_by_name(policies_folder(args.sysvol, args.domain), args.gpo_name)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if gpo_dir is None or not gpo_dir.is_dir():
        print("GPO folder not found.", file=sys.stderr)
        return 1

    print(gpo_dir)
    for scope, path in find_policy_files(gpo_dir).items():
        print(f"  {scope.value}: {path if path else '(none)'}")
    return 0


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpotools",
        description="Find the ADMX/ADML templates needed to reproduce a GPO's registry settings.",
        epilog="Exit codes: 0=success, 1=nothing decodable/not found, 2=file or config error",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Match a GPO against an ADMX store")
    analyze.add_argument("gpo_dir", type=Path, nargs="?", help="GPO folder (contains Machine/ and User/)")
    analyze.add_argument("--guid", help="GPO GUID, resolved under --sysvol/--domain")
    analyze.add_argument("--name", dest="gpo_name", help="GPO display name (read from GPT.INI)")
    analyze.add_argument("--admx-store", type=Path, help="PolicyDefinitions directory")
    analyze.add_argument("--language", help="ADML language folder (default en-US)")
    analyze.add_argument("--sysvol", type=Path, help="SYSVOL root")
    analyze.add_argument("--domain", help="Domain name under SYSVOL")
    analyze.add_argument("--config", type=Path, help="YAML config file")
    analyze.add_argument("--report", type=Path, metavar="GPO.xml", help="XML GPO report")
    analyze.add_argument("--lgpo-text", type=Path, metavar="FILE", help="LGPO.exe /parse output")
    analyze.add_argument("--format", choices=("text", "json", "yaml"), default="text")
    analyze.add_argument("--csv", type=Path, metavar="FILE", help="Write the match list as CSV")
    analyze.add_argument("--copy-to", type=Path, metavar="DIR", help="Copy required templates here")
    analyze.add_argument("-v", "--verbose", action="store_true", help="Show matches and unmatched entries")
    analyze.add_argument("-q", "--quiet", action="store_true", help="Only output errors")
    analyze.set_defaults(func=cmd_analyze)

    decode = subparsers.add_parser("decode", help="Print the entries of a registry.pol file")
    decode.add_argument("policy_file", type=Path)
    decode.add_argument("--scope", choices=[s.value for s in Scope], default=Scope.MACHINE.value)
    decode.add_argument("--format", choices=("text", "json", "yaml"), default="text")
    decode.set_defaults(func=cmd_decode)

    locate = subparsers.add_parser("locate", help="Find a GPO folder on SYSVOL")
    locate.add_argument("--sysvol", type=Path, required=True)
    locate.add_argument("--domain", required=True)
    group = locate.add_mutually_exclusive_group(required=True)
    group.add_argument("--guid")
    group.add_argument("--name", dest="gpo_name")
    locate.set_defaults(func=cmd_locate)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logger = gpotools_logging.init_logging(verbose=getattr(args, "verbose", False))
    if getattr(args, "quiet", False):
        logger.setLevel(logging.WARNING)
    try:
        code = args.func(args)
    finally:
        gpotools_logging.close_logging()
    sys.exit(code)


if __name__ == "__main__":
    main()
