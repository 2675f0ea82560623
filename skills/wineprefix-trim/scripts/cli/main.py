#!/usr/bin/env python3
"""Wine prefix trimmer CLI: rewrite wine.inf and prune modules with broken imports."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from _fs import workspace_root, write_json, write_text
from closure import (
    ImportScanError,
    PruneResult,
    load_dependency_json,
    prune,
    scan_module_dir,
)
from sections import RewriteError, WineInfOptions, present, rewrite, wine_inf_transform
from utils import progress, report_warnings
from .config import find_config, load_config, resolve_out_dir, resolve_setting

DIFF_INDENT = "  | "


def transform_file(
    path: Path,
    fn: Callable[[bytes], bytes],
    *,
    write: bool = True,
) -> Tuple[bytes, bytes]:
    """Replace the contents of ``path`` with ``fn(contents)``.

    The file is only written once ``fn`` has returned; a failing transform
    leaves it untouched.
    """
    before = path.read_bytes()
    try:
        after = fn(before)
    except RewriteError:
        raise
    except (ValueError, LookupError) as exc:
        raise RewriteError(f"transform {str(path)!r}: {exc}", label=str(path)) from exc
    if write:
        path.write_bytes(after)
    return before, after


def removal_rows(result: PruneResult) -> List[Dict[str, object]]:
    return [
        {
            "name": result.display(removal.name),
            "round": removal.round,
            "missing": [result.display(dep) for dep in removal.missing],
        }
        for removal in result.removals
    ]


def format_prune_text(result: PruneResult) -> str:
    lines: List[str] = []
    for removal in result.removals:
        missing = ", ".join(result.display(dep) for dep in removal.missing)
        lines.append(f"round {removal.round}: removed {result.display(removal.name)} (missing: {missing})")
    lines.append(
        f"retained: {len(result.retained)} modules, removed: {len(result.removals)} in {result.rounds} rounds"
    )
    return "\n".join(lines)


def run_rewrite(args: argparse.Namespace, config: Dict[str, object], out_dir: Path) -> int:
    path = Path(args.file)
    options = WineInfOptions(
        optimize=bool(resolve_setting(args.optimize, config, "optimize")),
        arch=str(resolve_setting(args.arch, config, "arch")),
    )
    progress(f"patching {path.name} (optimize={options.optimize}, arch={options.arch})")
    transform = wine_inf_transform(options)
    before, after = transform_file(
        path,
        lambda buffer: rewrite(buffer, transform, label=str(path)),
        write=not args.dry_run,
    )
    report = present("a", before, "b", after, indent=DIFF_INDENT, color=sys.stdout.isatty())
    if args.diff and report:
        sys.stdout.write(report)
    if report:
        diff_path = write_text(out_dir, f"{path.name}.diff", present("a", before, "b", after))
        progress(f"diff written to {diff_path}", done=True)
    verb = "checked" if args.dry_run else "patched"
    progress(f"{verb} {path.name}: {len(before)} -> {len(after)} bytes", done=True)
    return 0


def run_prune(args: argparse.Namespace, config: Dict[str, object], out_dir: Path) -> int:
    canonical: Dict[str, str] = {}
    directory: Optional[Path] = None
    if args.deps:
        progress(f"loading dependency map {args.deps}")
        deps = load_dependency_json(Path(args.deps))
    else:
        directory = Path(args.dir)
        progress(f"reading imports in {directory}")
        scan = scan_module_dir(
            directory,
            extensions=list(resolve_setting(None, config, "extensions")),  # type: ignore[arg-type]
            exclude=list(resolve_setting(args.exclude, config, "exclude")),  # type: ignore[arg-type]
        )
        deps, canonical = scan.deps, scan.canonical

    progress(f"pruning {len(deps)} modules")
    result = prune(deps)
    if args.verbose:
        for removal in result.removals:
            progress(
                f"removing iteration={removal.round} name={result.display(removal.name)} "
                f"broken_deps={','.join(result.display(dep) for dep in removal.missing)}"
            )

    payload = {
        "retained": sorted(result.display(name) for name in result.retained),
        "removals": removal_rows(result),
        "rounds": result.rounds,
    }
    report_path = write_json(out_dir, "prune-report.json", payload)
    progress(f"report written to {report_path}", done=True)

    if args.format == "json":
        print(json.dumps(payload, ensure_ascii=True, indent=2))
    else:
        print(format_prune_text(result))

    if args.apply and directory is not None:
        progress(f"deleting {len(result.removals)} modules")
        for name in result.removed:
            (directory / canonical.get(name, name)).unlink()
        progress("deleted modules with broken imports", done=True)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Trim a Wine install down to a headless prefix")
    parser.add_argument(
        "--config", default=None, help="JSON config file (default: ./.wineprefix-trim.json if present)"
    )
    parser.add_argument(
        "--out", default=None, help="Report dir (relative to workspace/ or absolute)"
    )
    parser.add_argument("--verbose", action="store_true", help="Log every removal")

    subparsers = parser.add_subparsers(dest="command")

    rewrite_parser = subparsers.add_parser("rewrite", help="Patch wine.inf for a trimmed install")
    rewrite_parser.add_argument("--file", required=True, help="Path to share/wine/wine.inf")
    rewrite_parser.add_argument(
        "--optimize",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Also drop WoW64, telephony and DirectX entries",
    )
    rewrite_parser.add_argument("--arch", choices=["amd64", "arm64"], default=None)
    rewrite_parser.add_argument(
        "--diff",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Print a diff of the changes",
    )
    rewrite_parser.add_argument(
        "--dry-run", action="store_true", help="Do not write the file back"
    )

    prune_parser = subparsers.add_parser(
        "prune", help="Find modules that import something no longer present"
    )
    source = prune_parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--deps", default=None, help="JSON object of module -> [imports]")
    source.add_argument("--dir", default=None, help="Directory of .dll/.exe files to scan")
    prune_parser.add_argument(
        "--exclude", nargs="*", default=None, help="Module names left out of the graph"
    )
    prune_parser.add_argument(
        "--apply", action="store_true", help="Delete the pruned files (requires --dir)"
    )
    prune_parser.add_argument("--format", choices=["text", "json"], default="text")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else sys.argv[1:])
    if not args.command:
        parser.print_help()
        return 1
    if args.command == "prune" and args.apply and not args.dir:
        parser.error("--apply requires --dir")

    warnings: List[str] = []
    config = load_config(find_config(Path.cwd(), args.config), warnings)
    out_dir = resolve_out_dir(args.out, workspace_root=workspace_root())
    try:
        if args.command == "rewrite":
            return run_rewrite(args, config, out_dir)
        if args.command == "prune":
            return run_prune(args, config, out_dir)
    except (RewriteError, ImportScanError, OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        report_warnings(warnings)

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
