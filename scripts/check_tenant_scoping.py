#!/usr/bin/env python3
"""
Multi-tenancy scoping lint check.

Scans the backend for common tenant-isolation mistakes:
1. Hardcoded organization ids
2. Queries on organization-owned models without an organization_id filter
3. Primary-key lookups (session.get) on organization-owned models, which
   skip the ownership check

Queries count as scoped when the statement (current line plus the next few
lines) mentions organization_id, tenant_filter(, scoped_select( or
require_owned(.

USAGE:
    python scripts/check_tenant_scoping.py

    # Detailed findings
    python scripts/check_tenant_scoping.py -v

    # CI: exit 1 on CRITICAL/HIGH findings
    python scripts/check_tenant_scoping.py --strict

EXIT CODES:
    0 - No blocking issues
    1 - CRITICAL/HIGH issues found with --strict, or bad --path
"""

import argparse
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Tuple

# ────────────────────────────────────────────────────────────────
# Configuration
# ────────────────────────────────────────────────────────────────

# Root directory to scan
SCAN_ROOT = Path(__file__).parent.parent / "Backend" / "app"

# Files/directories to exclude
EXCLUDE_PATTERNS = [
    "__pycache__",
    ".pyc",
    "tenancy/",  # Query helpers build the scoped statements themselves
    "test_",
]

# Models whose rows carry organization_id
SCOPED_MODELS = ["Service", "Resource", "Customer", "Reservation", "CustomCollection"]

# Lines to look ahead when a statement spans several lines
CONTEXT_LINES = 6

SCOPE_MARKERS = re.compile(r"organization_id|tenant_filter\(|scoped_select\(|require_owned\(")

UUID_LITERAL = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

# (pattern, severity, description, needs_scope_check)
BAD_PATTERNS: List[Tuple[str, str, str, bool]] = [
    (
        rf"organization_id\s*=\s*(uuid\.UUID\()?['\"]{UUID_LITERAL}['\"]",
        "CRITICAL",
        "Hardcoded organization_id - resolve the tenant from the org slug instead",
        False,
    ),
    (
        r"^[A-Z_]*ORG(ANIZATION)?_ID\s*=",
        "CRITICAL",
        "Module-level organization id constant",
        False,
    ),
    *[
        (
            rf"select\({model}\)",
            "HIGH",
            f"{model} query without organization_id filter - potential cross-tenant leak",
            True,
        )
        for model in SCOPED_MODELS
    ],
    *[
        (
            rf"session\.get\({model},",
            "HIGH",
            f"session.get({model}, ...) skips the ownership check - use require_owned()",
            False,
        )
        for model in SCOPED_MODELS
    ],
    (
        r"DEMO_ORG_SLUG",
        "INFO",
        "Demo organization slug referenced outside the seed module",
        False,
    ),
]

# Patterns that are OK (suppress false positives)
IGNORE_PATTERNS = [
    r"^\s*#",  # Comments
    r"noqa:\s*tenant-scoping",  # Explicit suppression
]

# The seed module owns the demo slug
INFO_ALLOWED_FILES = {"seed.py"}


# ────────────────────────────────────────────────────────────────
# Data Classes
# ────────────────────────────────────────────────────────────────

@dataclass
class Finding:
    """A single tenant scoping issue."""

    file: Path
    line_num: int
    line_text: str
    severity: str
    description: str

    def __str__(self):
        return f"{self.severity}: {self.file}:{self.line_num} - {self.description}\n  > {self.line_text.strip()}"


# ────────────────────────────────────────────────────────────────
# Scanning Logic
# ────────────────────────────────────────────────────────────────

def should_exclude(path: Path) -> bool:
    path_str = path.as_posix()
    return any(excl in path_str for excl in EXCLUDE_PATTERNS)


def should_ignore_line(line: str) -> bool:
    return any(re.search(pattern, line) for pattern in IGNORE_PATTERNS)


def scan_source(source: str, file_path: Path) -> List[Finding]:
    """Scan source text; file_path is only used for reporting."""
    findings = []
    lines = source.split("\n")

    for line_num, line in enumerate(lines, 1):
        if should_ignore_line(line):
            continue

        for pattern, severity, description, needs_scope_check in BAD_PATTERNS:
            if not re.search(pattern, line):
                continue
            if severity == "INFO" and file_path.name in INFO_ALLOWED_FILES:
                continue
            if needs_scope_check:
                context_window = "\n".join(lines[line_num - 1:line_num - 1 + CONTEXT_LINES])
                if SCOPE_MARKERS.search(context_window):
                    continue

            findings.append(Finding(
                file=file_path,
                line_num=line_num,
                line_text=line,
                severity=severity,
                description=description,
            ))

    return findings


def scan_file(file_path: Path) -> List[Finding]:
    try:
        content = file_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        print(f"Warning: Could not read {file_path}: {e}", file=sys.stderr)
        return []
    return scan_source(content, file_path)


def scan_directory(root: Path) -> List[Finding]:
    """Recursively scan a directory for tenant scoping issues."""
    all_findings = []

    for path in sorted(root.rglob("*.py")):
        if should_exclude(path):
            continue
        all_findings.extend(scan_file(path))

    return all_findings


def blocking_findings(findings: List[Finding]) -> List[Finding]:
    return [f for f in findings if f.severity in ("CRITICAL", "HIGH")]


# ────────────────────────────────────────────────────────────────
# Reporting
# ────────────────────────────────────────────────────────────────

def print_report(findings: List[Finding], verbose: bool = False):
    if not findings:
        print("No tenant scoping issues found.")
        return

    by_severity = {}
    for f in findings:
        by_severity.setdefault(f.severity, []).append(f)

    print("\n" + "=" * 60)
    print("MULTI-TENANCY SCOPING CHECK REPORT")
    print("=" * 60)

    severity_order = ["CRITICAL", "HIGH", "MEDIUM", "WARNING", "INFO"]

    print("\nSUMMARY:")
    for sev in severity_order:
        count = len(by_severity.get(sev, []))
        if count > 0:
            print(f"  {sev}: {count}")

    print(f"\nTOTAL: {len(findings)} issues")

    if verbose:
        print("\n" + "-" * 60)
        print("DETAILS:")
        print("-" * 60)

        for sev in severity_order:
            if sev in by_severity:
                print(f"\n{sev}:")
                for f in by_severity[sev]:
                    print(f"  {f.file}:{f.line_num}")
                    print(f"    {f.description}")
                    print(f"    > {f.line_text.strip()[:80]}")
    else:
        print("\nRun with -v for detailed findings.")

    print("\n" + "=" * 60)


# ────────────────────────────────────────────────────────────────
# Main
# ────────────────────────────────────────────────────────────────

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Check the backend for multi-tenancy scoping issues"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed findings"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with code 1 on CRITICAL/HIGH findings (for CI)"
    )
    parser.add_argument(
        "--path",
        type=Path,
        default=SCAN_ROOT,
        help=f"Path to scan (default: {SCAN_ROOT})"
    )

    args = parser.parse_args(argv)

    if not args.path.exists():
        print(f"Error: Path {args.path} does not exist", file=sys.stderr)
        return 1

    print(f"Scanning {args.path}...")
    findings = scan_directory(args.path)

    print_report(findings, verbose=args.verbose)

    blocking = blocking_findings(findings)
    if args.strict and blocking:
        print(f"\n{len(blocking)} critical/high issues found. Failing.")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
