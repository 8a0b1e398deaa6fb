"""
relayreactor/cli/verify.py

relayreactor verify: replay ledger verification
===============================================

Usage:
    relayreactor verify <ledger>                    Human report (default)
    relayreactor verify <ledger> --format json      Machine-readable JSON
    relayreactor verify <ledger> --format compact   One line per ledger
    relayreactor verify <ledger> --quiet            Exit code only
    relayreactor verify <ledger> --no-color         Plain text

LEDGER is either consumed.jsonl or the ledger directory holding it.

Exit codes:
    0  every entry valid: schema, sequence, chain, signature, no replays
    1  at least one violation
    2  ledger missing or unreadable
"""

import json
import sys
import time
from pathlib import Path

import click

from relayreactor.ledger.replay_guard import LEDGER_FILENAME
from relayreactor.ledger.verify import LedgerVerifier, VerificationSummary


EXIT_VALID   = 0
EXIT_INVALID = 1
EXIT_ERROR   = 2

_RULE = "─" * 68

# (label, violation type, text when clean)
_CHECKS = (
    ("Sequence", "sequence_gap",      "contiguous from 0"),
    ("Chain",    "chain_break",       "every causal hash matches"),
    ("Replays",  "duplicate_order",   "each order id consumed once"),
)


def resolve_ledger_file(ledger: str) -> Path:
    """Accept either the JSONL file or the directory that holds it."""
    path = Path(ledger)
    return path / LEDGER_FILENAME if path.is_dir() else path


# ── Command ───────────────────────────────────────────────────────────────────

@click.command(name="verify")
@click.argument("ledger", type=click.Path(exists=False))
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json", "compact"], case_sensitive=False),
    default="human",
    show_default=True,
    help="human report, json for automation, compact for scripts.",
)
@click.option("--quiet", is_flag=True, help="Print nothing; report through the exit code.")
@click.option("--no-color", is_flag=True, help="Disable ANSI styling.")
def verify_command(ledger: str, fmt: str, quiet: bool, no_color: bool) -> None:
    """
    Verify a replay ledger: schema, sequence, chain, signatures, replays.

    \b
    Examples:
      relayreactor verify .relayreactor/ledger
      relayreactor verify consumed.jsonl --format json
      relayreactor verify consumed.jsonl --quiet && echo clean
    """
    out = _Report(color=False if no_color else None)
    ledger_path = resolve_ledger_file(ledger)

    if not ledger_path.exists():
        if not quiet:
            out.error(f"Ledger not found: {ledger_path}", fmt)
        sys.exit(EXIT_ERROR)

    started  = time.perf_counter()
    verifier = LedgerVerifier()
    try:
        verifier.load(ledger_path)
        summary = verifier.verify()
    except (ValueError, OSError) as e:
        if not quiet:
            out.error(str(e), fmt)
        sys.exit(EXIT_ERROR)
    elapsed = time.perf_counter() - started

    if not quiet:
        if fmt == "json":
            out.json(summary, ledger_path, elapsed)
        elif fmt == "compact":
            out.compact(summary, ledger_path, elapsed)
        else:
            out.human(summary, ledger_path, elapsed)

    sys.exit(EXIT_VALID if summary.valid else EXIT_INVALID)


# ── Rendering ─────────────────────────────────────────────────────────────────

class _Report:
    """
    Writes verification results through click.echo.

    color=None lets click decide (styled on a terminal, plain when
    piped); color=False always strips styling.
    """

    def __init__(self, color=None):
        self.color = color

    def echo(self, text: str = "", err: bool = False) -> None:
        click.echo(text, color=self.color, err=err)

    def row(self, label: str, value: str, ok=None) -> str:
        mark = {True: click.style("✅", fg="green"), False: click.style("❌", fg="red")}.get(ok, "  ")
        return f"  {click.style(f'{label:<14}', dim=True)}  {mark}  {value}"

    def human(self, summary: VerificationSummary, ledger_path: Path, elapsed: float) -> None:
        by_type = {}
        for v in summary.violations:
            by_type.setdefault(v.violation_type, []).append(v)

        self.echo()
        self.echo(click.style("  Relay Reactor · replay ledger", bold=True))
        self.echo(f"  {_RULE}")
        self.echo(self.row("Ledger", str(ledger_path)))
        self.echo(self.row("Entries", f"{summary.total_entries:,}"))
        if summary.kind_counts:
            self.echo(self.row("Kinds", "  ".join(
                f"{kind}={count:,}" for kind, count in sorted(summary.kind_counts.items())
            )))
        for signer in summary.signers_seen:
            self.echo(self.row("Signer", f"{signer[:16]}..."))
        if summary.first_timestamp:
            self.echo(self.row("Span", f"{summary.first_timestamp} .. {summary.last_timestamp}"))
        self.echo()

        for label, vtype, clean_text in _CHECKS:
            found = by_type.get(vtype, [])
            self.echo(self.row(label, f"{len(found)} violation(s)" if found else clean_text, ok=not found))
        self.echo(self.row(
            "Signatures",
            f"{summary.valid_signatures:,} valid, {summary.invalid_signatures:,} invalid",
            ok=summary.invalid_signatures == 0,
        ))

        if summary.violations:
            self.echo()
            for v in summary.violations:
                self.echo(
                    f"  {click.style(f'#{v.at_sequence:<5}', fg='red')} "
                    f"{click.style(f'{v.violation_type:<18}', fg='yellow')} {v.detail}"
                )

        self.echo(f"  {_RULE}")
        if summary.valid:
            verdict = click.style("VALID", fg="green", bold=True)
        else:
            verdict = click.style(f"INVALID ({len(summary.violations)} violations)", fg="red", bold=True)
        self.echo(f"  {verdict}  ·  checked in {elapsed:.3f}s")
        self.echo()

    def compact(self, summary: VerificationSummary, ledger_path: Path, elapsed: float) -> None:
        """VALID     consumed.jsonl         12 entries  0 violations  0.004s"""
        status = "VALID" if summary.valid else "INVALID"
        self.echo(
            click.style(f"{status:<8}", fg="green" if summary.valid else "red")
            + f"  {ledger_path.name:<20}  {summary.total_entries:>6,} entries  "
            f"{len(summary.violations)} violations  {elapsed:.3f}s"
        )

    def json(self, summary: VerificationSummary, ledger_path: Path, elapsed: float) -> None:
        body = summary.to_dict()
        body["ledger"]          = str(ledger_path)
        body["elapsed_seconds"] = round(elapsed, 3)
        self.echo(json.dumps({"relayreactor_verify": body}, indent=2))

    def error(self, message: str, fmt: str) -> None:
        if fmt == "json":
            self.echo(json.dumps({"relayreactor_verify": {"valid": False, "error": message}}))
        else:
            self.echo(click.style(f"❌  ERROR: {message}", fg="red"), err=True)
