"""Proof ledger CLI commands."""

from __future__ import annotations

import functools
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Callable, Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..proof.bulk import ChildSpec
from ..proof.config import ProofConfig
from ..proof.errors import LedgerCorruptionError, NodeNotFoundError, ProofError
from ..proof.events import ProofEvent
from ..proof.gate import AcceptanceSummary
from ..proof.service import init_proof, open_proof
from ..proof.state import Node


def _console() -> Console:
    return Console(soft_wrap=True)


def _err() -> Console:
    return Console(stderr=True, soft_wrap=True)


def _reports_errors(fn: Callable[..., int]) -> Callable[..., int]:
    """Turn proof errors into a red message and the error's exit code."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> int:
        try:
            return fn(*args, **kwargs)
        except ProofError as exc:
            _err().print(f"error [{exc.code}]: {exc}", style="bold red", markup=False)
            return exc.exit_code
        except LedgerCorruptionError as exc:
            _err().print(f"fatal: {exc}", style="bold red", markup=False)
            return exc.exit_code

    return wrapper


# -----------------------------------------------------------------------------
# Formatting helpers
# -----------------------------------------------------------------------------


def _truncate(text: str, max_len: int = 60) -> str:
    """Truncate text to max length with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 1] + "…"


def _format_time(dt: datetime | None) -> str:
    return dt.strftime("%Y-%m-%d %H:%M:%S") if dt else ""


def _node_dict(node: Node, now: datetime) -> dict[str, Any]:
    lease = node.active_lease(now)
    return {
        "id": str(node.node_id),
        "type": node.node_type.value,
        "statement": node.statement,
        "inference": node.inference,
        "state": node.epistemic_state.value,
        "lease": {"owner": lease.owner, "expires_at": lease.expires_at.isoformat()} if lease else None,
        "dependencies": [str(d) for d in node.dependencies],
        "validation_dependencies": [str(d) for d in node.validation_dependencies],
        "note": node.validation_note,
    }


_STATE_STYLE = {"pending": "yellow", "validated": "green", "refuted": "red"}


def _lease_text(node: Node, now: datetime) -> str:
    if node.lease is None:
        return ""
    if node.lease.is_active(now):
        return escape(node.lease.owner)
    return f"[dim]{escape(node.lease.owner)} (expired)[/]"


def _format_event_details(event: ProofEvent) -> str:
    """Event payload as a compact key=value string."""
    skip = {"node_id", "statement", "conjecture", "description", "previous_statement", "new_statement"}
    parts = [f"{k}={v}" for k, v in sorted(event.payload.items()) if k not in skip and v not in (None, [], "")]
    return _truncate(", ".join(parts), 70)


# -----------------------------------------------------------------------------
# Setup
# -----------------------------------------------------------------------------


@_reports_errors
def run_init(
    proof_dir: Path,
    conjecture: str,
    author: str,
    *,
    max_depth: int | None = None,
    warn_depth: int | None = None,
    max_children: int | None = None,
    lease_timeout_seconds: int | None = None,
) -> int:
    default = ProofConfig()
    config = ProofConfig(
        max_depth=max_depth if max_depth is not None else default.max_depth,
        warn_depth=warn_depth if warn_depth is not None else default.warn_depth,
        max_children=max_children if max_children is not None else default.max_children,
        lease_timeout=(
            timedelta(seconds=lease_timeout_seconds) if lease_timeout_seconds is not None else default.lease_timeout
        ),
    )
    service = init_proof(proof_dir, conjecture, author, config)
    _err().print(f"initialized proof at {service.proof_dir}", style="green", markup=False)
    return 0


# -----------------------------------------------------------------------------
# Read-only views
# -----------------------------------------------------------------------------


@_reports_errors
def run_status(proof_dir: Path, *, output_json: bool = False) -> int:
    service = open_proof(proof_dir)
    state = service.load_state()
    now = service.now()
    nodes = sorted(state.all_nodes(), key=lambda n: n.node_id)

    if output_json:
        print(json.dumps({"conjecture": state.conjecture, "nodes": [_node_dict(n, now) for n in nodes]}, indent=2))
        return 0

    console = _console()
    console.print(f"[bold]Conjecture:[/bold] {escape(state.conjecture or '')}")

    table = Table(title="Proof tree")
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("type", style="magenta")
    table.add_column("state")
    table.add_column("claimed by")
    table.add_column("statement")

    for n in nodes:
        indent = "  " * (n.node_id.depth - 1)
        state_text = n.epistemic_state.value
        table.add_row(
            indent + str(n.node_id),
            n.node_type.value,
            f"[{_STATE_STYLE[state_text]}]{state_text}[/]",
            _lease_text(n, now),
            escape(_truncate(n.statement)),
        )
    console.print(table)

    counts = {s: sum(1 for n in nodes if n.epistemic_state.value == s) for s in _STATE_STYLE}
    open_challenges = sum(1 for c in state.all_challenges() if c.is_open)
    console.print(
        f"{len(nodes)} node(s): {counts['pending']} pending, {counts['validated']} validated, "
        f"{counts['refuted']} refuted; {open_challenges} open challenge(s)"
    )
    return 0


@_reports_errors
def run_jobs(proof_dir: Path, *, output_json: bool = False) -> int:
    service = open_proof(proof_dir)
    now = service.now()
    jobs = service.load_state().pending_nodes(now)

    if output_json:
        print(json.dumps([_node_dict(n, now) for n in jobs], indent=2))
        return 0

    console = _console()
    if not jobs:
        console.print("No available jobs.", style="dim")
        return 0

    table = Table(title="Available jobs")
    table.add_column("id", style="cyan", no_wrap=True)
    table.add_column("type", style="magenta")
    table.add_column("statement")
    for n in jobs:
        table.add_row(str(n.node_id), n.node_type.value, escape(_truncate(n.statement)))
    console.print(table)
    return 0


@_reports_errors
def run_show(proof_dir: Path, node_id: str, *, output_json: bool = False) -> int:
    service = open_proof(proof_dir)
    state = service.load_state()
    now = service.now()
    node = state.get_node(node_id)
    if node is None:
        raise NodeNotFoundError(node_id)

    challenges = state.challenges_for(node.node_id)
    if output_json:
        data = _node_dict(node, now)
        data["amendments"] = [
            {
                "previous_statement": a.previous_statement,
                "new_statement": a.new_statement,
                "owner": a.owner,
                "amended_at": a.amended_at.isoformat() if a.amended_at else None,
            }
            for a in node.amendments
        ]
        data["challenges"] = [
            {
                "id": c.challenge_id,
                "target": c.target.value,
                "severity": c.severity.value,
                "status": c.status.value,
                "reason": c.reason,
                "raised_by": c.raised_by,
                "resolution": c.resolution,
            }
            for c in challenges
        ]
        print(json.dumps(data, indent=2))
        return 0

    console = _console()
    console.print(f"[bold cyan]{node.node_id}[/] ({node.node_type.value}, {node.epistemic_state.value})")
    console.print(escape(node.statement))
    console.print(f"inference: {node.inference}", style="dim")
    if node.dependencies:
        console.print(f"depends on: {', '.join(map(str, node.dependencies))}")
    if node.validation_dependencies:
        console.print(f"requires validated: {', '.join(map(str, node.validation_dependencies))}")
    if node.active_lease(now):
        console.print(f"claimed by {escape(node.lease.owner)} until {_format_time(node.lease.expires_at)}")
    elif node.lease:
        console.print(f"lease of {escape(node.lease.owner)} expired at {_format_time(node.lease.expires_at)}", style="dim")
    if node.validation_note:
        console.print(f"note: {escape(node.validation_note)}")
    for a in node.amendments:
        console.print(
            f"amended by {escape(a.owner)} at {_format_time(a.amended_at)}, was: {escape(_truncate(a.previous_statement))}",
            style="dim",
        )

    if challenges:
        table = Table(title="Challenges")
        table.add_column("id", style="cyan")
        table.add_column("severity")
        table.add_column("target")
        table.add_column("status")
        table.add_column("reason")
        for c in challenges:
            table.add_row(
                escape(c.challenge_id), c.severity.value, c.target.value, c.status.value, escape(_truncate(c.reason))
            )
        console.print(table)
    return 0


@_reports_errors
def run_defs(proof_dir: Path) -> int:
    definitions = open_proof(proof_dir).load_state().all_definitions()
    console = _console()
    if not definitions:
        console.print("No definitions.", style="dim")
        return 0

    table = Table(title="Definitions")
    table.add_column("name", style="cyan")
    table.add_column("description")
    for d in definitions:
        table.add_row(escape(d.name), escape(_truncate(d.description)))
    console.print(table)
    return 0


@_reports_errors
def run_log(
    proof_dir: Path,
    *,
    node_id: str | None = None,
    limit: int | None = None,
    output_json: bool = False,
) -> int:
    events = open_proof(proof_dir).history(node_id, limit=limit, newest_first=True)

    if output_json:
        print(json.dumps([e.to_dict() for e in events], indent=2))
        return 0

    table = Table(title=f"Ledger history{f' for {node_id}' if node_id else ''}")
    table.add_column("seq", justify="right", style="dim")
    table.add_column("time")
    table.add_column("event", style="magenta")
    table.add_column("node", style="cyan")
    table.add_column("actor")
    table.add_column("details", style="dim")
    for e in events:
        table.add_row(
            str(e.seq),
            _format_time(e.timestamp),
            e.event_type,
            e.node_id or "",
            escape(e.actor),
            escape(_format_event_details(e)),
        )
    _console().print(table)
    return 0


# -----------------------------------------------------------------------------
# Prover operations
# -----------------------------------------------------------------------------


@_reports_errors
def run_claim(proof_dir: Path, node_id: str, owner: str, *, duration_seconds: int | None = None) -> int:
    duration = timedelta(seconds=duration_seconds) if duration_seconds is not None else None
    lease = open_proof(proof_dir).claim_node(node_id, owner, duration)
    _err().print(f"claimed {node_id} for {owner} until {_format_time(lease.expires_at)}", style="green", markup=False)
    return 0


@_reports_errors
def run_release(proof_dir: Path, node_id: str, owner: str) -> int:
    open_proof(proof_dir).release_node(node_id, owner)
    _err().print(f"released {node_id}", style="green", markup=False)
    return 0


@_reports_errors
def run_refine(
    proof_dir: Path,
    parent_id: str,
    owner: str,
    statements: Sequence[str],
    *,
    node_type: str = "claim",
    inference: str = "assumption",
    depends: Sequence[str] = (),
    requires_validated: Sequence[str] = (),
) -> int:
    service = open_proof(proof_dir)
    if len(statements) == 1:
        created = [
            service.refine_node(
                parent_id,
                owner,
                statements[0],
                node_type=node_type,
                inference=inference,
                dependencies=depends,
                validation_dependencies=requires_validated,
            )
        ]
    else:
        specs = [
            ChildSpec(
                statement=s,
                node_type=node_type,
                inference=inference,
                dependencies=tuple(depends),
                validation_dependencies=tuple(requires_validated),
            )
            for s in statements
        ]
        created = service.refine_node_bulk(parent_id, owner, specs)

    err = _err()
    for node_id in created:
        err.print(f"created {node_id}", style="green", markup=False)
    return 0


@_reports_errors
def run_amend(proof_dir: Path, node_id: str, owner: str, statement: str) -> int:
    amendment = open_proof(proof_dir).amend_node(node_id, owner, statement)
    err = _err()
    err.print(f"amended {node_id}", style="green", markup=False)
    err.print(f"  was: {_truncate(amendment.previous_statement)}", style="dim", markup=False)
    return 0


# -----------------------------------------------------------------------------
# Verifier operations
# -----------------------------------------------------------------------------


def _print_summary(console: Console, summary: AcceptanceSummary) -> None:
    console.print(f"accepted {summary.node_id}", style="green", markup=False)
    console.print(
        f"  challenges: {summary.challenges_raised} raised, {summary.challenges_resolved} resolved",
        style="dim",
        markup=False,
    )
    for c in summary.open_challenges:
        console.print(
            f"  open {c.severity.value} challenge {c.challenge_id} ({c.target.value}): {c.reason}",
            style="yellow",
            markup=False,
        )
    if summary.note:
        console.print(f"  note: {summary.note}", style="dim", markup=False)


@_reports_errors
def run_accept(
    proof_dir: Path,
    node_ids: Sequence[str],
    *,
    note: str | None = None,
    agent: str | None = None,
    confirm: bool = False,
) -> int:
    service = open_proof(proof_dir)
    if len(node_ids) == 1:
        summaries = [service.accept_node_with_note(node_ids[0], note, agent=agent, confirm=confirm)]
    else:
        summaries = service.accept_node_bulk(node_ids, note=note, agent=agent, confirm=confirm)

    err = _err()
    for summary in summaries:
        _print_summary(err, summary)
    return 0


@_reports_errors
def run_refute(proof_dir: Path, node_id: str, *, actor: str, reason: str | None = None) -> int:
    superseded = open_proof(proof_dir).refute_node(node_id, actor=actor, reason=reason)
    err = _err()
    err.print(f"refuted {node_id}", style="red", markup=False)
    if superseded:
        err.print(f"  superseded challenge(s): {', '.join(superseded)}", markup=False)
    return 0


@_reports_errors
def run_challenge(
    proof_dir: Path,
    node_id: str,
    challenge_id: str,
    *,
    reason: str,
    target: str = "statement",
    severity: str = "major",
    raised_by: str | None = None,
) -> int:
    open_proof(proof_dir).raise_challenge(challenge_id, node_id, target, reason, severity, raised_by=raised_by)
    _err().print(f"challenge {challenge_id} raised on {node_id}", style="yellow", markup=False)
    return 0


@_reports_errors
def run_resolve_challenge(
    proof_dir: Path, challenge_id: str, *, actor: str, resolution: str | None = None
) -> int:
    open_proof(proof_dir).resolve_challenge(challenge_id, actor=actor, resolution=resolution)
    _err().print(f"challenge {challenge_id} resolved", style="green", markup=False)
    return 0


@_reports_errors
def run_withdraw_challenge(proof_dir: Path, challenge_id: str, *, actor: str) -> int:
    open_proof(proof_dir).withdraw_challenge(challenge_id, actor=actor)
    _err().print(f"challenge {challenge_id} withdrawn", style="green", markup=False)
    return 0


@_reports_errors
def run_def_add(proof_dir: Path, name: str, description: str, *, actor: str) -> int:
    definition_id = open_proof(proof_dir).add_definition(name, description, actor=actor)
    _err().print(f"definition {name} added ({definition_id})", style="green", markup=False)
    return 0
