"""CLI entrypoint for proofledger."""

import logging
import sys
from pathlib import Path

import click

from . import __version__

PROOF_DIRNAME = ".proof"


def _auto_detect_proof_dir(start: Path) -> Path | None:
    """Find a ./.proof directory by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / PROOF_DIRNAME
        if candidate.is_dir():
            return candidate
    return None


def _configure_logging(verbose: bool) -> None:
    from rich.console import Console
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(__version__, prog_name="proofledger")
@click.option(
    "--dir",
    "-d",
    "proof_dir",
    envvar="PROOFLEDGER_DIR",
    type=click.Path(exists=False, file_okay=False, dir_okay=True, path_type=Path),
    default=None,
    help="Path to the proof directory (defaults to auto-detected ./.proof)",
)
@click.option("--verbose", is_flag=True, help="Log ledger activity to stderr")
@click.pass_context
def cli(ctx: click.Context, proof_dir: Path | None, verbose: bool) -> None:
    """proofledger - Adversarial proof trees on an append-only ledger.

    Provers claim and refine nodes; verifiers challenge, accept or refute them.
    Every change is an event in ledger.jsonl; state is recomputed by replay.
    """
    ctx.ensure_object(dict)
    _configure_logging(verbose)
    if proof_dir is None:
        proof_dir = _auto_detect_proof_dir(Path.cwd()) or Path.cwd() / PROOF_DIRNAME
    ctx.obj["proof_dir"] = proof_dir.resolve()


# -----------------------------------------------------------------------------
# Setup and views
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("conjecture")
@click.option("--author", required=True, help="Who states the conjecture")
@click.option("--max-depth", type=int, default=None, help="Hard limit on node depth (default 20)")
@click.option("--warn-depth", type=int, default=None, help="Warn when nodes go deeper than this (default 3)")
@click.option("--max-children", type=int, default=None, help="Children allowed per node (default 10)")
@click.option("--lease-timeout", type=int, default=None, metavar="SECONDS", help="Default claim duration")
@click.pass_context
def init(
    ctx: click.Context,
    conjecture: str,
    author: str,
    max_depth: int | None,
    warn_depth: int | None,
    max_children: int | None,
    lease_timeout: int | None,
) -> None:
    """Start a new proof of CONJECTURE.

    Creates the proof directory (default ./.proof) with the ledger and
    meta.json. The conjecture becomes node 1.
    """
    from .commands.proof_cmd import run_init

    exit_code = run_init(
        ctx.obj["proof_dir"],
        conjecture,
        author,
        max_depth=max_depth,
        warn_depth=warn_depth,
        max_children=max_children,
        lease_timeout_seconds=lease_timeout,
    )
    sys.exit(exit_code)


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def status(ctx: click.Context, output_json: bool) -> None:
    """Show the proof tree."""
    from .commands.proof_cmd import run_status

    sys.exit(run_status(ctx.obj["proof_dir"], output_json=output_json))


@cli.command()
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def jobs(ctx: click.Context, output_json: bool) -> None:
    """List pending nodes nobody has claimed."""
    from .commands.proof_cmd import run_jobs

    sys.exit(run_jobs(ctx.obj["proof_dir"], output_json=output_json))


@cli.command()
@click.argument("node_id")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def show(ctx: click.Context, node_id: str, output_json: bool) -> None:
    """Show one node and its challenges."""
    from .commands.proof_cmd import run_show

    sys.exit(run_show(ctx.obj["proof_dir"], node_id, output_json=output_json))


@cli.command()
@click.option("--node", "node_id", default=None, help="Only events for this node")
@click.option("--limit", type=int, default=None, help="Show at most this many events")
@click.option("--json", "output_json", is_flag=True, help="Output results as JSON")
@click.pass_context
def log(ctx: click.Context, node_id: str | None, limit: int | None, output_json: bool) -> None:
    """Show ledger history, newest first."""
    from .commands.proof_cmd import run_log

    sys.exit(run_log(ctx.obj["proof_dir"], node_id=node_id, limit=limit, output_json=output_json))


@cli.command()
@click.pass_context
def defs(ctx: click.Context) -> None:
    """List definitions."""
    from .commands.proof_cmd import run_defs

    sys.exit(run_defs(ctx.obj["proof_dir"]))


# -----------------------------------------------------------------------------
# Prover commands
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("node_id")
@click.option("--owner", required=True, help="Agent taking the claim")
@click.option("--duration", type=int, default=None, metavar="SECONDS", help="Claim length (default: lease timeout)")
@click.pass_context
def claim(ctx: click.Context, node_id: str, owner: str, duration: int | None) -> None:
    """Claim NODE_ID so only OWNER may refine it."""
    from .commands.proof_cmd import run_claim

    sys.exit(run_claim(ctx.obj["proof_dir"], node_id, owner, duration_seconds=duration))


@cli.command()
@click.argument("node_id")
@click.option("--owner", required=True, help="Agent holding the claim")
@click.pass_context
def release(ctx: click.Context, node_id: str, owner: str) -> None:
    """Give up a claim before it expires."""
    from .commands.proof_cmd import run_release

    sys.exit(run_release(ctx.obj["proof_dir"], node_id, owner))


@cli.command()
@click.argument("parent_id")
@click.option("--owner", required=True, help="Agent holding the parent's claim")
@click.option(
    "--child",
    "statements",
    multiple=True,
    required=True,
    help="Child statement. Repeat to add several children atomically.",
)
@click.option(
    "--type",
    "node_type",
    type=click.Choice(["claim", "local_assume", "local_discharge", "case", "qed"]),
    default="claim",
    show_default=True,
)
@click.option("--inference", default="assumption", show_default=True, help="Inference rule used")
@click.option("--depends", multiple=True, help="Logical dependency (node ID). Repeatable.")
@click.option("--requires-validated", multiple=True, help="Node that must be validated first. Repeatable.")
@click.pass_context
def refine(
    ctx: click.Context,
    parent_id: str,
    owner: str,
    statements: tuple[str, ...],
    node_type: str,
    inference: str,
    depends: tuple[str, ...],
    requires_validated: tuple[str, ...],
) -> None:
    """Add children under a claimed PARENT_ID.

    Statements may cite definitions as def:<name>.

    Examples:

        proofledger refine 1 --owner prover --child "Case n even" --child "Case n odd" --type case
    """
    from .commands.proof_cmd import run_refine

    exit_code = run_refine(
        ctx.obj["proof_dir"],
        parent_id,
        owner,
        list(statements),
        node_type=node_type,
        inference=inference,
        depends=depends,
        requires_validated=requires_validated,
    )
    sys.exit(exit_code)


@cli.command()
@click.argument("node_id")
@click.option("--owner", required=True, help="Agent making the correction")
@click.option("--statement", required=True, help="Replacement statement")
@click.pass_context
def amend(ctx: click.Context, node_id: str, owner: str, statement: str) -> None:
    """Correct the statement of a pending NODE_ID.

    A claimed node can only be amended by its claim holder. The previous
    statement stays in the node's history (see show).
    """
    from .commands.proof_cmd import run_amend

    sys.exit(run_amend(ctx.obj["proof_dir"], node_id, owner, statement))


@cli.command("def-add")
@click.argument("name")
@click.argument("description")
@click.option("--actor", default="system", show_default=True)
@click.pass_context
def def_add(ctx: click.Context, name: str, description: str, actor: str) -> None:
    """Add a definition citable as def:NAME."""
    from .commands.proof_cmd import run_def_add

    sys.exit(run_def_add(ctx.obj["proof_dir"], name, description, actor=actor))


# -----------------------------------------------------------------------------
# Verifier commands
# -----------------------------------------------------------------------------


@cli.command()
@click.argument("node_ids", nargs=-1, required=True)
@click.option("--note", default=None, help="Acceptance note, recorded verbatim")
@click.option("--agent", default=None, help="Verifier accepting the node(s)")
@click.option("--confirm", is_flag=True, help="Accept even if --agent raised no challenges")
@click.pass_context
def accept(
    ctx: click.Context, node_ids: tuple[str, ...], note: str | None, agent: str | None, confirm: bool
) -> None:
    """Validate NODE_IDS. Several IDs are accepted all-or-nothing, in order."""
    from .commands.proof_cmd import run_accept

    sys.exit(run_accept(ctx.obj["proof_dir"], list(node_ids), note=note, agent=agent, confirm=confirm))


@cli.command()
@click.argument("node_id")
@click.option("--actor", default="system", show_default=True)
@click.option("--reason", default=None)
@click.pass_context
def refute(ctx: click.Context, node_id: str, actor: str, reason: str | None) -> None:
    """Mark NODE_ID refuted. This cannot be undone."""
    from .commands.proof_cmd import run_refute

    sys.exit(run_refute(ctx.obj["proof_dir"], node_id, actor=actor, reason=reason))


@cli.command()
@click.argument("node_id")
@click.option("--id", "challenge_id", required=True, help="Challenge ID, unique in this proof")
@click.option("--reason", required=True)
@click.option(
    "--target",
    type=click.Choice(
        ["statement", "inference", "context", "dependencies", "scope", "gap", "type_error", "domain", "completeness"]
    ),
    default="statement",
    show_default=True,
)
@click.option(
    "--severity",
    type=click.Choice(["critical", "major", "minor", "note"]),
    default="major",
    show_default=True,
    help="critical and major block acceptance",
)
@click.option("--by", "raised_by", default=None, help="Verifier raising the challenge")
@click.pass_context
def challenge(
    ctx: click.Context,
    node_id: str,
    challenge_id: str,
    reason: str,
    target: str,
    severity: str,
    raised_by: str | None,
) -> None:
    """Raise a challenge against NODE_ID."""
    from .commands.proof_cmd import run_challenge

    exit_code = run_challenge(
        ctx.obj["proof_dir"],
        node_id,
        challenge_id,
        reason=reason,
        target=target,
        severity=severity,
        raised_by=raised_by,
    )
    sys.exit(exit_code)


@cli.command("resolve-challenge")
@click.argument("challenge_id")
@click.option("--actor", default="system", show_default=True)
@click.option("--resolution", default=None, help="How the challenge was addressed")
@click.pass_context
def resolve_challenge(ctx: click.Context, challenge_id: str, actor: str, resolution: str | None) -> None:
    """Mark a challenge resolved."""
    from .commands.proof_cmd import run_resolve_challenge

    sys.exit(run_resolve_challenge(ctx.obj["proof_dir"], challenge_id, actor=actor, resolution=resolution))


@cli.command("withdraw-challenge")
@click.argument("challenge_id")
@click.option("--actor", default="system", show_default=True)
@click.pass_context
def withdraw_challenge(ctx: click.Context, challenge_id: str, actor: str) -> None:
    """Withdraw a challenge raised in error."""
    from .commands.proof_cmd import run_withdraw_challenge

    sys.exit(run_withdraw_challenge(ctx.obj["proof_dir"], challenge_id, actor=actor))


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
