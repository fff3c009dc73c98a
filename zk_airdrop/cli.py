"""
Command-Line Interface for the zk airdrop claim engine

Operates on a CBOR state file so groups, balances, airdrops and consumed
nullifiers persist between invocations.
"""

import json
import logging
import sys
from contextlib import contextmanager
from pathlib import Path

import click
import trio
from rich.console import Console
from rich.table import Table

from zk_airdrop import __version__, print_disclaimer
from zk_airdrop.claims import (
    AirdropError,
    AirdropSystem,
    ClaimRejected,
    Identity,
    ProofBundle,
    load_config,
)
from zk_airdrop.claims.events import ClaimSettled
from zk_airdrop.network import (
    ClaimRequest,
    ProtocolError,
    bound_port,
    serve_claims,
    submit_claim,
)

DEFAULT_STATE = "zk_airdrop_state.cbor"


@contextmanager
def _handle_errors():
    try:
        yield
    except ClaimRejected as e:
        click.echo(click.style(f"✗ Claim rejected ({type(e).__name__}): {e}", fg="red"), err=True)
        sys.exit(1)
    except (AirdropError, ProtocolError, ValueError, OSError, trio.TooSlowError) as e:
        click.echo(click.style(f"✗ Error: {e}", fg="red"), err=True)
        sys.exit(1)


def _load(ctx) -> AirdropSystem:
    config = None
    if ctx.obj["config"]:
        config = load_config(ctx.obj["config"])
    return AirdropSystem.load(ctx.obj["state"], config=config)


def _save(ctx, system: AirdropSystem) -> None:
    system.save(ctx.obj["state"])


def _read_json(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")
    return data


def _parse_endpoint(value: str):
    host, sep, port = value.rpartition(":")
    if not sep or not host or not port.isdigit():
        raise click.BadParameter("expected HOST:PORT", param_hint="--remote")
    return host, int(port)


@click.group()
@click.version_option(version=__version__)
@click.option(
    '--state',
    type=click.Path(dir_okay=False),
    default=DEFAULT_STATE,
    envvar='ZK_AIRDROP_STATE',
    show_default=True,
    help='State file to read and update'
)
@click.option(
    '--config',
    'config_path',
    type=click.Path(exists=True, dir_okay=False),
    help='YAML configuration file (overrides the configuration stored in the state)'
)
@click.option(
    '--verbose',
    is_flag=True,
    help='Enable verbose output'
)
@click.pass_context
def main(ctx, state, config_path, verbose):
    """
    zk airdrop - anonymous airdrop claims

    Members of a group claim a fixed payout once per airdrop by proving
    membership, without revealing which member they are.

    ⚠️  The default mock verifier is for testing only.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["state"] = state
    ctx.obj["config"] = config_path
    ctx.obj["verbose"] = verbose


@main.command()
@click.option('--force', is_flag=True, help='Overwrite an existing state file')
@click.pass_context
def init(ctx, force):
    """Create an empty state file."""
    path = Path(ctx.obj["state"])
    if path.exists() and not force:
        click.echo(click.style(f"✗ State file already exists: {path}", fg="red"), err=True)
        sys.exit(1)
    with _handle_errors():
        config = load_config(ctx.obj["config"])
        system = AirdropSystem.build(config)
        _save(ctx, system)
    if ctx.obj["verbose"]:
        print_disclaimer()
    click.echo(click.style(f"✓ Initialized {path}", fg="green"))
    click.echo(f"  Engine address: {config.engine_address}")
    click.echo(f"  Root window: {config.root_validity_window:g}s, history: {config.root_history_capacity}")


@main.command('create-group')
@click.argument('group_id', type=int)
@click.option('--admin', required=True, help='Account allowed to add members')
@click.pass_context
def create_group(ctx, group_id, admin):
    """Create an empty membership group."""
    with _handle_errors():
        system = _load(ctx)
        root = system.create_group(group_id, admin)
        _save(ctx, system)
    click.echo(click.style(f"✓ Created group {group_id}", fg="green"))
    click.echo(f"  Root: {root}")


@main.command('add-member')
@click.argument('group_id', type=int)
@click.argument('commitment', type=int)
@click.option('--admin', required=True, help='Group admin account')
@click.pass_context
def add_member(ctx, group_id, commitment, admin):
    """Admit an identity commitment to a group."""
    with _handle_errors():
        system = _load(ctx)
        root = system.add_member(group_id, commitment, admin)
        _save(ctx, system)
    click.echo(click.style(f"✓ Added member to group {group_id}", fg="green"))
    click.echo(f"  New root: {root}")


@main.command('new-identity')
@click.option(
    '--output',
    type=click.Path(dir_okay=False),
    help='Write the identity secrets to this JSON file'
)
def new_identity(output):
    """Generate a member identity and print its commitment."""
    identity = Identity.generate()
    if output:
        data = {"nullifier": str(identity.nullifier), "trapdoor": str(identity.trapdoor)}
        Path(output).write_text(json.dumps(data, indent=2), encoding="utf-8")
        click.echo(click.style(f"✓ Identity saved to: {output}", fg="green"))
    else:
        click.echo(click.style("⚠️  Keep these secrets private", fg="yellow"))
        click.echo(f"Nullifier: {identity.nullifier}")
        click.echo(f"Trapdoor: {identity.trapdoor}")
    click.echo(f"Commitment: {identity.commitment}")


@main.command()
@click.argument('token')
@click.argument('account')
@click.argument('amount', type=int)
@click.pass_context
def mint(ctx, token, account, amount):
    """Credit AMOUNT of TOKEN to ACCOUNT."""
    with _handle_errors():
        system = _load(ctx)
        balance = system.mint(token, account, amount)
        _save(ctx, system)
    click.echo(click.style(f"✓ Minted {amount} {token} to {account}", fg="green"))
    click.echo(f"  Balance: {balance}")


@main.command()
@click.argument('token')
@click.argument('owner')
@click.argument('amount', type=int)
@click.option('--spender', help='Spender to approve (default: the claim engine)')
@click.pass_context
def approve(ctx, token, owner, amount, spender):
    """Let the engine (or SPENDER) draw AMOUNT of TOKEN from OWNER."""
    with _handle_errors():
        system = _load(ctx)
        system.approve(token, owner, amount, spender=spender)
        _save(ctx, system)
        spender = spender or system.engine.engine_address
    click.echo(click.style(f"✓ {owner} approved {amount} {token} for {spender}", fg="green"))


@main.command()
@click.argument('token')
@click.argument('accounts', nargs=-1, required=True)
@click.pass_context
def balance(ctx, token, accounts):
    """Show TOKEN balances for ACCOUNTS."""
    with _handle_errors():
        system = _load(ctx)
        rows = [(account, system.balance_of(token, account)) for account in accounts]

    table = Table(title=f"{token} balances")
    table.add_column("Account")
    table.add_column("Balance", justify="right")
    for account, amount in rows:
        table.add_row(account, str(amount))
    Console().print(table)


@main.command('create-airdrop')
@click.option('--group', 'group_id', type=int, required=True, help='Eligible group')
@click.option('--token', required=True, help='Token paid out')
@click.option('--holder', required=True, help='Account funding the payouts')
@click.option('--amount', type=int, required=True, help='Payout per claim')
@click.option('--manager', required=True, help='Account creating the airdrop')
@click.pass_context
def create_airdrop(ctx, group_id, token, holder, amount, manager):
    """Register an airdrop for a group."""
    with _handle_errors():
        system = _load(ctx)
        airdrop_id = system.create_airdrop(group_id, token, holder, amount, manager=manager)
        _save(ctx, system)
        engine_address = system.engine.engine_address
    click.echo(click.style(f"✓ Created airdrop {airdrop_id}", fg="green"))
    click.echo(f"  Holder must approve {engine_address} for {amount} {token} per claim")


@main.command('show-airdrop')
@click.argument('airdrop_id', type=int, required=False)
@click.pass_context
def show_airdrop(ctx, airdrop_id):
    """Show one airdrop, or all of them."""
    with _handle_errors():
        system = _load(ctx)
        if airdrop_id is None:
            airdrops = system.list_airdrops()
        else:
            airdrops = [system.get_airdrop(airdrop_id)]
        claimed = {a.airdrop_id: system.nullifiers.consumed_count(a.airdrop_id) for a in airdrops}

    table = Table(title="Airdrops")
    for column in ("ID", "Group", "Token", "Amount", "Holder", "Manager", "Claims"):
        table.add_column(column)
    for a in airdrops:
        table.add_row(
            str(a.airdrop_id),
            str(a.group_id),
            a.token,
            str(a.amount),
            a.holder,
            a.manager,
            str(claimed[a.airdrop_id]),
        )
    Console().print(table)


@main.command()
@click.argument('airdrop_id', type=int)
@click.argument('receiver')
@click.option(
    '--identity',
    'identity_path',
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help='Identity JSON written by new-identity'
)
@click.option(
    '--output',
    type=click.Path(dir_okay=False),
    default='claim_proof.json',
    show_default=True,
    help='Where to write the proof bundle'
)
@click.pass_context
def prove(ctx, airdrop_id, receiver, identity_path, output):
    """Build a (mock) claim proof for RECEIVER."""
    with _handle_errors():
        data = _read_json(identity_path)
        identity = Identity(nullifier=int(data["nullifier"]), trapdoor=int(data["trapdoor"]))
        system = _load(ctx)
        bundle = system.prove(identity, airdrop_id, receiver)
        Path(output).write_text(json.dumps(bundle.to_dict(), indent=2), encoding="utf-8")
    click.echo(click.style(f"✓ Proof saved to: {output}", fg="green"))
    click.echo(f"  Nullifier hash: {bundle.nullifier_hash}")


@main.command()
@click.argument('airdrop_id', type=int)
@click.argument('receiver')
@click.option(
    '--proof',
    'proof_path',
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help='Proof bundle JSON written by prove'
)
@click.option('--remote', help='Submit to a claim server at HOST:PORT instead of the local state')
@click.pass_context
def claim(ctx, airdrop_id, receiver, proof_path, remote):
    """Claim an airdrop payout for RECEIVER."""
    with _handle_errors():
        data = _read_json(proof_path)
        root = int(data["root"])
        nullifier_hash = int(data["nullifier_hash"])
        proof = tuple(int(p) for p in data["proof"])

        if remote:
            host, port = _parse_endpoint(remote)
            bundle = ProofBundle(root=root, nullifier_hash=nullifier_hash, proof=proof)
            req = ClaimRequest.from_bundle(airdrop_id, receiver, bundle)
            resp = trio.run(submit_claim, host, port, req)
            if not resp.ok:
                click.echo(click.style(f"✗ Claim rejected ({resp.code}): {resp.err}", fg="red"), err=True)
                sys.exit(1)
            amount, token = resp.amount, resp.token
        else:
            system = _load(ctx)
            receipt = system.claim(airdrop_id, receiver, root, nullifier_hash, proof)
            _save(ctx, system)
            amount, token = receipt.amount, receipt.token

    click.echo(click.style(f"✓ Claimed {amount} {token} for {receiver}", fg="green"))


@main.command()
@click.option('--host', default='127.0.0.1', show_default=True, help='Interface to bind')
@click.option('--port', type=int, default=4600, show_default=True, help='TCP port (0 for ephemeral)')
@click.pass_context
def serve(ctx, host, port):
    """Accept claims over TCP, persisting state after every settled claim."""
    with _handle_errors():
        system = _load(ctx)

    system.events.subscribe(lambda _event: _save(ctx, system), ClaimSettled)

    async def _serve():
        async with trio.open_nursery() as nursery:
            listeners = await nursery.start(serve_claims, system, host, port)
            click.echo(click.style(f"✓ Serving claims on {host}:{bound_port(listeners)}", fg="green"))
            click.echo("Press Ctrl+C to stop")

    try:
        trio.run(_serve)
    except KeyboardInterrupt:
        click.echo("\nStopping server...")
    finally:
        _save(ctx, system)


@main.command()
def version():
    """Show version information."""
    click.echo(f"zk-airdrop version {__version__}")
    print_disclaimer()


if __name__ == '__main__':
    main()
