#!/usr/bin/env python3
"""
Station Sync CLI - Command Line Interface
"""

import asyncio
import json
from typing import Any, Dict, Optional, Tuple

import click

from station_sync.config.config_loader import load_config
from station_sync.core.logging_manager import configure_logging
from station_sync.core.sync_coordinator import SyncCoordinator
from station_sync.main import build_coordinator, main as serve_main


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


async def _with_engine(config: Dict[str, Any], token: Optional[str], action):
    """Open the cache, run one action against the coordinator, then flush and close"""
    coordinator = build_coordinator(config)
    coordinator.set_auth_token(token or config['api'].get('token'))
    await asyncio.to_thread(coordinator.store.open)
    try:
        return await action(coordinator)
    finally:
        await coordinator.shutdown()


@click.group()
@click.option('--config', 'config_path', default=None, help='Path to station.yaml')
@click.pass_context
def cli(ctx, config_path: Optional[str]):
    """Laundry Station Sync Command Line Interface"""
    config = load_config(config_path)
    configure_logging(config.get('logging', {}))
    ctx.obj = config


@cli.command()
@click.argument('tag')
@click.pass_obj
def lookup(config, tag: str):
    """Look up an RFID tag in the local cache"""

    async def run_lookup(coordinator: SyncCoordinator):
        return coordinator.store.lookup_by_rfid(tag)

    item = asyncio.run(_with_engine(config, None, run_lookup))
    if item is None:
        click.echo(f"RFID tag {tag} not found in cache", err=True)
        raise click.exceptions.Exit(1)
    _echo_json(item.to_dict())


@cli.command()
@click.pass_obj
def stats(config):
    """Show cache statistics"""

    async def run_stats(coordinator: SyncCoordinator):
        data = coordinator.store.stats().to_dict()
        data['sample_rfids'] = coordinator.store.sample_rfids(5)
        return data

    _echo_json(asyncio.run(_with_engine(config, None, run_stats)))


@cli.command()
@click.option('--delta', is_flag=True, help='Only fetch items changed since the last sync')
@click.option('--token', default=None, help='Bearer token (defaults to STATION_API_TOKEN)')
@click.pass_obj
def sync(config, delta: bool, token: Optional[str]):
    """Synchronize the cache with the remote API"""

    async def run_sync(coordinator: SyncCoordinator):
        coordinator.broadcaster.subscribe(lambda event: click.echo(f"  [{event.status}] {event.message}"))
        if delta:
            return await coordinator.delta_sync()
        return await coordinator.full_sync()

    result = asyncio.run(_with_engine(config, token, run_sync))
    _echo_json(result.to_dict())
    if not result.success:
        raise click.exceptions.Exit(1)


@cli.command()
@click.option('--token', default=None, help='Bearer token (defaults to STATION_API_TOKEN)')
@click.pass_obj
def drain(config, token: Optional[str]):
    """Replay queued offline operations"""

    async def run_drain(coordinator: SyncCoordinator):
        return await coordinator.process_pending_operations()

    _echo_json(asyncio.run(_with_engine(config, token, run_drain)).to_dict())


@cli.command(name='mark-clean')
@click.argument('item_ids', nargs=-1, required=True)
@click.option('--token', default=None, help='Bearer token (defaults to STATION_API_TOKEN)')
@click.pass_obj
def mark_clean(config, item_ids: Tuple[str, ...], token: Optional[str]):
    """Mark items clean, queueing the request if the API is unreachable"""

    async def run_mark_clean(coordinator: SyncCoordinator):
        return await coordinator.mark_items_clean(item_ids)

    result = asyncio.run(_with_engine(config, token, run_mark_clean))
    _echo_json(result.to_dict())


@cli.command()
@click.pass_obj
def serve(config):
    """Run the local Station API"""
    serve_main(config)


if __name__ == '__main__':
    cli()
