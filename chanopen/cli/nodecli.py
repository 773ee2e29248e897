import asyncio
import click
import logging
from typing import Optional

from chanopen.channel.record import ChannelRecord
from chanopen.channel.transaction import FundingTransaction
from chanopen.node import Node
from chanopen.settings import Settings
from chanopen.store.jsonfile import JsonFileStateStore

logger = logging.getLogger(name=__name__)


async def run_open(
        settings: Settings,
        counterparty: str,
        restore_transaction: Optional[FundingTransaction] = None) -> ChannelRecord:
    """open one channel and shut the node down again, whatever the outcome"""
    node = Node(settings)
    await node.startup()
    try:
        return await node.opener.open(counterparty, restore_transaction)
    finally:
        await node.shutdown()


async def run_listen(
        settings: Settings,
        shutdown_event: Optional[asyncio.Event] = None) -> None:
    """answer opening requests until `shutdown_event` is set or we get interrupted"""
    node = Node(settings)
    await node.startup(listen=True)
    click.echo(f'Accepting payment channels at {node.uri}')
    shutdown_event = shutdown_event or asyncio.Event()
    try:
        await shutdown_event.wait()
        logger.info("Shutdown event received")
    finally:
        logger.info("Running shutdown cleanup...")
        await node.shutdown()


async def run_show(settings: Settings, channel_id: bytes) -> Optional[ChannelRecord]:
    store = JsonFileStateStore(file_path=settings.state_file_path)
    return await store.get(channel_id)
