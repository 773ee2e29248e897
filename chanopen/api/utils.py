import logging
from fastapi import HTTPException
from typing import Optional

from chanopen.node import Node
from chanopen.opening.opener import ChannelOpener
from chanopen.settings import Settings

logger = logging.getLogger(__name__)


class NodeManager:
    """holds the one node the API serves, started with the app"""

    def __init__(self):
        self.node: Optional[Node] = None

    async def start(self, settings: Optional[Settings] = None) -> None:
        settings = settings or Settings()
        try:
            node = Node(settings)
        except ValueError as e:
            logger.error(f"Could not start node: {e}")
            return
        await node.startup(listen=True)
        self.node = node
        logger.info(f"API node accepting payment channels at {node.uri}")

    async def shutdown(self) -> None:
        if self.node:
            await self.node.shutdown()
            self.node = None


node_manager = NodeManager()


async def get_channel_opener() -> ChannelOpener:
    if node_manager.node is None:
        raise HTTPException(status_code=503, detail="Node not running, check the ledger settings")
    return node_manager.node.opener
