import asyncio
import json
import logging
import os
from typing import Any, Dict, List, Optional

from chanopen.channel.record import ChannelRecord
from chanopen.settings import StoreSettings
from chanopen.store.base import StateStoreBase, merge_record

logger = logging.getLogger(name=__name__)


class JsonFileStateStore(StateStoreBase):
    """
    channel records in one JSON file, `{"channels": {<hex id>: {...}}}`,
    written through on every `set`
    """
    def __init__(self, file_path: str = StoreSettings().state_file_path):
        self.file_path = file_path
        self._lock = asyncio.Lock()

    def _read_state_file(self) -> Dict[str, Any]:
        if os.path.exists(self.file_path):
            with open(self.file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            data = {}
        data.setdefault("channels", {})
        return data

    def _write_state_file(self, data: Dict[str, Any]) -> None:
        directory = os.path.dirname(self.file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.file_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=4)

    async def get(self, channel_id: bytes) -> Optional[ChannelRecord]:
        raw = self._read_state_file()["channels"].get(channel_id.hex())
        if raw is None:
            return None
        return ChannelRecord.model_validate(raw)

    async def set(self, channel_id: bytes, fields: Dict[str, Any]) -> ChannelRecord:
        async with self._lock:
            data = self._read_state_file()
            raw = data["channels"].get(channel_id.hex())
            existing = ChannelRecord.model_validate(raw) if raw else None
            record = merge_record(existing, channel_id, fields)
            data["channels"][channel_id.hex()] = record.model_dump(mode='json')
            self._write_state_file(data)
        logger.debug(f'wrote channel {channel_id.hex()} at {record.state} to {self.file_path}')
        return record

    async def all(self) -> List[ChannelRecord]:
        channels = self._read_state_file()["channels"]
        return [ChannelRecord.model_validate(raw) for raw in channels.values()]
