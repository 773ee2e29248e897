from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from chanopen.channel.record import ChannelRecord


def merge_record(
        existing: Optional[ChannelRecord],
        channel_id: bytes,
        fields: Dict[str, Any]) -> ChannelRecord:
    """new record with `fields` laid over `existing`"""
    base = existing.model_dump() if existing else {}
    return ChannelRecord.model_validate({**base, **fields, 'channel_id': channel_id})


class StateStoreBase(ABC):
    """
    channel records keyed by channel id, `set` merges into what is stored
    """
    @abstractmethod
    async def get(self, channel_id: bytes) -> Optional[ChannelRecord]:
        pass

    @abstractmethod
    async def set(self, channel_id: bytes, fields: Dict[str, Any]) -> ChannelRecord:
        pass

    @abstractmethod
    async def all(self) -> List[ChannelRecord]:
        pass


class MemoryStateStore(StateStoreBase):
    def __init__(self):
        self.records: Dict[bytes, ChannelRecord] = {}

    async def get(self, channel_id: bytes) -> Optional[ChannelRecord]:
        return self.records.get(channel_id)

    async def set(self, channel_id: bytes, fields: Dict[str, Any]) -> ChannelRecord:
        record = merge_record(self.records.get(channel_id), channel_id, fields)
        self.records[channel_id] = record
        return record

    async def all(self) -> List[ChannelRecord]:
        return list(self.records.values())
