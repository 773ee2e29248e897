from pathlib import Path
from pydantic import ValidationError

from chanopen.channel.transaction import FundingTransaction


def format_errors(exc: ValidationError) -> str:
    lines = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err["loc"])
        lines.append(f"{loc}: {err['msg']}")
    return "Configuration error:\n  " + "\n  ".join(lines)


def load_restore_transaction(path: str) -> FundingTransaction:
    """
    read a countersigned restore transaction saved as JSON, e.g. the
    `restore_transaction` of a record in the state file
    """
    return FundingTransaction.model_validate_json(Path(path).read_text(encoding='utf-8'))


def parse_channel_id(value: str) -> bytes:
    channel_id = bytes.fromhex(value.removeprefix('0x'))
    if len(channel_id) != 32:
        raise ValueError('channel id must be 32 bytes')
    return channel_id
