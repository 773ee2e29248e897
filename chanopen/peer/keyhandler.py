import json
import logging
import os
from datetime import datetime

from chanopen.peer.identity import LocalIdentity
from chanopen.settings import IdentitySettings

logger = logging.getLogger(name=__name__)


class KeyHandler:
    """
    Load or create the secp256k1 key this node signs funding transactions
    with.

    Keys are kept in a JSON file holding every key generated so far, the
    latest one is used when `reuse_keys` is set.

    TODO: the secret is written and kept in memory unencrypted
    """
    def __init__(
            self,
            filename: str,
            reuse_keys: bool = IdentitySettings().reuse_keys,
            write_keys: bool = IdentitySettings().write_keys):
        self.filename = filename
        identity = self.read_keys() if reuse_keys else None
        if identity is None:
            identity = self.generate_keys(write_keys=write_keys)
        self.identity = identity

    def generate_keys(self, write_keys: bool) -> LocalIdentity:
        identity = LocalIdentity.generate()
        logger.info(f'generated new identity {identity.pubkey.hex()}')
        if write_keys:
            self.write_keys(identity)
        return identity

    def write_keys(self, identity: LocalIdentity) -> None:
        """append a new key to the JSON file"""
        new_key = {
            'timestamp': datetime.now().isoformat(),
            'privkey': identity.secret_hex,
            'pubkey': identity.pubkey.hex(),
            'note': None
        }

        if os.path.exists(self.filename):
            with open(self.filename, 'r') as file:
                data = json.load(file)
        else:
            data = {'keys': []}
            logger.debug("created new file and initialized key structure.")

        data.setdefault('keys', []).append(new_key)

        with open(self.filename, 'w') as file:
            json.dump(data, file, indent=4)
            logger.info(f'Keys written to {self.filename}')

    def read_keys(self):
        """Read the latest key from the JSON file."""
        if not os.path.exists(self.filename):
            logger.debug(f"could not find keys file {self.filename}")
            return None

        with open(self.filename, 'r') as file:
            data = json.load(file)

        keys = data.get('keys', [])
        if not keys:
            logger.debug(f"no keys found in {self.filename}")
            return None

        latest = max(keys, key=lambda x: x['timestamp'])
        identity = LocalIdentity.from_secret(bytes.fromhex(latest['privkey']))
        logger.debug(f"retrieved latest key {identity.pubkey.hex()}")
        return identity
