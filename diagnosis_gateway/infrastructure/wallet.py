"""Wallet credential stores.

A wallet holds the enrolled identities the gateway transacts as. The
file-system wallet reads the standard ``<label>.id`` JSON layout written by
ledger enrollment tooling:

    {"credentials": {"certificate": "...", "privateKey": "..."},
     "mspId": "Org1MSP", "type": "X.509", "version": 1}

Security Impact:
    - Private keys are held in memory only for the duration of a lookup
    - Identity repr never includes the private key
    - Labels are restricted to plain file names (no path traversal)
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, Optional

from diagnosis_gateway.domain.ports import CredentialStore, Identity

logger = logging.getLogger(__name__)

_LABEL_PATTERN = re.compile(r"^[A-Za-z0-9_.@-]+$")
ID_SUFFIX = ".id"


def _identity_from_json(label: str, data: dict) -> Identity:
    credentials = data.get("credentials") or {}
    return Identity(
        label=label,
        msp_id=data["mspId"],
        certificate=credentials["certificate"],
        private_key=credentials["privateKey"],
        type=data.get("type", "X.509"),
    )


class FileSystemWallet(CredentialStore):
    """Wallet backed by a directory of ``<label>.id`` files."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def get(self, label: str) -> Optional[Identity]:
        """Read an identity from the wallet directory.

        Parameters:
            label: Identity label

        Returns:
            Identity, or None when no file exists for the label

        Raises:
            ValueError: If the label is not a plain name or the file is corrupt
        """
        if not _LABEL_PATTERN.match(label):
            raise ValueError(f"Invalid identity label: {label!r}")

        id_file = self.path / f"{label}{ID_SUFFIX}"
        if not id_file.is_file():
            logger.debug(f"No identity file for '{label}' in {self.path}")
            return None

        try:
            with open(id_file, "r") as f:
                data = json.load(f)
            return _identity_from_json(label, data)
        except (json.JSONDecodeError, KeyError) as e:
            raise ValueError(f"Corrupt identity file for '{label}': {type(e).__name__}")

    def list(self) -> list[str]:
        if not self.path.is_dir():
            return []
        return sorted(p.name[: -len(ID_SUFFIX)] for p in self.path.glob(f"*{ID_SUFFIX}"))


class InMemoryWallet(CredentialStore):
    """Wallet held in process memory (tests and local tooling)."""

    def __init__(self, identities: Optional[Dict[str, Identity]] = None):
        self._identities: Dict[str, Identity] = dict(identities or {})

    def put(self, identity: Identity) -> None:
        self._identities[identity.label] = identity

    def remove(self, label: str) -> None:
        self._identities.pop(label, None)

    def get(self, label: str) -> Optional[Identity]:
        return self._identities.get(label)

    def list(self) -> list[str]:
        return sorted(self._identities)
