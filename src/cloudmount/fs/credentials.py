"""Credential decryption collaborator."""

from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class Decryptor(Protocol):
    """Turns a stored credential back into plaintext.

    The encryption scheme belongs to the host application; cloudmount only
    calls ``decrypt`` when a driver builds its client.
    """

    def decrypt(self, ciphertext: str, secret: str) -> str: ...


class PlaintextDecryptor:
    """Decryptor for credentials stored unencrypted (local development, tests)."""

    def decrypt(self, ciphertext: str, secret: str) -> str:
        return ciphertext
