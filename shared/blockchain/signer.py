"""
Message Signers
===============

EIP-191 personal-message signing used for commitment signatures,
credential proofs, delegation links and user operations.

Version: 0.1.0
"""

from typing import Protocol

from eth_account import Account
from eth_account.messages import SignableMessage, defunct_hash_message, encode_defunct
from eth_utils import to_checksum_address


class Signer(Protocol):
    """Anything that can produce an EIP-191 signature for an address."""

    @property
    def address(self) -> str: ...

    def sign_message(self, message: str | bytes) -> str: ...


def _signable(message: str | bytes) -> SignableMessage:
    if isinstance(message, str):
        return encode_defunct(text=message)
    return encode_defunct(primitive=message)


def hash_message(message: str | bytes) -> bytes:
    """EIP-191 digest of `message`, the value its signature commits to."""
    if isinstance(message, str):
        return bytes(defunct_hash_message(text=message))
    return bytes(defunct_hash_message(primitive=message))


def recover_signer(message: str | bytes, signature: str | bytes) -> str:
    """Recover the checksum address that signed `message`."""
    return to_checksum_address(
        Account.recover_message(_signable(message), signature=signature)
    )


class LocalAccountSigner:
    """Signer backed by an in-process private key."""

    def __init__(self, private_key: str | bytes) -> None:
        self._account = Account.from_key(private_key)

    @classmethod
    def generate(cls) -> "LocalAccountSigner":
        return cls(Account.create().key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign_message(self, message: str | bytes) -> str:
        signed = self._account.sign_message(_signable(message))
        return "0x" + bytes(signed.signature).hex()

    def __repr__(self) -> str:
        return f"LocalAccountSigner(address={self.address})"
