# swapclient/signing.py
from hiero_sdk_python import PrivateKey
from hiero_sdk_python.transaction.transaction import Transaction

from .errors import MalformedTransaction, ValidationError


class HederaSigner:
    """
    Wraps the operator's private key. The key string is parsed once and never logged.
    """
    def __init__(self, private_key: str):
        try:
            self._key = PrivateKey.from_string(private_key)
        except Exception as e:
            raise ValidationError(f"Invalid private key: {e}") from e

    @property
    def key(self) -> PrivateKey:
        return self._key

    @property
    def public_key_hex(self) -> str:
        return self._key.public_key().to_string_der()

    def sign_bytes(self, data: bytes) -> bytes:
        """Raw signature, used for the gateway login challenge."""
        return self._key.sign(data)

    def sign_transaction(self, tx_bytes: bytes) -> bytes:
        """
        Deserializes a gateway-built transaction, adds the operator signature and reserializes it.
        """
        try:
            tx = Transaction.from_bytes(tx_bytes)
        except Exception as e:
            raise MalformedTransaction(f"Smart Node returned an undecodable transaction: {e}") from e
        tx.sign(self._key)
        return tx.to_bytes()
