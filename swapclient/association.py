# swapclient/association.py
import asyncio
import logging

from hiero_sdk_python import AccountId, Client, Network, ResponseCode, TokenAssociateTransaction, TokenId

from .errors import AssociationError
from .mirror import MirrorNodeClient

ALREADY_ASSOCIATED = "TOKEN_ALREADY_ASSOCIATED"


class TokenAssociator:
    """
    Makes sure the operator account is associated with a token before swapping into it.
    The SDK client is blocking, so submission runs in a worker thread.
    """
    def __init__(self, mirror: MirrorNodeClient, signer, operator_id: str, logger: logging.Logger,
                 network: str = "mainnet"):
        self.mirror = mirror
        self.signer = signer
        self.operator_id = operator_id
        self.logger = logger
        self.network = network

    async def ensure(self, token_id: str, label: str = "token") -> bool:
        """Returns True if an association transaction was submitted."""
        if token_id.upper() == "HBAR":
            self.logger.info(f"✅ {label} is HBAR (no association needed)")
            return False

        associated = await self.mirror.is_token_associated(self.operator_id, token_id)
        if associated:
            self.logger.info(f"✅ {label} {token_id} already associated")
            return False
        if associated is None:
            self.logger.info("  Proceeding with association attempt anyway...")

        await asyncio.to_thread(self._submit, token_id, label)
        return True

    def _submit(self, token_id: str, label: str):
        client = Client(Network(network=self.network))
        account = AccountId.from_string(self.operator_id)
        client.set_operator(account, self.signer.key)
        try:
            self.logger.info(f"📝 Creating TokenAssociateTransaction for {token_id}...")
            tx = (
                TokenAssociateTransaction()
                .set_account_id(account)
                .add_token_id(TokenId.from_string(token_id))
                .freeze_with(client)
                .sign(self.signer.key)
            )
            receipt = tx.execute(client)
        except Exception as e:
            if ALREADY_ASSOCIATED in str(e):
                self.logger.info(f"✅ {label} already associated")
                return
            raise AssociationError(f"Token association failed for {token_id}: {e}") from e
        finally:
            client.close()

        status = ResponseCode(receipt.status).name
        if status == "SUCCESS":
            self.logger.info(f"✅ {label} successfully associated")
        elif ALREADY_ASSOCIATED in status:
            self.logger.info(f"✅ {label} already associated")
        else:
            raise AssociationError(f"Association failed with status: {status}")
