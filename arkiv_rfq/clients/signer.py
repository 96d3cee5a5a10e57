from abc import abstractmethod

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3


class Signer:
    """Wallet capability used to attribute and sign RFQ mutations."""

    @abstractmethod
    async def get_address(self) -> str:
        ...

    @abstractmethod
    async def sign_payload(self, payload: str) -> str:
        """
        Sign a serialized RFQ record.
        Args:
            payload:str: canonical JSON of the full record being written

        Returns:
            0x-prefixed hex signature
        """


class EthAccountSigner(Signer):
    """Signs payloads as EIP-191 personal messages with a local private key."""

    def __init__(self, private_key: str):
        self.account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self.account.address

    async def get_address(self) -> str:
        return self.account.address

    async def sign_payload(self, payload: str) -> str:
        signed = self.account.sign_message(encode_defunct(text=payload))
        return Web3.to_hex(signed.signature)


def recover_payload_signer(payload: str, signature: str) -> str:
    return Account.recover_message(encode_defunct(text=payload), signature=signature)
