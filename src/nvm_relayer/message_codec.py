"""
Encoding and decoding of cross-domain messages.

The L2 messenger records a message by hashing the ``relayMessage`` calldata
it builds for it, so ``MessageCodec.encode`` must reproduce that calldata byte
for byte. A mismatch does not fail loudly: it derives a different storage slot
and the node returns a non-existence proof.
"""

import logging

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import function_signature_to_4byte_selector
from web3 import Web3

from .errors import MessageDecodeError
from .models import CrossDomainMessage
from .utils.blockchain_encoder import BlockchainEncoder

logger = logging.getLogger(__name__)


class MessageCodec:
    """Codec for ``relayMessage(address,address,bytes,uint256)`` calldata."""

    RELAY_MESSAGE_SIGNATURE = "relayMessage(address,address,bytes,uint256)"
    RELAY_MESSAGE_TYPES = ["address", "address", "bytes", "uint256"]
    RELAY_MESSAGE_SELECTOR = function_signature_to_4byte_selector(RELAY_MESSAGE_SIGNATURE)

    SENT_MESSAGE_SIGNATURE = "SentMessage(bytes)"
    SENT_MESSAGE_TOPIC = bytes(Web3.keccak(text=SENT_MESSAGE_SIGNATURE))

    @classmethod
    def encode(cls, message: CrossDomainMessage) -> bytes:
        """
        Encode a message as the L2 messenger's relayMessage calldata.

        Args:
            message: Message to encode

        Returns:
            4-byte selector followed by the ABI-encoded arguments
        """
        return cls.RELAY_MESSAGE_SELECTOR + encode(
            cls.RELAY_MESSAGE_TYPES,
            [
                Web3.to_checksum_address(message.target),
                Web3.to_checksum_address(message.sender),
                message.message,
                message.message_nonce,
            ],
        )

    @classmethod
    def decode(cls, calldata: bytes) -> CrossDomainMessage:
        """
        Decode relayMessage calldata into a CrossDomainMessage.

        Raises:
            MessageDecodeError: If the selector or argument encoding does not match
        """
        calldata = BlockchainEncoder.to_bytes_safe(calldata)
        if calldata[:4] != cls.RELAY_MESSAGE_SELECTOR:
            raise MessageDecodeError(
                f"Unexpected selector {Web3.to_hex(calldata[:4])}, "
                f"expected {Web3.to_hex(cls.RELAY_MESSAGE_SELECTOR)}"
            )
        try:
            target, sender, payload, nonce = decode(cls.RELAY_MESSAGE_TYPES, calldata[4:])
        except DecodingError as e:
            raise MessageDecodeError(f"Malformed relayMessage arguments: {e}") from e

        return CrossDomainMessage(
            target=Web3.to_checksum_address(target),
            sender=Web3.to_checksum_address(sender),
            message=bytes(payload),
            message_nonce=nonce,
        )

    @classmethod
    def decode_sent_message_event(cls, data: bytes) -> bytes | None:
        """
        Unwrap the ``bytes message`` argument of a SentMessage log.

        Returns:
            The relayMessage calldata, or None when the log carries no payload
        """
        data = BlockchainEncoder.to_bytes_safe(data)
        if not data:
            return None
        try:
            (payload,) = decode(["bytes"], data)
        except DecodingError as e:
            raise MessageDecodeError(f"Malformed SentMessage data: {e}") from e
        return bytes(payload) or None
