"""
NVM Relayer package.

Relays L2 to L1 cross-domain messages with storage inclusion proofs.
"""

from .config import ChainConstants, RelayConfig, RelayerConfig
from .errors import ErrorKind, classify_error
from .message_codec import MessageCodec
from .message_discovery import MessageDiscovery
from .models import CrossDomainMessage, CrossDomainMessageProof, RelayOutcome, RelayResult
from .proof_manager import ProofAssembler, derive_storage_slot
from .relay_submitter import RelaySubmitter
from .relayer import NVMRelayer
from .storage_proof import StorageSlotProof

__all__ = [
    "ChainConstants",
    "RelayConfig",
    "RelayerConfig",
    "ErrorKind",
    "classify_error",
    "MessageCodec",
    "MessageDiscovery",
    "CrossDomainMessage",
    "CrossDomainMessageProof",
    "RelayOutcome",
    "RelayResult",
    "ProofAssembler",
    "derive_storage_slot",
    "RelaySubmitter",
    "NVMRelayer",
    "StorageSlotProof",
]
__version__ = "0.1.0"
