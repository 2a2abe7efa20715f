"""Unit tests for ProofAssembler."""

from unittest.mock import MagicMock

import pytest
import rlp

from nvm_relayer.config import ChainConstants
from nvm_relayer.errors import ProofVerificationError, ReceiptNotFound
from nvm_relayer.l2_context import L2Receipt
from nvm_relayer.message_codec import MessageCodec
from nvm_relayer.models import StateTrieProof
from nvm_relayer.proof_manager import ProofAssembler, derive_storage_slot

from conftest import L2_BLOCK, STATE_ROOT, TARGET_A, TARGET_B, TX_HASH, make_message, raw_l2_receipt, sent_message_log

L2_MESSENGER = "0x4200000000000000000000000000000000000007"
PASSER = "0x4200000000000000000000000000000000000000"


@pytest.fixture
def two_messages(fake_l2):
    messages = [make_message(nonce=5, target=TARGET_A), make_message(nonce=6, target=TARGET_B)]
    fake_l2.w3.eth.get_logs.return_value = [
        sent_message_log(message, log_index=i) for i, message in enumerate(messages)
    ]
    return messages


class TestProofAssembler:
    """Test suite for ProofAssembler."""

    @pytest.mark.asyncio
    async def test_pairs_every_message_with_a_proof(self, fake_l2, two_messages):
        pairs = await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER)

        assert [message for message, _ in pairs] == two_messages
        for _, proof in pairs:
            assert proof.state_root == bytes.fromhex(STATE_ROOT[2:])
            assert rlp.decode(proof.state_trie_witness) == [b"\xaa" * 40, b"\xbb" * 40]
            assert rlp.decode(proof.storage_trie_witness) == [b"\xcc" * 40]

    @pytest.mark.asyncio
    async def test_proves_derived_slot_on_message_passer(self, fake_l2, two_messages):
        await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER)

        calls = fake_l2.w3.eth.get_proof.call_args_list
        assert len(calls) == 2
        for call, message in zip(calls, two_messages):
            address, slots, block = call.args
            slot = derive_storage_slot(MessageCodec.encode(message), L2_MESSENGER)
            assert address == PASSER
            assert slots == [int.from_bytes(slot, 'big')]
            assert block == L2_BLOCK

    @pytest.mark.asyncio
    async def test_injected_message_passer(self, fake_l2, two_messages):
        constants = ChainConstants(l2_to_l1_message_passer="0x4200000000000000000000000000000000000042")
        await ProofAssembler(fake_l2.w3, constants=constants).assemble(TX_HASH, L2_MESSENGER)

        address = fake_l2.w3.eth.get_proof.call_args.args[0]
        assert address == "0x4200000000000000000000000000000000000042"

    @pytest.mark.asyncio
    async def test_proofs_are_deterministic(self, fake_l2, two_messages):
        assembler = ProofAssembler(fake_l2.w3)
        first = await assembler.assemble(TX_HASH, L2_MESSENGER)
        second = await assembler.assemble(TX_HASH, L2_MESSENGER)
        assert first == second

    @pytest.mark.asyncio
    async def test_missing_state_root_fails_before_proof_rpc(self, fake_l2, two_messages):
        fake_l2.receipts[TX_HASH] = raw_l2_receipt(root=None)

        with pytest.raises(ReceiptNotFound, match="state root"):
            await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER)

        fake_l2.w3.eth.get_proof.assert_not_called()
        fake_l2.w3.eth.get_logs.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_receipt(self, fake_l2):
        del fake_l2.receipts[TX_HASH]
        with pytest.raises(ReceiptNotFound, match="Unable to find receipt"):
            await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER)
        fake_l2.w3.eth.get_proof.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_messages(self, fake_l2):
        assert await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER) == []
        fake_l2.w3.eth.get_proof.assert_not_called()

    @pytest.mark.asyncio
    async def test_verification_when_enabled(self, fake_l2, two_messages):
        slot_prover = MagicMock()
        slot_prover.prove.return_value = StateTrieProof(account_proof=b"\xc0", storage_proof=b"\xc0")

        assembler = ProofAssembler(fake_l2.w3, slot_prover=slot_prover, verify_proofs=True)
        await assembler.assemble(TX_HASH, L2_MESSENGER)

        assert slot_prover.verify.call_count == 2
        state_root, address, slot, _ = slot_prover.verify.call_args_list[0].args
        assert state_root == bytes.fromhex(STATE_ROOT[2:])
        assert address == PASSER
        assert slot == derive_storage_slot(MessageCodec.encode(two_messages[0]), L2_MESSENGER)

    @pytest.mark.asyncio
    async def test_verification_failure_aborts(self, fake_l2, two_messages):
        slot_prover = MagicMock()
        slot_prover.prove.return_value = StateTrieProof(account_proof=b"\xc0", storage_proof=b"\xc0")
        slot_prover.verify.side_effect = ProofVerificationError("slot is empty")

        assembler = ProofAssembler(fake_l2.w3, slot_prover=slot_prover, verify_proofs=True)
        with pytest.raises(ProofVerificationError):
            await assembler.assemble(TX_HASH, L2_MESSENGER)

    @pytest.mark.asyncio
    async def test_verification_disabled_by_default(self, fake_l2, two_messages):
        slot_prover = MagicMock()
        slot_prover.prove.return_value = StateTrieProof(account_proof=b"\xc0", storage_proof=b"\xc0")

        await ProofAssembler(fake_l2.w3, slot_prover=slot_prover).assemble(TX_HASH, L2_MESSENGER)
        slot_prover.verify.assert_not_called()

    @pytest.mark.asyncio
    async def test_supplied_receipt_is_not_refetched(self, fake_l2, two_messages):
        receipt = L2Receipt.from_rpc(raw_l2_receipt())

        pairs = await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER, receipt=receipt)

        assert len(pairs) == 2
        fake_l2.w3.provider.make_request.assert_not_called()
        assert fake_l2.w3.eth.get_logs.call_args.args[0]['fromBlock'] == L2_BLOCK

    @pytest.mark.asyncio
    async def test_supplied_receipt_without_root(self, fake_l2, two_messages):
        receipt = L2Receipt.from_rpc(raw_l2_receipt(root=None))

        with pytest.raises(ReceiptNotFound, match="state root"):
            await ProofAssembler(fake_l2.w3).assemble(TX_HASH, L2_MESSENGER, receipt=receipt)
        fake_l2.w3.eth.get_logs.assert_not_called()
