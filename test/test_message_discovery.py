"""Unit tests for MessageDiscovery."""

import logging

import pytest
from hexbytes import HexBytes

from nvm_relayer.errors import L2RpcError, TransactionNotFound
from nvm_relayer.message_codec import MessageCodec
from nvm_relayer.message_discovery import MessageDiscovery

from conftest import L2_BLOCK, OTHER_TX_HASH, TARGET_A, TARGET_B, TX_HASH, make_message, raw_l2_transaction, sent_message_log

L2_MESSENGER = "0x4200000000000000000000000000000000000007"


@pytest.fixture
def discovery(fake_l2):
    return MessageDiscovery(fake_l2.w3, L2_MESSENGER)


class TestMessageDiscovery:
    """Test suite for MessageDiscovery."""

    @pytest.mark.asyncio
    async def test_two_messages_in_emission_order(self, fake_l2, discovery):
        """A block with SentMessage nonces 5 and 6 yields both, in order."""
        first = make_message(nonce=5, target=TARGET_A)
        second = make_message(nonce=6, target=TARGET_B)
        fake_l2.w3.eth.get_logs.return_value = [
            sent_message_log(first, log_index=0),
            sent_message_log(second, log_index=1),
        ]

        messages = await discovery.discover(TX_HASH)

        assert messages == [first, second]
        assert [m.message_nonce for m in messages] == [5, 6]
        assert [m.target for m in messages] == [TARGET_A, TARGET_B]

    @pytest.mark.asyncio
    async def test_queries_exactly_one_block(self, fake_l2, discovery):
        await discovery.discover(TX_HASH)

        filter_params = fake_l2.w3.eth.get_logs.call_args.args[0]
        assert filter_params['fromBlock'] == L2_BLOCK
        assert filter_params['toBlock'] == L2_BLOCK
        assert filter_params['address'] == L2_MESSENGER
        assert filter_params['topics'] == ["0x" + MessageCodec.SENT_MESSAGE_TOPIC.hex()]

    @pytest.mark.asyncio
    async def test_orders_by_log_index(self, fake_l2, discovery):
        first = make_message(nonce=5)
        second = make_message(nonce=6)
        fake_l2.w3.eth.get_logs.return_value = [
            sent_message_log(second, log_index=4),
            sent_message_log(first, log_index=2),
        ]

        messages = await discovery.discover(TX_HASH)
        assert [m.message_nonce for m in messages] == [5, 6]

    @pytest.mark.asyncio
    async def test_skips_events_without_payload(self, fake_l2, discovery):
        empty_log = sent_message_log(make_message(nonce=1), log_index=0)
        empty_log['data'] = HexBytes(b"")
        fake_l2.w3.eth.get_logs.return_value = [
            empty_log,
            sent_message_log(make_message(nonce=2), log_index=1),
        ]

        messages = await discovery.discover(TX_HASH)
        assert [m.message_nonce for m in messages] == [2]

    @pytest.mark.asyncio
    async def test_empty_block(self, discovery):
        assert await discovery.discover(TX_HASH) == []

    @pytest.mark.asyncio
    async def test_block_hash_filter(self, fake_l2, discovery):
        block_hash = "0x" + "77" * 32
        await discovery.discover_by_block(block_hash)

        filter_params = fake_l2.w3.eth.get_logs.call_args.args[0]
        assert filter_params['blockHash'] == block_hash
        assert 'fromBlock' not in filter_params

    @pytest.mark.asyncio
    async def test_unknown_transaction(self, discovery):
        with pytest.raises(TransactionNotFound):
            await discovery.discover("0x" + "00" * 32)

    @pytest.mark.asyncio
    async def test_pending_transaction(self, fake_l2, discovery):
        fake_l2.transactions[TX_HASH] = raw_l2_transaction(blockNumber=None)
        with pytest.raises(TransactionNotFound, match="not yet included"):
            await discovery.discover(TX_HASH)
        fake_l2.w3.eth.get_logs.assert_not_called()

    @pytest.mark.asyncio
    async def test_rpc_error_is_raised(self, fake_l2, discovery):
        fake_l2.w3.provider.make_request.side_effect = None
        fake_l2.w3.provider.make_request.return_value = {'error': {'code': -32000, 'message': "header not found"}}
        with pytest.raises(L2RpcError, match="header not found"):
            await discovery.discover(TX_HASH)

    @pytest.mark.asyncio
    async def test_multiple_transactions_in_block_known_gap(self, fake_l2, discovery, caplog):
        """Messages of another transaction in the same block are misattributed, but reported."""
        own = make_message(nonce=5)
        foreign = make_message(nonce=9)
        fake_l2.w3.eth.get_logs.return_value = [
            sent_message_log(own, log_index=0, tx_hash=TX_HASH),
            sent_message_log(foreign, log_index=1, tx_hash=OTHER_TX_HASH),
        ]

        with caplog.at_level(logging.WARNING, logger="nvm_relayer.message_discovery"):
            messages = await discovery.discover(TX_HASH)

        assert [m.message_nonce for m in messages] == [5, 9]
        assert "more than one transaction" in caplog.text
