"""Tests for the single-flight transfer slots and the transfer log."""

import unittest

from swiftshare.file import FileMetadata
from swiftshare.transfer import (
    ChunkSet, ChunkStore, Direction, TransferLog, TransferRecord, TransferState,
)


def make_store(total=3):
    return ChunkStore.from_metadata(
        FileMetadata('in1', 'a.bin', total * 4, 'application/octet-stream', total)
    )


class TestChunkStore(unittest.TestCase):

    def test_store_reports_byte_delta(self):
        store = make_store()
        self.assertEqual(store.store(0, b'abcd'), 4)
        # Identical redelivery adds nothing
        self.assertEqual(store.store(0, b'abcd'), 0)
        self.assertEqual(store.stored_count, 1)
        self.assertEqual(store.stored_bytes, 4)

    def test_assemble_in_index_order(self):
        store = make_store()
        store.store(2, b'c')
        store.store(0, b'a')
        with self.assertRaises(ValueError):
            store.assemble()

        store.store(1, b'b')
        self.assertTrue(store.is_complete)
        self.assertEqual(store.assemble(), b'abc')


class TestTransferState(unittest.TestCase):

    def setUp(self):
        self.state = TransferState()

    def test_send_rejected_while_receiving(self):
        self.assertTrue(self.state.begin_receive(make_store()))
        self.assertFalse(self.state.begin_send(ChunkSet('out1', [b'x'])))
        self.assertIsNone(self.state.outbound)

    def test_receive_allowed_while_sending(self):
        self.assertTrue(self.state.begin_send(ChunkSet('out1', [b'x'])))
        self.assertTrue(self.state.begin_receive(make_store()))
        self.assertFalse(self.state.begin_receive(make_store()))

    def test_reset_is_idempotent(self):
        self.state.begin_send(ChunkSet('out1', [b'x']))
        self.state.reset()
        self.state.reset()
        self.assertFalse(self.state.is_busy)


class TestTransferLog(unittest.TestCase):

    def setUp(self):
        self.log = TransferLog()
        self.changes = []
        self.log.on_change(self.changes.append)

    def test_update_replaces_record_by_id(self):
        self.log.add(TransferRecord('a', 'a.txt', 10, Direction.SENT, transferring=True))
        updated = self.log.update(Direction.SENT, 'a', progress=50.0)

        self.assertEqual(self.log.sent_files, [updated])
        self.assertEqual(updated.progress, 50.0)
        self.assertEqual(len(self.changes), 2)
        self.assertIsNone(self.log.update(Direction.RECEIVED, 'a', progress=1.0))

    def test_is_finished(self):
        record = TransferRecord('a', 'a.txt', 10, Direction.SENT, transferring=True)
        self.assertFalse(record.is_finished)
        self.log.add(record)
        self.assertTrue(self.log.update(Direction.SENT, 'a', transferring=False,
                                        cancelled=True).is_finished)

    def test_reset_clears_records_and_counters(self):
        self.log.add(TransferRecord('a', 'a.txt', 10, Direction.RECEIVED))
        self.log.total_received_bytes = 10
        self.log.set_progress(40.0)
        self.log.reset()

        self.assertEqual(self.log.received_files, [])
        self.assertEqual(self.log.total_received_bytes, 0)
        self.assertFalse(self.log.is_transferring)
        self.assertEqual(self.log.transfer_progress, 0.0)

    def test_failing_callback_does_not_stop_others(self):
        def broken(record):
            raise RuntimeError("boom")

        log = TransferLog()
        seen = []
        log.on_change(broken)
        log.on_change(seen.append)
        with self.assertLogs('swiftshare.transfer.records', level='ERROR'):
            log.add(TransferRecord('a', 'a.txt', 1, Direction.SENT))
        self.assertEqual(len(seen), 1)


if __name__ == "__main__":
    unittest.main()
