"""Tests for the sending side of a transfer."""

import asyncio
import base64
import os
import tempfile
import unittest
from pathlib import Path

from swiftshare.notify import CollectingNotifier
from swiftshare.transfer import (
    ControlMessage, FileSender, MessageEvent, SizeLimits,
    TransferLog, TransferState,
)
from swiftshare.transfer.state import ChunkStore
from swiftshare.file import FileMetadata

from tests.support import FakeSession


class SenderTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.session = FakeSession()
        self.state = TransferState()
        self.records = TransferLog()
        self.notifier = CollectingNotifier()
        self.sender = FileSender(self.session, self.state, self.records, self.notifier)

    def titles(self):
        return [n.title for n in self.notifier.notices]

    async def serve(self, chunk_no):
        await self.sender.handle_send_chunk_ack(ControlMessage.send_chunk_ack(chunk_no))


class TestInitiateSend(SenderTestCase):

    async def test_rejected_when_not_connected(self):
        self.session.is_connected = False

        self.assertFalse(await self.sender.initiate_send_bytes(b'abc', 'a.txt'))
        self.assertEqual(self.titles(), ['Connection Error'])
        self.assertEqual(self.session.sent, [])
        self.assertEqual(self.records.sent_files, [])

    async def test_announces_file(self):
        self.assertTrue(await self.sender.initiate_send_bytes(b'x' * 150000, 'photo.jpg'))

        [ack] = self.session.sent
        self.assertEqual(ack.event, MessageEvent.FILE_ACK)
        info = ack.get('file')
        self.assertEqual(info['name'], 'photo.jpg')
        self.assertEqual(info['size'], 150000)
        self.assertEqual(info['mimeType'], 'image/jpeg')
        self.assertEqual(info['totalChunks'], 3)

        [record] = self.records.sent_files
        self.assertEqual(record.id, info['id'])
        self.assertTrue(record.transferring)
        self.assertEqual(record.progress, 0.0)
        self.assertTrue(self.records.is_transferring)

    async def test_second_send_rejected_first_unaffected(self):
        first, second = await asyncio.gather(
            self.sender.initiate_send_bytes(b'abc', 'a.txt'),
            self.sender.initiate_send_bytes(b'def', 'b.txt'),
        )

        self.assertTrue(first)
        self.assertFalse(second)
        self.assertIn('Transfer in Progress', self.titles())
        self.assertEqual(len(self.records.sent_files), 1)
        self.assertEqual(len(self.session.sent), 1)

        await self.serve(0)
        [record] = self.records.sent_files
        self.assertEqual(record.name, 'a.txt')
        self.assertTrue(record.available)
        self.assertEqual(base64.b64decode(self.session.sent[-1].get('chunk')), b'abc')

    async def test_rejected_while_receiving(self):
        self.state.begin_receive(ChunkStore.from_metadata(
            FileMetadata('in', 'b.bin', 1, 'application/octet-stream', 1)
        ))
        self.assertFalse(await self.sender.initiate_send_bytes(b'abc', 'a.txt'))
        self.assertEqual(self.titles(), ['Transfer in Progress'])

    async def test_sends_file_from_disk(self):
        data = os.urandom(70000)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'notes.bin'
            path.write_bytes(data)
            self.assertTrue(await self.sender.initiate_send(path))

        [record] = self.records.sent_files
        self.assertEqual(record.name, 'notes.bin')
        self.assertEqual(record.size, 70000)
        self.assertEqual(record.total_chunks, 2)
        self.assertEqual(self.state.outbound.chunks[1], data[65536:])

    async def test_missing_file(self):
        self.assertFalse(await self.sender.initiate_send(Path('/nonexistent/file.bin')))
        self.assertEqual(self.titles(), ['Error'])
        self.assertIsNone(self.state.outbound)

    async def test_file_too_large(self):
        self.sender.limits = SizeLimits(max_size=10, recommended_size=8, warning_size=4)

        self.assertFalse(await self.sender.initiate_send_bytes(b'x' * 11, 'big.bin'))
        self.assertEqual(self.titles(), ['File Too Large'])

    async def test_large_file_warns_but_proceeds(self):
        self.sender.limits = SizeLimits(max_size=10, recommended_size=8, warning_size=4)

        self.assertTrue(await self.sender.initiate_send_bytes(b'x' * 9, 'big.bin'))
        self.assertEqual(self.titles(), ['Large File Warning'])

    async def test_announce_failure_aborts(self):
        self.session.fail_sends = True

        self.assertFalse(await self.sender.initiate_send_bytes(b'abc', 'a.txt'))
        [record] = self.records.sent_files
        self.assertFalse(record.transferring)
        self.assertIsNotNone(record.error)
        self.assertIsNone(self.state.outbound)

    async def test_empty_file_completes_immediately(self):
        self.assertTrue(await self.sender.initiate_send_bytes(b'', 'empty.txt'))

        [record] = self.records.sent_files
        self.assertTrue(record.available)
        self.assertEqual(record.progress, 100.0)
        self.assertIsNone(self.state.outbound)
        self.assertEqual(self.session.of(MessageEvent.FILE_ACK)[0].get('file')['totalChunks'], 0)


class TestServingChunks(SenderTestCase):

    async def test_serves_chunks_until_complete(self):
        data = os.urandom(150000)
        await self.sender.initiate_send_bytes(data, 'a.bin')

        for chunk_no in range(3):
            await self.serve(chunk_no)

        replies = self.session.of(MessageEvent.RECEIVE_CHUNK_ACK)
        self.assertEqual([m.chunk_no for m in replies], [0, 1, 2])
        self.assertEqual(b''.join(base64.b64decode(m.get('chunk')) for m in replies), data)

        [record] = self.records.sent_files
        self.assertTrue(record.available)
        self.assertFalse(record.transferring)
        self.assertEqual(record.progress, 100.0)
        self.assertEqual(self.records.total_sent_bytes, 150000)
        self.assertFalse(self.records.is_transferring)
        self.assertIsNone(self.state.outbound)
        self.assertIn('Transfer Complete', self.titles())

    async def test_progress_after_each_chunk(self):
        await self.sender.initiate_send_bytes(b'x' * 150000, 'a.bin')
        seen = []
        self.records.on_change(lambda r: seen.append(r.progress))

        await self.serve(0)
        await self.serve(1)

        self.assertAlmostEqual(seen[0], 100 / 3)
        self.assertAlmostEqual(seen[1], 200 / 3)
        self.assertAlmostEqual(self.records.transfer_progress, 200 / 3)

    async def test_progress_never_decreases(self):
        await self.sender.initiate_send_bytes(b'x' * 150000, 'a.bin')
        await self.serve(1)
        await self.serve(0)

        self.assertAlmostEqual(self.records.sent_files[0].progress, 200 / 3)

    async def test_repeated_request_is_counted_once(self):
        await self.sender.initiate_send_bytes(b'x' * 150000, 'a.bin')
        await self.serve(0)
        await self.serve(0)

        self.assertEqual(len(self.session.of(MessageEvent.RECEIVE_CHUNK_ACK)), 2)
        self.assertEqual(self.records.total_sent_bytes, 65536)

    async def test_request_without_transfer_is_ignored(self):
        await self.serve(0)
        self.assertEqual(self.session.sent, [])

    async def test_out_of_range_request_is_ignored(self):
        await self.sender.initiate_send_bytes(b'abc', 'a.txt')
        with self.assertLogs('swiftshare.transfer.sender', level='ERROR'):
            await self.serve(7)

        self.assertEqual(len(self.session.sent), 1)
        self.assertTrue(self.records.sent_files[0].transferring)

    async def test_write_failure_aborts_with_notice(self):
        await self.sender.initiate_send_bytes(b'x' * 150000, 'a.bin')
        self.session.fail_sends = True
        await self.serve(0)

        [record] = self.records.sent_files
        self.assertEqual(record.error, 'Failed to send file chunk. Transfer cancelled.')
        self.assertFalse(record.transferring)
        self.assertIsNone(self.state.outbound)
        self.assertEqual(self.notifier.notices[-1].title, 'Transfer Error')


class TestCancel(SenderTestCase):

    async def test_cancel_keeps_progress_and_ignores_late_requests(self):
        await self.sender.initiate_send_bytes(b'x' * 150000, 'a.bin')
        await self.serve(0)
        await self.serve(1)

        self.assertTrue(await self.sender.cancel_transfer())
        self.assertEqual(self.session.sent[-1].event, MessageEvent.CANCEL_TRANSFER)

        [record] = self.records.sent_files
        self.assertTrue(record.cancelled)
        self.assertFalse(record.available)
        self.assertFalse(record.transferring)
        self.assertAlmostEqual(record.progress, 200 / 3)
        self.assertIsNone(self.state.outbound)

        sent_before = len(self.session.sent)
        await self.serve(2)
        self.assertEqual(len(self.session.sent), sent_before)
        self.assertTrue(self.records.sent_files[0].cancelled)

    async def test_cancel_without_transfer(self):
        self.assertFalse(await self.sender.cancel_transfer())
        self.assertFalse(self.sender.abort_cancelled())

    async def test_can_send_again_after_cancel(self):
        await self.sender.initiate_send_bytes(b'abc', 'a.txt')
        self.sender.abort_cancelled()

        self.assertTrue(await self.sender.initiate_send_bytes(b'def', 'b.txt'))
        self.assertEqual(len(self.records.sent_files), 2)


if __name__ == "__main__":
    unittest.main()
