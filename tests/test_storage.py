"""Tests for writing received files to disk."""

import errno
import tempfile
import unittest
from pathlib import Path

from swiftshare.errors import MaterializationError
from swiftshare.file.storage import (
    FileMaterializer, categorize_error, sanitize_file_name, split_extension,
)


class TestFileNames(unittest.TestCase):

    def test_sanitize_replaces_invalid_characters(self):
        self.assertEqual(sanitize_file_name('a/b:c*?.txt'), 'a_b_c__.txt')
        self.assertEqual(sanitize_file_name('  many   spaces.txt '), 'many spaces.txt')

    def test_sanitize_falls_back_for_empty_names(self):
        for name in ('', '..', '   '):
            with self.subTest(name=name):
                self.assertEqual(sanitize_file_name(name), 'received_file')

    def test_split_extension(self):
        self.assertEqual(split_extension('a.b.txt'), ('a.b', 'txt'))
        self.assertEqual(split_extension('README'), ('README', ''))
        self.assertEqual(split_extension('.bashrc'), ('.bashrc', ''))


class TestCategorizeError(unittest.TestCase):

    def test_categories(self):
        cases = {
            errno.ENOENT: 'not_found',
            errno.EEXIST: 'exists',
            errno.EACCES: 'permission',
            errno.EPERM: 'permission',
            errno.ENOSPC: 'no_space',
            errno.EIO: 'unknown',
        }
        for code, category in cases.items():
            with self.subTest(code=code):
                error = categorize_error(OSError(code, 'boom'))
                self.assertEqual(error.category, category)
                self.assertIn('Error details:', str(error))


class TestFileMaterializer(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.materializer = FileMaterializer(Path(self.tmp.name))

    def tearDown(self):
        self.tmp.cleanup()

    async def test_write_creates_app_folder(self):
        path, size = await self.materializer.write('a.txt', b'hello')

        self.assertEqual(path, Path(self.tmp.name) / 'SwiftShare' / 'a.txt')
        self.assertEqual(size, 5)
        self.assertEqual(path.read_bytes(), b'hello')
        self.assertEqual([p.name for p in path.parent.iterdir()], ['a.txt'])

    async def test_never_overwrites(self):
        first, _ = await self.materializer.write('a.txt', b'1')
        second, _ = await self.materializer.write('a.txt', b'2')
        third, _ = await self.materializer.write('a.txt', b'3')

        self.assertEqual([first.name, second.name, third.name],
                         ['a.txt', 'a_1.txt', 'a_2.txt'])
        self.assertEqual(first.read_bytes(), b'1')

    async def test_suffix_without_extension(self):
        await self.materializer.write('README', b'1')
        path, _ = await self.materializer.write('README', b'2')
        self.assertEqual(path.name, 'README_1')

    async def test_unwritable_target_raises_categorized_error(self):
        (Path(self.tmp.name) / 'SwiftShare').write_bytes(b'')

        with self.assertRaises(MaterializationError) as ctx:
            with self.assertLogs('swiftshare.file.storage', level='ERROR'):
                await self.materializer.write('a.txt', b'x')
        self.assertIn(ctx.exception.category, ('exists', 'not_found', 'unknown'))
        self.assertTrue(ctx.exception.detail)


if __name__ == "__main__":
    unittest.main()
