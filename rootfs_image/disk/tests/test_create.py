#!/usr/bin/env python3
import os
import stat
import tempfile
import unittest
import unittest.mock

from .. import CompressionType
from ..create import create_sparse_file, create_squashfs
from ...errors import ConfigurationError, ImageIOError, ProcessError


class CreateSparseFileTestCase(unittest.TestCase):

    def test_logical_size(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, 'rootfs.img')
            create_sparse_file(path, 10)
            st = os.stat(path)
            self.assertEqual(10 * 1000 * 1000, st.st_size)
            self.assertTrue(stat.S_ISREG(st.st_mode))

    def test_truncates_existing(self):
        with tempfile.TemporaryDirectory() as td:
            path = os.path.join(td, 'rootfs.img')
            with open(path, 'wb') as outfile:
                outfile.write(b'x' * 4096)
            create_sparse_file(path, 1)
            with open(path, 'rb') as infile:
                self.assertEqual(b'\0' * 4096, infile.read(4096))
            self.assertEqual(1000 * 1000, os.path.getsize(path))

    def test_errors(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaisesRegex(ImageIOError, 'creating sparse file'):
                create_sparse_file(os.path.join(td, 'no/such/dir'), 1)
            with self.assertRaisesRegex(ImageIOError, 'negative size'):
                create_sparse_file(os.path.join(td, 'img'), -1)
            self.assertFalse(os.path.exists(os.path.join(td, 'img')))


class CreateSquashfsTestCase(unittest.TestCase):

    def setUp(self):
        self.runner = unittest.mock.Mock()

    def test_unknown_compression(self):
        with self.assertRaisesRegex(ConfigurationError, "'lz4'"):
            # Even the missing source is not noticed
            create_squashfs(
                self.runner, '/no/such/source', '/tmp/out.sfs', 'lz4',
            )
        self.assertEqual([], self.runner.mock_calls)

    def test_directory_source(self):
        with tempfile.TemporaryDirectory() as td:
            source = os.path.join(td, 'rootfs')
            os.mkdir(source)
            out_dir = os.path.join(td, 'out')
            create_squashfs(
                self.runner, source, os.path.join(out_dir, 'rootfs.sfs'),
                CompressionType.XZ,
            )
            self.runner.run.assert_called_once_with('mksquashfs', [
                source, os.path.join(out_dir, 'rootfs.sfs'),
                '-keep-as-directory', '-comp', 'xz',
            ], cwd=out_dir)

    def test_file_source_and_relative_paths(self):
        with tempfile.TemporaryDirectory() as td:
            orig_cwd = os.getcwd()
            os.chdir(td)
            try:
                with open('rootfs.img', 'w'):
                    pass
                create_squashfs(
                    self.runner, 'rootfs.img', 'live/squashfs.img', 'gzip',
                    processors=4,
                )
                here = os.getcwd()
            finally:
                os.chdir(orig_cwd)
            self.runner.run.assert_called_once_with('mksquashfs', [
                os.path.join(here, 'rootfs.img'),
                os.path.join(here, 'live/squashfs.img'),
                '-comp', 'gzip', '-processors', '4',
            ], cwd=os.path.join(here, 'live'))

    def test_missing_source(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaisesRegex(ImageIOError, 'does not exist'):
                create_squashfs(
                    self.runner, os.path.join(td, 'nope'),
                    os.path.join(td, 'out.sfs'), 'xz',
                )
        self.assertEqual([], self.runner.mock_calls)

    def test_tool_failure_propagates(self):
        self.runner.run.side_effect = ProcessError(['mksquashfs'], 1)
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ProcessError):
                create_squashfs(
                    self.runner, td, os.path.join(td, 'out.sfs'), 'gzip',
                )


class CompressionTypeTestCase(unittest.TestCase):

    def test_from_name(self):
        self.assertIs(CompressionType.GZIP, CompressionType.from_name('gzip'))
        self.assertIs(
            CompressionType.XZ, CompressionType.from_name(CompressionType.XZ),
        )
        with self.assertRaisesRegex(ConfigurationError, 'Unknown compression'):
            CompressionType.from_name('zstd')


if __name__ == '__main__':
    unittest.main()
