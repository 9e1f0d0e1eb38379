#!/usr/bin/env python3
import os
import tempfile
import unittest

from .. import copy_file, copy_tree_entry
from ...errors import ImageIOError


class CopyTestCase(unittest.TestCase):

    def setUp(self):
        self._td_ctx = tempfile.TemporaryDirectory()
        self.td = self._td_ctx.__enter__()
        self.addCleanup(self._td_ctx.__exit__, None, None, None)

    def _p(self, *parts):
        return os.path.join(self.td, *parts)

    def _write(self, path, contents):
        with open(path, 'w') as outfile:
            outfile.write(contents)

    def _read(self, path):
        with open(path) as infile:
            return infile.read()

    def test_copy_file_keeps_mode_and_times(self):
        self._write(self._p('src'), 'hosts')
        os.chmod(self._p('src'), 0o600)
        os.utime(self._p('src'), (1000000000, 1000000000))
        self._write(self._p('dest'), 'old contents, to be overwritten')
        copy_file(self._p('src'), self._p('dest'))
        self.assertEqual('hosts', self._read(self._p('dest')))
        st = os.stat(self._p('dest'))
        self.assertEqual(0o600, st.st_mode & 0o777)
        self.assertEqual(1000000000, int(st.st_mtime))

    def test_copy_file_missing_source(self):
        with self.assertRaisesRegex(ImageIOError, 'src.*copying to'):
            copy_file(self._p('src'), self._p('dest'))
        self.assertFalse(os.path.exists(self._p('dest')))

    def test_copy_file_replaces_dest_symlink(self):
        self._write(self._p('src'), 'new')
        self._write(self._p('victim'), 'untouched')
        os.symlink(self._p('victim'), self._p('dest'))
        copy_file(self._p('src'), self._p('dest'))
        self.assertFalse(os.path.islink(self._p('dest')))
        self.assertEqual('new', self._read(self._p('dest')))
        self.assertEqual('untouched', self._read(self._p('victim')))

    def test_copy_tree_entry_symlink(self):
        # Dangling on the host, but fine inside the image
        os.symlink('/proc/self/mounts-in-image', self._p('mtab'))
        self._write(self._p('old_mtab'), 'x')
        os.rename(self._p('old_mtab'), self._p('dest_mtab'))
        copy_tree_entry(self._p('mtab'), self._p('dest_mtab'))
        self.assertEqual(
            '/proc/self/mounts-in-image', os.readlink(self._p('dest_mtab')),
        )

    def test_copy_tree_entry_directory(self):
        os.makedirs(self._p('src', 'profile.d'))
        self._write(self._p('src', 'profile.d', 'a.sh'), 'a')
        os.makedirs(self._p('dest', 'profile.d'))
        self._write(self._p('dest', 'profile.d', 'b.sh'), 'b')
        copy_tree_entry(self._p('src', 'profile.d'), self._p('dest', 'profile.d'))
        self.assertEqual(
            ['a.sh', 'b.sh'], sorted(os.listdir(self._p('dest', 'profile.d'))),
        )

    def test_copy_tree_entry_replaces_dest_dir_symlink(self):
        # e.g. `<root>/etc/skel -> /etc/skel` must not reach the host
        os.makedirs(self._p('host', 'skel'))
        os.makedirs(self._p('src', 'skel'))
        self._write(self._p('src', 'skel', 'f'), 'f')
        os.makedirs(self._p('dest'))
        os.symlink(self._p('host', 'skel'), self._p('dest', 'skel'))
        copy_tree_entry(self._p('src', 'skel'), self._p('dest', 'skel'))
        self.assertEqual([], os.listdir(self._p('host', 'skel')))
        self.assertFalse(os.path.islink(self._p('dest', 'skel')))
        self.assertEqual('f', self._read(self._p('dest', 'skel', 'f')))

    def test_copy_tree_entry_replaces_nested_symlinks(self):
        os.makedirs(self._p('host', 'sub'))
        self._write(self._p('host', 'file'), 'untouched')
        os.makedirs(self._p('src', 'profile.d', 'sub'))
        self._write(self._p('src', 'profile.d', 'sub', 'a.sh'), 'a')
        self._write(self._p('src', 'profile.d', 'b.sh'), 'b')
        os.makedirs(self._p('dest', 'profile.d'))
        os.symlink(self._p('host', 'sub'), self._p('dest', 'profile.d', 'sub'))
        os.symlink(
            self._p('host', 'file'), self._p('dest', 'profile.d', 'b.sh'),
        )
        copy_tree_entry(
            self._p('src', 'profile.d'), self._p('dest', 'profile.d'),
        )
        self.assertEqual([], os.listdir(self._p('host', 'sub')))
        self.assertEqual('untouched', self._read(self._p('host', 'file')))
        self.assertEqual(
            'a', self._read(self._p('dest', 'profile.d', 'sub', 'a.sh')),
        )
        self.assertEqual('b', self._read(self._p('dest', 'profile.d', 'b.sh')))

    def test_copy_file_over_directory(self):
        self._write(self._p('src'), 'hosts')
        os.makedirs(self._p('dest'))
        with self.assertRaisesRegex(ImageIOError, 'is a directory'):
            copy_tree_entry(self._p('src'), self._p('dest'))
        self.assertEqual([], os.listdir(self._p('dest')))

    def test_copy_tree_entry_file(self):
        self._write(self._p('src'), 'passwd')
        copy_tree_entry(self._p('src'), self._p('dest'))
        self.assertEqual('passwd', self._read(self._p('dest')))


if __name__ == '__main__':
    unittest.main()
