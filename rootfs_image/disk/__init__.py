#!/usr/bin/env python3
'''
Helpers for manipulating disk images, and the files that go into them.
'''
import enum
import os
import shutil

from ..errors import ConfigurationError, ImageIOError


@enum.unique
class CompressionType(enum.Enum):
    'Compression used for the squashfs of a LiveOS image.'
    GZIP = 'gzip'
    XZ = 'xz'

    @classmethod
    def from_name(cls, name) -> 'CompressionType':
        if isinstance(name, cls):
            return name
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(
                'Unknown compression type: {!r}', name,
            ) from None


def _remove(path: str):
    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.unlink(path)


def copy_file(source: str, dest: str):
    '''
    Copies `source` over `dest`, keeping its permissions and times.  Unlike
    `cp`, a symlink at `dest` is replaced, not written through, and a
    directory at `dest` is an error.  A missing `source` is an error.
    '''
    if os.path.isdir(dest) and not os.path.islink(dest):
        raise ImageIOError(
            dest, 'is a directory, cannot copy {} over it', source,
        )
    try:
        if os.path.islink(dest):
            os.unlink(dest)
        shutil.copy2(source, dest)
    except OSError as ex:
        raise ImageIOError(source, 'copying to {}: {}', dest, ex) from ex


def copy_tree_entry(source: str, dest: str):
    '''
    Copies one directory entry onto `dest`, overwriting what is there.
    Symlinks are recreated rather than followed, since their targets only
    make sense inside the image.  That goes for symlinks already under
    `dest`, too: they get replaced, and nothing is ever written through
    them.  Directories are merged with what is already at `dest`.
    '''
    try:
        if os.path.islink(source):
            if os.path.lexists(dest):
                _remove(dest)
            os.symlink(os.readlink(source), dest)
            return
        if os.path.isdir(source):
            if os.path.islink(dest) or (
                os.path.lexists(dest) and not os.path.isdir(dest)
            ):
                _remove(dest)
            if not os.path.lexists(dest):
                os.mkdir(dest)
            for name in sorted(os.listdir(source)):
                copy_tree_entry(
                    os.path.join(source, name), os.path.join(dest, name),
                )
            shutil.copystat(source, dest)
            return
    except OSError as ex:
        raise ImageIOError(source, 'copying to {}: {}', dest, ex) from ex
    copy_file(source, dest)
