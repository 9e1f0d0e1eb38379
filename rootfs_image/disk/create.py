#!/usr/bin/env python3
'Materializes image files: sparse backing files, and squashfs images.'
import os

from typing import Optional, Union

from . import CompressionType
from ..commands import CommandRunner
from ..common import get_file_logger
from ..errors import ImageIOError

log = get_file_logger(__file__)

# New megabytes, not old megabytes (1000, not 1024)
_MEGABYTE = 1000 * 1000


def create_sparse_file(path: str, size_mb: int):
    '''
    Makes `path` a file of `size_mb` decimal megabytes without allocating
    them.  Whether the result is actually sparse depends on the filesystem
    holding `path`.
    '''
    if size_mb < 0:
        raise ImageIOError(path, 'negative size {} MB', size_mb)
    try:
        fd = os.open(path, os.O_CREAT | os.O_TRUNC | os.O_WRONLY, 0o644)
        try:
            os.ftruncate(fd, size_mb * _MEGABYTE)
        finally:
            os.close(fd)
    except OSError as ex:
        raise ImageIOError(path, 'creating sparse file: {}', ex) from ex
    log.info(f'Created {size_mb} MB sparse file {path}')


def squashfs_compression_args(
    compression: Union[CompressionType, str],
) -> list:
    return ['-comp', CompressionType.from_name(compression).value]


def create_squashfs(
    runner: CommandRunner,
    source: str,
    output_file: str,
    compression: Union[CompressionType, str],
    *,
    processors: Optional[int]=None,
):
    '''
    Builds a squashfs image at `output_file` holding the tree (or single
    file) at `source`.

    The compression is validated before anything touches the disk.  If
    `mksquashfs` fails, a partial `output_file` is left for the caller to
    clean up.
    '''
    comp_args = squashfs_compression_args(compression)
    source = os.path.abspath(source)
    output_file = os.path.abspath(output_file)
    if not os.path.exists(source):
        raise ImageIOError(source, 'squashfs source does not exist')
    args = [
        source, output_file,
        # Otherwise, the image root would be the contents of `source`.
        *(['-keep-as-directory'] if os.path.isdir(source) else []),
        *comp_args,
        *(['-processors', str(processors)] if processors else []),
    ]
    log.info(f'Creating squashfs {output_file} from {source}')
    runner.run('mksquashfs', args, cwd=os.path.dirname(output_file))
