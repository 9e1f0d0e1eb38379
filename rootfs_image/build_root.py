#!/usr/bin/env python3
'''
Builds a root filesystem at `--root`, and optionally packs it up as an
image.  This needs to run as root.

The build proceeds as follows:

  - With `--backing-image`, a sparse file of `--size-mb` is formatted with
    `--filesystem`, and loop-mounted at `--root` for the duration of the
    build.  Afterwards, it is unmounted and checked.

  - The package manager prepares the root, adds each `--repo`, installs
    each `--group` and `--package`, and finalizes the root.  Its
    `cleanup()` and `release_cache()` run whether or not the build
    succeeded.

  - With `--squashfs`, the root directory -- or the backing image, if one
    was used -- is compressed into a squashfs image.

Sample usage:

    python3 -m rootfs_image.build_root --root /tmp/rootfs \\
        --repo Solus https://packages.getsol.us/shannon/eopkg-index.xml.xz \\
        --group system.base --package nano \\
        --squashfs /tmp/rootfs.sfs --compression xz
'''
import argparse
import os
import sys

from typing import List, Optional

from .commands import CommandRunner
from .common import get_file_logger, init_logging
from .disk import CompressionType
from .disk.create import create_sparse_file, create_squashfs
from .disk.filesystem import FilesystemOpsBuilder
from .disk.mount import MountManager
from .errors import ConfigurationError, ImageBuildError
from .pkg import Manager, PackageManagerKind
from .pkg.eopkg import EOPKG_CACHE_DIRECTORY

log = get_file_logger(__file__)


class EnvDefault(argparse.Action):

    def __init__(self, envvar, required=True, default=None, **kwargs):
        if envvar and envvar in os.environ:
            default = os.environ[envvar]
        if required and default:
            required = False
        super().__init__(default=default, required=required, **kwargs)

    def __call__(self, parser, namespace, values, option_string=None):
        setattr(namespace, self.dest, values)


def _argparse_type(from_name):
    'Turns our configuration errors into argparse usage errors.'
    def parse(name):
        try:
            return from_name(name)
        except ConfigurationError as ex:
            raise argparse.ArgumentTypeError(str(ex))
    parse.__name__ = from_name.__name__
    return parse


def parse_args(args):
    parser = argparse.ArgumentParser(
        description=__doc__,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    parser.add_argument(
        '--root', required=True,
        help='The directory in which to build the root filesystem',
    )
    parser.add_argument(
        '--package-manager', default=PackageManagerKind.EOPKG,
        type=_argparse_type(PackageManagerKind.from_name),
        help='The package manager to build the root with. Choices: '
            + ', '.join(k.value for k in PackageManagerKind),
    )
    parser.add_argument(
        '--cache-dir', action=EnvDefault, envvar='ROOTFS_IMAGE_CACHE_DIR',
        default=EOPKG_CACHE_DIRECTORY,
        help='Host directory holding downloaded packages, shared between '
            'builds. Can be set with the ROOTFS_IMAGE_CACHE_DIR environment '
            'variable',
    )
    parser.add_argument(
        '--repo', nargs=2, metavar=('ID', 'URI'), action='append',
        default=[], help='A repository to add to the root. Repeatable.',
    )
    parser.add_argument(
        '--group', action='append', default=[],
        help='A package group (component) to install. Repeatable.',
    )
    parser.add_argument(
        '--package', action='append', default=[],
        help='A package to install. Repeatable.',
    )
    parser.add_argument(
        '--ignore-safety', action='store_true',
        help='Do not pull in the base system automatically',
    )
    parser.add_argument(
        '--backing-image',
        help='Build the root inside a filesystem image at this path',
    )
    parser.add_argument(
        '--size-mb', type=int, default=4000,
        help='Size of --backing-image, in decimal megabytes',
    )
    parser.add_argument(
        '--filesystem', default='ext4',
        help='Filesystem for --backing-image',
    )
    parser.add_argument(
        '--squashfs', help='Write a squashfs image of the result here',
    )
    parser.add_argument(
        '--compression', default=CompressionType.GZIP,
        type=_argparse_type(CompressionType.from_name),
        help='Compression for --squashfs. Choices: '
            + ', '.join(c.value for c in CompressionType),
    )
    parser.add_argument(
        '--processors', type=int,
        help='How many CPUs mksquashfs may use. Defaults to all of them.',
    )
    parser.add_argument('--debug', action='store_true', help='Log more')
    return parser.parse_args(args)


def _run_cleanups(cleanups, *, build_failed: bool):
    '''
    Runs every cleanup, even if some fail.  While a build failure is
    propagating, cleanup failures are only logged, so they cannot mask it.
    '''
    first_error = None
    for description, fn in cleanups:
        try:
            fn()
        except ImageBuildError as ex:
            log.error(f'{description} failed: {ex}')
            if first_error is None:
                first_error = ex
    if first_error is not None and not build_failed:
        raise first_error


def build_root(
    args, *,
    runner: Optional[CommandRunner]=None,
    manager: Optional[Manager]=None,
):
    runner = runner or CommandRunner()
    fs_ops = FilesystemOpsBuilder.with_defaults().build(runner)
    mounts = MountManager(runner)
    if args.backing_image and args.filesystem not in fs_ops.names():
        raise ConfigurationError(
            'Cannot use unknown filesystem {!r}, expected one of: {}',
            args.filesystem, ', '.join(fs_ops.names()),
        )
    if manager is None:
        manager = Manager.make(
            args.package_manager, runner=runner, mounts=mounts,
            cache_source=args.cache_dir,
        )
    manager.init()

    # In order: the cache mount lives under the root, which may itself be
    # the backing image's mount point.
    cleanups = [
        ('Package manager cleanup', manager.cleanup),
        ('Releasing package cache', manager.release_cache),
    ]
    if args.backing_image:
        create_sparse_file(args.backing_image, args.size_mb)
        fs_ops.format_as(args.backing_image, args.filesystem)
        os.makedirs(args.root, mode=0o755, exist_ok=True)
        mounts.mount(
            args.backing_image, args.root,
            fstype=args.filesystem, options=['loop'],
        )
        cleanups.append((
            'Unmounting backing image', lambda: mounts.unmount(args.root),
        ))

    build_failed = True
    try:
        manager.init_root(args.root)
        for identifier, uri in args.repo:
            manager.add_repo(identifier, uri)
        if args.group:
            manager.install_groups(args.ignore_safety, args.group)
        if args.package:
            manager.install_packages(args.ignore_safety, args.package)
        manager.finalize_root()
        build_failed = False
    finally:
        _run_cleanups(cleanups, build_failed=build_failed)

    if args.backing_image:
        fs_ops.check_fs(args.backing_image, args.filesystem)
    if args.squashfs:
        create_squashfs(
            runner, args.backing_image or args.root, args.squashfs,
            args.compression, processors=args.processors,
        )
    log.info(f'Built {args.squashfs or args.backing_image or args.root}')


def main(argv: Optional[List[str]]=None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    init_logging(debug=args.debug)
    try:
        build_root(args)
    except ImageBuildError as ex:
        log.error(f'Build failed: {ex}')
        return 1
    return 0


if __name__ == '__main__':  # pragma: no cover
    sys.exit(main())
