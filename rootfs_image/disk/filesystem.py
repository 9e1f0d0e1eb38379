#!/usr/bin/env python3
'''
Formatting and checking of filesystem images, dispatched by filesystem name.

Different filesystems need different tools, and different repair semantics
-- e.g. `ext4` wants a check pass followed by a forced fix-up pass.  Rather
than branching on the filesystem name wherever an image gets formatted, the
build driver makes one `FilesystemOps` table at startup and hands it to
whoever needs it:

    ops = FilesystemOpsBuilder.with_defaults().build(runner)
    ops.format_as('rootfs.img', 'ext4')

The table is immutable once built.  New filesystems are added by
`register()`ing them on the builder, without touching callers.

NB: Only ever point these at image files or loop devices.  Formatting is
destructive.
'''
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, NamedTuple

from ..commands import CommandRunner
from ..common import get_file_logger
from ..errors import ConfigurationError

log = get_file_logger(__file__)

# Both take the runner to use, and the path of the image or device.
FormatFn = Callable[[CommandRunner, str], None]
CheckFn = Callable[[CommandRunner, str], None]


class FilesystemOp(NamedTuple):
    format: FormatFn
    check: CheckFn


def format_ext4(runner: CommandRunner, path: str):
    runner.run('mkfs', ['-t', 'ext4', '-F', path])
    # Set the mount count so it doesn't get fsck'd during live boot
    runner.run('tune2fs', ['-c0', '-i0', path])


def check_ext4(runner: CommandRunner, path: str):
    runner.run('e2fsck', ['-y', path])
    # Force fix any issues now
    runner.run('e2fsck', ['-y', '-f', path])


def format_vfat(runner: CommandRunner, path: str):
    runner.run('mkfs.fat', ['-F32', path])


def check_vfat(runner: CommandRunner, path: str):
    runner.run('fsck.fat', ['-a', path])


class FilesystemOps:
    'An immutable filesystem name -> `FilesystemOp` table.'

    def __init__(self, runner: CommandRunner, ops: Mapping[str, FilesystemOp]):
        self._runner = runner
        self._ops = MappingProxyType(dict(ops))

    def names(self) -> Iterable[str]:
        return sorted(self._ops)

    def _get(self, filesystem: str, verb: str) -> FilesystemOp:
        op = self._ops.get(filesystem)
        if op is None:
            raise ConfigurationError(
                'Cannot {} with unknown filesystem {!r}', verb, filesystem,
            )
        return op

    def format_as(self, path: str, filesystem: str):
        op = self._get(filesystem, 'format')
        log.info(f'Formatting {path} as {filesystem}')
        op.format(self._runner, path)

    def check_fs(self, path: str, filesystem: str):
        op = self._get(filesystem, 'check')
        log.info(f'Checking {filesystem} filesystem on {path}')
        op.check(self._runner, path)


class FilesystemOpsBuilder:

    def __init__(self):
        self._ops = {}

    @classmethod
    def with_defaults(cls) -> 'FilesystemOpsBuilder':
        return cls().register(
            'ext4', format_ext4, check_ext4,
        ).register(
            'vfat', format_vfat, check_vfat,
        )

    def register(
        self, name: str, format_fn: FormatFn, check_fn: CheckFn,
    ) -> 'FilesystemOpsBuilder':
        if name in self._ops:
            raise ConfigurationError(
                'Filesystem {!r} is already registered', name,
            )
        self._ops[name] = FilesystemOp(format=format_fn, check=check_fn)
        return self

    def build(self, runner: CommandRunner) -> FilesystemOps:
        return FilesystemOps(runner, self._ops)
