#!/usr/bin/env python3
'''
Mounts, and device nodes, for roots under construction.

Mounting shells out to `mount` / `umount`, so this needs to run as root.
None of these operations are assumed to be idempotent: unmounting
something that is not mounted is an error, just like with `umount`.
'''
import os
import stat

from typing import Iterable, NamedTuple, Optional

from ..commands import CommandRunner
from ..common import get_file_logger, path_in_root
from ..errors import ImageBuildError, ImageIOError, MountError

log = get_file_logger(__file__)


class DeviceNode(NamedTuple):
    name: str
    major: int
    minor: int
    mode: int = 0o666


# Needed by tools running in the root without a bind-mounted `/dev`.
DEV_NODE_RANDOM = DeviceNode(name='random', major=1, minor=8)
DEV_NODE_URANDOM = DeviceNode(name='urandom', major=1, minor=9)


class MountManager:

    def __init__(self, runner: CommandRunner):
        self._runner = runner

    def _mount_cmd(self, command, args, *, source, target):
        try:
            self._runner.run(command, args)
        except ImageBuildError as ex:
            raise MountError(
                source, target, '{} of {} failed: {}',
                command, target, ex,
            ) from ex

    def mount(
        self, source: str, target: str, *,
        fstype: Optional[str]=None, options: Iterable[str]=(),
    ):
        options = list(options)
        log.info(f'Mounting {source} at {target}')
        self._mount_cmd('mount', [
            *(['-t', fstype] if fstype else []),
            *(['-o', ','.join(options)] if options else []),
            source, target,
        ], source=source, target=target)

    def bind_mount(self, source: str, target: str):
        log.info(f'Bind-mounting {source} at {target}')
        self._mount_cmd(
            'mount', ['--bind', source, target], source=source, target=target,
        )

    def unmount(self, target: str):
        log.info(f'Unmounting {target}')
        self._mount_cmd('umount', [target], source=None, target=target)

    def create_device_node(self, root: str, node: DeviceNode):
        '''
        Makes the character device `node` in `<root>/dev`.  An existing
        node with the same device number is left alone.
        '''
        path = path_in_root(root, os.path.join('dev', node.name))
        rdev = os.makedev(node.major, node.minor)
        try:
            st = os.lstat(path)
        except FileNotFoundError:
            st = None
        except OSError as ex:
            raise ImageIOError(path, 'inspecting device node: {}', ex) \
                from ex
        if st is not None:
            if stat.S_ISCHR(st.st_mode) and st.st_rdev == rdev:
                return
            raise ImageIOError(
                path, 'exists, but is not character device {}:{}',
                node.major, node.minor,
            )
        log.info(f'Creating device node {path}')
        try:
            os.makedirs(os.path.dirname(path), mode=0o755, exist_ok=True)
            os.mknod(path, stat.S_IFCHR | node.mode, rdev)
            # `mknod` is subject to the umask
            os.chmod(path, node.mode)
        except OSError as ex:
            raise ImageIOError(path, 'creating device node: {}', ex) from ex
