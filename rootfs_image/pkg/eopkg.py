#!/usr/bin/env python3
'''
`EopkgManager` builds Solus roots with the `eopkg` package manager.

The lifecycle is:

  - `init_root()` lays out the directories `eopkg` expects, and bind-mounts
    the host package cache into the root, so that downloads are shared
    between builds.

  - Packages get installed via `add_repo()`, `install_groups()`, and
    `install_packages()`, which run the host `eopkg` against the root.
    Post-install hooks are deferred with `--ignore-comar`.

  - `finalize_root()` unmounts the cache, and runs the deferred hooks
    inside the root.  Many hooks assume a system bus, so D-Bus is brought
    up just for `eopkg configure-pending`.  That, in turn, needs the
    linker cache, the `messagebus` account, and `/dev/*random`.

  - `cleanup()` can be called at any point, and stops D-Bus if it is still
    running.  `release_cache()` unmounts the package cache, if a failure
    left it mounted.

Nothing is rolled back automatically when a step fails -- the caller must
call `cleanup()`, then `release_cache()`.  The one exception is a failing
`configure-pending`, after which D-Bus is stopped before the error
propagates.
'''
import enum
import os
import shutil

from contextlib import contextmanager
from typing import Iterable, Optional

from .dbus import DBusSupervisor
from .manager import Manager, PackageManagerKind
from ..commands import CommandRunner
from ..common import get_file_logger, path_in_root
from ..disk import copy_tree_entry
from ..disk.mount import DEV_NODE_RANDOM, DEV_NODE_URANDOM, MountManager
from ..errors import (
    ImageBuildError, ImageIOError, StateError, ToolNotFoundError,
)

log = get_file_logger(__file__)

# Bind-mounted at `<root>/var/cache/eopkg/packages` to speed up subsequent
# image builds.  It is shared with `evobuild`, so that Solus developers only
# need one cache system-wide.
EOPKG_CACHE_DIRECTORY = '/var/lib/evobuild/packages'

CACHE_MOUNT_POINT = 'var/cache/eopkg/packages'
BASELAYOUT_DIR = 'usr/share/baselayout'

_REQUIRED_DIRS = [
    # Ensures we don't end up with /var/lock vs /run/lock nonsense
    'run/lock',
    'var',
    CACHE_MOUNT_POINT,
]

# (link path, link target), relative to the root
_COMPAT_SYMLINKS = [
    ('var/lock', '../run/lock'),
    ('var/run', '../run'),
]

MESSAGEBUS_ID = 18


@enum.unique
class RootPhase(enum.Enum):
    UNINITIALIZED = enum.auto()
    ROOT_PREPARED = enum.auto()
    FINALIZED = enum.auto()


@contextmanager
def _phase(name: str):
    'Labels build errors raised in the block with the lifecycle step.'
    log.info(name)
    try:
        yield
    except ImageBuildError as ex:
        if ex.phase is None:
            ex.phase = name
        log.error(f'{ex}')  # Prefixed with the phase
        raise


class EopkgManager(Manager, kind=PackageManagerKind.EOPKG):

    def __init__(
        self, *,
        runner: Optional[CommandRunner]=None,
        mounts: Optional[MountManager]=None,
        cache_source: str=EOPKG_CACHE_DIRECTORY,
    ):
        self._runner = runner or CommandRunner()
        self._mounts = mounts or MountManager(self._runner)
        self._cache_source = cache_source
        self._root = None
        self._cache_target = None
        self._cache_mounted = False
        self._target_mode = False
        self._dbus = None
        self._phase = RootPhase.UNINITIALIZED

    @property
    def root(self) -> Optional[str]:
        return self._root

    @property
    def phase(self) -> RootPhase:
        return self._phase

    @property
    def cache_target(self) -> Optional[str]:
        return self._cache_target

    @property
    def dbus(self) -> Optional[DBusSupervisor]:
        return self._dbus

    def set_cache_directory(self, source: str):
        self._cache_source = source

    def init(self):
        # Ensure the system has eopkg available first!
        if shutil.which('eopkg') is None:
            raise ToolNotFoundError('eopkg')

    def _path(self, rel_path: str) -> str:
        return path_in_root(self._root, rel_path)

    def init_root(self, root: str):
        if self._phase is not RootPhase.UNINITIALIZED:
            raise StateError(
                'Cannot prepare a root in phase {}, already prepared at {}',
                self._phase.name, self._root,
            )
        self._root = os.path.abspath(root)
        self._target_mode = True
        self._dbus = DBusSupervisor(self._runner, self._root)

        with _phase('Creating root directories'):
            for path in [
                *(self._path(d) for d in _REQUIRED_DIRS),
                # Attempt to create the system wide cache directory
                self._cache_source,
            ]:
                try:
                    os.makedirs(path, mode=0o755, exist_ok=True)
                except OSError as ex:
                    raise ImageIOError(
                        path, 'creating directory: {}', ex,
                    ) from ex

        with _phase('Creating compatibility symlinks'):
            for link, target in _COMPAT_SYMLINKS:
                link_path = self._path(link)
                try:
                    os.symlink(target, link_path)
                except OSError as ex:
                    raise ImageIOError(
                        link_path, 'symlinking to {}: {}', target, ex,
                    ) from ex

        with _phase('Mounting package cache'):
            self._cache_target = self._path(CACHE_MOUNT_POINT)
            self._mounts.bind_mount(self._cache_source, self._cache_target)
            self._cache_mounted = True

        self._phase = RootPhase.ROOT_PREPARED

    def finalize_root(self):
        if self._phase is not RootPhase.ROOT_PREPARED:
            raise StateError(
                'Cannot finalize a root in phase {}, call init_root first',
                self._phase.name,
            )
        # The cache must be gone before copying, or the copy could traverse
        # the cache contents.
        with _phase('Unmounting package cache'):
            self._mounts.unmount(self._cache_target)
            self._cache_mounted = False
        with _phase('Copying baselayout'):
            self._copy_baselayout()
        # Before we start chrooting, update libraries to be usable
        with _phase('Updating linker cache'):
            self._runner.chroot_exec(self._root, 'ldconfig')
        with _phase('Creating D-Bus accounts'):
            self._configure_dbus()
        # Required for eopkg to run without bind mounts
        with _phase('Creating device nodes'):
            for node in [DEV_NODE_RANDOM, DEV_NODE_URANDOM]:
                self._mounts.create_device_node(self._root, node)
        with _phase('Starting D-Bus'):
            self._dbus.start()
        with _phase('Configuring pending packages'):
            try:
                self._runner.chroot_exec(
                    self._root, 'eopkg configure-pending',
                )
            except ImageBuildError:
                try:
                    self._dbus.stop()
                except ImageBuildError as ex:
                    log.error(f'Stopping D-Bus after failure: {ex}')
                raise
        with _phase('Stopping D-Bus'):
            self._dbus.stop()
        with _phase('Deleting package cache'):
            self._runner.chroot_exec(self._root, 'eopkg delete-cache')
        self._phase = RootPhase.FINALIZED
        log.info(f'Finalized root {self._root}')

    def _copy_baselayout(self):
        '''
        `/usr/share/baselayout` holds the default `/etc` configuration,
        which `eopkg` expects to find in `/etc` after installation.
        '''
        base_dir = self._path(BASELAYOUT_DIR)
        etc_dir = self._path('etc')
        try:
            names = sorted(os.listdir(base_dir))
            os.makedirs(etc_dir, mode=0o755, exist_ok=True)
        except OSError as ex:
            raise ImageIOError(base_dir, 'reading baselayout: {}', ex) from ex
        for name in names:
            copy_tree_entry(
                os.path.join(base_dir, name), os.path.join(etc_dir, name),
            )

    def _configure_dbus(self):
        self._runner.add_group(self._root, 'messagebus', MESSAGEBUS_ID)
        self._runner.add_system_user(
            self._root, 'messagebus', 'D-Bus Message Daemon',
            '/var/run/dbus', '/bin/false', MESSAGEBUS_ID, MESSAGEBUS_ID,
        )

    def cleanup(self):
        if self._dbus is not None:
            with _phase('Cleaning up'):
                self._dbus.stop()

    def release_cache(self):
        # Only set while the bind mount from `init_root` is in place
        if self._cache_mounted:
            with _phase('Releasing package cache'):
                self._mounts.unmount(self._cache_target)
                self._cache_mounted = False

    def _eopkg(self, args: Iterable[str]):
        args = list(args)
        if self._target_mode:
            args.extend(['-D', self._root])
        self._runner.run('eopkg', args)

    def _install_cmd(self, ignore_safety: bool, names: Iterable[str]):
        return [
            'install', '-y',
            *(['--ignore-comar'] if self._target_mode else []),
            *names,
            *(['--ignore-safety'] if ignore_safety else []),
        ]

    def add_repo(self, identifier: str, uri: str):
        with _phase(f'Adding repo {identifier}'):
            self._eopkg(['add-repo', identifier, uri])

    def install_groups(self, ignore_safety: bool, groups: Iterable[str]):
        with _phase('Installing groups'):
            self._eopkg(self._install_cmd(
                ignore_safety, [a for g in groups for a in ['-c', g]],
            ))

    def install_packages(self, ignore_safety: bool, packages: Iterable[str]):
        with _phase('Installing packages'):
            self._eopkg(self._install_cmd(ignore_safety, packages))
