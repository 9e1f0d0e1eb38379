#!/usr/bin/env python3
'''
`Manager` is what a package manager implements so that roots can be built
with it.  Implementations subclass `Manager` with a `kind` class keyword:

    class EopkgManager(Manager, kind=PackageManagerKind.EOPKG):
        ...

and builds get one via `Manager.make(kind)`.  Names from configuration go
through `PackageManagerKind.from_name()` first, so an unknown package
manager is rejected while parsing the configuration, not halfway through
a build.
'''
import enum

from typing import Iterable, Mapping

from ..errors import ConfigurationError


@enum.unique
class PackageManagerKind(enum.Enum):
    EOPKG = 'eopkg'

    @classmethod
    def from_name(cls, name: str) -> 'PackageManagerKind':
        try:
            return cls(name)
        except ValueError:
            raise ConfigurationError(
                'Unknown package manager {!r}, expected one of: {}',
                name, ', '.join(k.value for k in cls),
            ) from None


class Manager:

    def __init_subclass__(cls, kind: PackageManagerKind=None, **kwargs):
        super().__init_subclass__(**kwargs)
        if kind is None:  # An intermediate base, or a test double
            return
        d = Manager._kind_to_cls
        if kind in d:
            raise AssertionError(
                f'{cls} and {d[kind]} share the kind {kind}'
            )
        d[kind] = cls

    _kind_to_cls: Mapping[PackageManagerKind, type] = {}

    @classmethod
    def make(cls, kind: PackageManagerKind, **kwargs) -> 'Manager':
        if not isinstance(kind, PackageManagerKind):
            kind = PackageManagerKind.from_name(kind)
        impl = Manager._kind_to_cls.get(kind)
        if impl is None:  # pragma: no cover
            raise ConfigurationError(
                'Package manager {!r} is not implemented', kind.value,
            )
        return impl(**kwargs)

    def init(self):
        '''
        Checks that host-side dependencies of the package manager are met.
        '''
        raise NotImplementedError

    def init_root(self, root: str):
        '''
        Sets up the root to handle any quirks before packages get
        installed, e.g. for usr-merge, or to work around default
        directories created by a host-side package manager.
        '''
        raise NotImplementedError

    def finalize_root(self):
        '''
        Runs once all packaging operations are applied, to allow post
        configuration to take place.
        '''
        raise NotImplementedError

    def install_packages(self, ignore_safety: bool, packages: Iterable[str]):
        '''
        `ignore_safety` depends on the package manager, but usually avoids
        automatic dependencies, such as `system.base` in Solus, or
        recommends in dpkg.
        '''
        raise NotImplementedError

    def install_groups(self, ignore_safety: bool, groups: Iterable[str]):
        'Like `install_packages`, for groups (components in some distros).'
        raise NotImplementedError

    def add_repo(self, identifier: str, uri: str):
        raise NotImplementedError

    def cleanup(self):
        '''
        May be called at any time, any number of times.  Undoes anything
        still in effect, such as processes left running in the root.
        '''
        raise NotImplementedError

    def release_cache(self):
        '''
        May be called at any time, any number of times.  Unmounts whatever
        `init_root` mounted into the root, if `finalize_root` did not get
        to it.  Call it after `cleanup`, and before unmounting the storage
        under the root.
        '''
        raise NotImplementedError
