#!/usr/bin/env python3
'''
Runs a system D-Bus inside a root under construction, for as long as
package post-install hooks need one.

`start()` and `stop()` are both no-ops when the bus is already in the
requested state, so failure-path cleanup can call `stop()` without
checking first.  Once `stop()` has read (or failed to read) the pid file,
the bus counts as stopped even if the kill failed, since a retry could
never succeed anyway.
'''
import os

from ..commands import CommandRunner
from ..common import get_file_logger, path_in_root
from ..errors import ImageIOError

log = get_file_logger(__file__)

# Where `dbus-daemon --system` records its pid, relative to the root.
DBUS_PID_FILE = 'var/run/dbus/pid'


class DBusSupervisor:

    def __init__(self, runner: CommandRunner, root: str):
        self._runner = runner
        self._root = root
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def pid_file(self) -> str:
        return path_in_root(self._root, DBUS_PID_FILE)

    def start(self):
        if self._active:
            return
        log.info(f'Starting D-Bus in {self._root}')
        self._runner.chroot_exec(self._root, 'dbus-uuidgen --ensure')
        # Forks into the background, leaving its pid in DBUS_PID_FILE
        self._runner.chroot_exec(self._root, 'dbus-daemon --system')
        self._active = True

    def stop(self):
        # No sense killing dbus twice
        if not self._active:
            return
        pid_file = self.pid_file
        try:
            try:
                with open(pid_file) as infile:
                    pid = infile.read().split('\n')[0].strip()
            except OSError as ex:
                raise ImageIOError(
                    pid_file, 'reading D-Bus pid: {}', ex,
                ) from ex
            log.info(f'Stopping D-Bus (pid {pid}) in {self._root}')
            try:
                self._runner.run('kill', ['-9', pid])
            finally:
                try:
                    os.unlink(pid_file)
                except OSError as ex:
                    log.warning(f'Could not remove {pid_file}: {ex}')
        finally:
            self._active = False
