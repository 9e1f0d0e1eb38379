#!/usr/bin/env python3
'''
Runs the external programs that do the actual work of building a root.

All tool invocations in this package go through `CommandRunner.run`, which
makes it the one seam tests need to mock.  By default a command inherits
our stdout and stderr, and gets no stdin -- a tool that unexpectedly
prompts must fail rather than hang the build.
'''
import os
import shlex
import shutil
import subprocess

from typing import Iterable, Optional

from .common import get_file_logger
from .errors import ImageIOError, ProcessError, ToolNotFoundError

log = get_file_logger(__file__)


class CommandRunner:

    def __init__(self, *, stdout=None, stderr=None, stdin=subprocess.DEVNULL):
        '''
        Streams take anything `subprocess` accepts.  `None` inherits the
        corresponding stream of this process.
        '''
        self.stdout = stdout
        self.stderr = stderr
        self.stdin = stdin

    def resolve(self, command: str) -> str:
        # Only bare names are searched for, like `execvp` does.
        if os.sep in command:
            return command
        path = shutil.which(command)
        if path is None:
            raise ToolNotFoundError(command)
        return path

    def run(
        self, command: str, args: Iterable[str]=(), *,
        cwd: Optional[str]=None,
    ):
        cmd = [self.resolve(command), *args]
        log.debug(
            'Running %s%s', ' '.join(shlex.quote(c) for c in cmd),
            f' in {cwd}' if cwd else '',
        )
        try:
            proc = subprocess.run(
                cmd, cwd=cwd,
                stdout=self.stdout, stderr=self.stderr, stdin=self.stdin,
            )
        except OSError as ex:
            # `subprocess` reports a bad `cwd` with the same errnos as a bad
            # program, so tell them apart by looking.
            if cwd is not None and not os.path.isdir(cwd):
                raise ImageIOError(
                    cwd, 'cannot run {} here: {}', command, ex,
                ) from ex
            if isinstance(ex, (FileNotFoundError, PermissionError)):
                raise ToolNotFoundError(command) from ex
            raise ImageIOError(cmd[0], 'executing: {}', ex) from ex
        if proc.returncode != 0:
            raise ProcessError(cmd, proc.returncode)

    def chroot_exec(self, root: str, command: str):
        'Runs a shell command line inside `root`.'
        self.run('chroot', [root, '/bin/sh', '-c', command])

    def add_group(self, root: str, group_name: str, gid: int):
        self.chroot_exec(root, ' '.join([
            '/usr/sbin/groupadd', '-g', str(gid), shlex.quote(group_name),
        ]))

    def _useradd(
        self, root, user_name, gecos, home, shell, uid, gid, *, system,
    ):
        self.chroot_exec(root, ' '.join([
            '/usr/sbin/useradd', '-m', '-d', shlex.quote(home),
            *(['-r'] if system else []),
            '-s', shlex.quote(shell), '-u', str(uid), '-g', str(gid),
            shlex.quote(user_name), '-c', shlex.quote(gecos),
        ]))

    def add_user(
        self, root: str, user_name: str, gecos: str, home: str, shell: str,
        uid: int, gid: int,
    ):
        self._useradd(
            root, user_name, gecos, home, shell, uid, gid, system=False,
        )

    def add_system_user(
        self, root: str, user_name: str, gecos: str, home: str, shell: str,
        uid: int, gid: int,
    ):
        self._useradd(
            root, user_name, gecos, home, shell, uid, gid, system=True,
        )
