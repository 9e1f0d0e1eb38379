#!/usr/bin/env python3
'''
Every failure raised by the build tooling derives from `ImageBuildError`.

Phase functions raise the first error they hit and never roll back earlier
steps.  The build driver catches `ImageBuildError`, and is responsible for
calling `Manager.cleanup()`.  The orchestrator fills in `phase` so that a
log line is enough to tell which lifecycle step failed.
'''


class ImageBuildError(Exception):
    '''
    Superclass for build exceptions that also formats messages by default
    '''

    def __init__(self, message, *formatargs, **formatkwargs):
        super().__init__(message.format(*formatargs, **formatkwargs))
        self.phase = None

    def __str__(self):
        msg = super().__str__()
        if self.phase:
            return f'{self.phase}: {msg}'
        return msg


class ToolNotFoundError(ImageBuildError):
    'A required external program is not on the search path.'

    def __init__(self, tool):
        super().__init__('Required tool {!r} not found in PATH', tool)
        self.tool = tool


class ConfigurationError(ImageBuildError):
    pass


class ImageIOError(ImageBuildError):

    def __init__(self, path, message, *formatargs, **formatkwargs):
        super().__init__(
            '{}: ' + message, path, *formatargs, **formatkwargs,
        )
        self.path = path


class MountError(ImageBuildError):

    def __init__(self, source, target, message, *formatargs, **formatkwargs):
        super().__init__(message, *formatargs, **formatkwargs)
        self.source = source
        self.target = target


class ProcessError(ImageBuildError):

    def __init__(self, cmd, returncode):
        super().__init__(
            'Command {!r} returned non-zero exit status {}',
            ' '.join(cmd), returncode,
        )
        self.cmd = cmd
        self.returncode = returncode


class StateError(ImageBuildError):
    pass
