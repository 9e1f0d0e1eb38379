#!/usr/bin/env python3
'Utilities shared by the root filesystem build tooling.'
import logging
import os

from typing import AnyStr


def get_file_logger(py_path: AnyStr):
    return logging.getLogger(os.path.basename(py_path))


def init_logging(*, debug: bool=False):
    logging.basicConfig(
        format='%(levelname)s %(name)s %(asctime)s %(message)s',
        level=logging.DEBUG if debug else logging.INFO,
    )


def path_in_root(root: str, rel_path: str) -> str:
    '''
    Joins an image-relative path onto `root`.  Absolute paths are treated
    as relative to `root`, and paths escaping `root` are refused.
    '''
    p = os.path.normpath(rel_path.lstrip('/'))  # before testing for '..'
    if p.startswith('../') or p == '..':
        raise AssertionError(f'{rel_path} is outside the root')
    return os.path.normpath(os.path.join(root, p))
