#!/usr/bin/env python3

from .manager import Manager, PackageManagerKind

__all__ = ['Manager', 'PackageManagerKind']

# Register implementations with Manager
from . import eopkg  # noqa: F401
