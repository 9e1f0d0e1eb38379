#!/usr/bin/env python3
'Builds Linux root filesystem images by driving a package manager.'
