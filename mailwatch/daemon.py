"""Detach the process from its terminal."""

from __future__ import annotations

import os
import sys


def detach() -> None:
    """Double-fork into the background.

    Returns in the grandchild only; the original process and the
    intermediate child exit immediately with status 0.  The grandchild
    runs in a new session, has ``/`` as working directory and its standard
    streams point at ``/dev/null``.
    """
    sys.stdout.flush()
    sys.stderr.flush()

    if os.fork() > 0:
        os._exit(0)
    os.setsid()
    if os.fork() > 0:
        os._exit(0)

    os.chdir("/")
    os.umask(0o022)

    devnull = os.open(os.devnull, os.O_RDWR)
    for fd in (sys.stdin.fileno(), sys.stdout.fileno(), sys.stderr.fileno()):
        os.dup2(devnull, fd)
    os.close(devnull)
