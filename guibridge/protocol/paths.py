"""Where the agent socket lives."""

import os
import tempfile

from guibridge.constants import SOCKET_ENV, SOCKET_FILE_NAME


def default_socket_path(environ=None) -> str:
    """Resolve the agent socket path.

    An explicit GUIBRIDGE_SOCKET wins, then the per-user runtime directory,
    then the shared temp directory.
    """
    environ = os.environ if environ is None else environ
    explicit = environ.get(SOCKET_ENV)
    if explicit:
        return explicit
    runtime_dir = environ.get("XDG_RUNTIME_DIR")
    if runtime_dir:
        return os.path.join(runtime_dir, SOCKET_FILE_NAME)
    return os.path.join(tempfile.gettempdir(), SOCKET_FILE_NAME)
