"""Shell host implementations.

- SubprocessShellHost: local subprocesses, one process group per command
"""

from scriptrunner.core.hosts.subprocess_host import SubprocessShellHost

__all__ = ["SubprocessShellHost"]
