"""SSH agent discovery and SSH command construction for git subprocesses."""

import logging
import os
import re
import stat
import sys
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import InvalidSshKeyPathError
from .subprocess_utils import run_command

logger = logging.getLogger(__name__)

SSH_AUTH_SOCK = "SSH_AUTH_SOCK"

# Anything that could break out of the single-quoted path in core.sshCommand
_DANGEROUS_KEY_PATH_CHARS = re.compile(r"""[`$\\!"';&|<>(){}\[\]*?#~]""")


def is_socket_path(candidate: Optional[str]) -> bool:
    """True only when candidate exists and is a unix socket."""
    if not candidate:
        return False
    try:
        return stat.S_ISSOCK(os.stat(candidate).st_mode)
    except OSError:
        return False


class CredentialEnvResolver:
    """Builds the environment every git invocation runs with."""

    def __init__(
        self,
        gpg_agent_socket: Path = Path("~/.gnupg/S.gpg-agent.ssh"),
        gpgconf_candidates: Optional[List[str]] = None,
        probe_ssh_agent: bool = True,
    ):
        self.gpg_agent_socket = Path(gpg_agent_socket).expanduser()
        self.gpgconf_candidates = list(gpgconf_candidates or ["gpgconf"])
        self.probe_ssh_agent = probe_ssh_agent
        self._probed = False
        self._probed_socket: Optional[str] = None

    @classmethod
    def from_config(cls, config) -> "CredentialEnvResolver":
        return cls(
            gpg_agent_socket=config.gpg_agent_socket,
            gpgconf_candidates=config.gpgconf_candidates,
            probe_ssh_agent=config.probe_ssh_agent,
        )

    async def _run_gpgconf(self, args: List[str]) -> str:
        """Try each gpgconf location in order; empty string when none works."""
        for candidate in self.gpgconf_candidates:
            result = await run_command([candidate, *args])
            if result.success:
                return result.stdout
        return ""

    async def resolve_ssh_auth_sock(self) -> Optional[str]:
        """
        Find a live SSH agent socket.

        Order: ambient SSH_AUTH_SOCK, the per-user gpg-agent ssh socket, then
        ``gpgconf --list-dirs agent-ssh-socket`` (launching gpg-agent and asking
        once more if the reported socket is not live yet).

        Returns:
            Socket path, or None so git falls back to its own defaults
        """
        existing = os.environ.get(SSH_AUTH_SOCK, "").strip()
        if existing:
            return existing

        if sys.platform == "win32" or not self.probe_ssh_agent:
            return None

        if is_socket_path(str(self.gpg_agent_socket)):
            return str(self.gpg_agent_socket)

        candidate = (await self._run_gpgconf(["--list-dirs", "agent-ssh-socket"])).strip()
        if candidate and is_socket_path(candidate):
            return candidate

        if candidate:
            await self._run_gpgconf(["--launch", "gpg-agent"])
            retried = (await self._run_gpgconf(["--list-dirs", "agent-ssh-socket"])).strip()
            if retried and is_socket_path(retried):
                return retried

        return None

    async def build_env(self) -> Dict[str, str]:
        """Ambient environment with prompts disabled and SSH_AUTH_SOCK filled in when found."""
        env = dict(os.environ)
        env["GIT_TERMINAL_PROMPT"] = "0"
        if not env.get(SSH_AUTH_SOCK, "").strip():
            resolved = await self._cached_ssh_auth_sock()
            if resolved:
                env[SSH_AUTH_SOCK] = resolved
        return env

    async def _cached_ssh_auth_sock(self) -> Optional[str]:
        """Probe once per resolver; a cached socket that went away triggers a new probe."""
        if self._probed and (self._probed_socket is None or is_socket_path(self._probed_socket)):
            return self._probed_socket
        try:
            resolved = await self.resolve_ssh_auth_sock()
        except Exception as e:
            logger.warning(f"SSH agent probing failed: {e}")
            return None
        self._probed = True
        self._probed_socket = resolved
        return resolved

    def clear_cache(self) -> None:
        self._probed = False
        self._probed_socket = None


def escape_ssh_key_path(ssh_key_path: str, platform: Optional[str] = None) -> str:
    """
    Quote an SSH key path for embedding in ``core.sshCommand``.

    Args:
        ssh_key_path: Path to the private key
        platform: Overrides sys.platform (for tests)

    Returns:
        Single-quoted path; on Windows converted to MSYS form (``/c/...``)

    Raises:
        InvalidSshKeyPathError: If the path contains shell metacharacters
    """
    if _DANGEROUS_KEY_PATH_CHARS.search(ssh_key_path):
        raise InvalidSshKeyPathError(f"SSH key path contains invalid characters: {ssh_key_path}")

    if (platform or sys.platform) == "win32":
        unix_path = ssh_key_path.replace("\\", "/")
        drive = re.match(r"^([A-Za-z]):/", unix_path)
        if drive:
            unix_path = f"/{drive.group(1).lower()}{unix_path[2:]}"
        return f"'{unix_path}'"

    escaped = ssh_key_path.replace("'", "'\\''")
    return f"'{escaped}'"


def build_ssh_command(ssh_key_path: str, platform: Optional[str] = None) -> str:
    """``ssh -i '<key>' -o IdentitiesOnly=yes``"""
    return f"ssh -i {escape_ssh_key_path(ssh_key_path, platform)} -o IdentitiesOnly=yes"
