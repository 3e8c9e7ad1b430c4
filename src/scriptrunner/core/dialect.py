"""Shell dialects: invocation strings, path forms and script extensions.

Everything here is pure. The one rule that matters most: the stderr merge
(``2>&1`` / ``*>&1``) is written inside the *target* shell's command text and
that text is then quoted for the *invoking* shell, so an outer PowerShell
never sees a bare POSIX redirection and vice versa.
"""

import re
import shlex
from enum import Enum
from pathlib import PurePosixPath, PureWindowsPath


class ShellKind(str, Enum):
    """Shells a script can be run with."""

    BASH = "bash"
    SH = "sh"
    ZSH = "zsh"
    POWERSHELL = "powershell"
    CMD = "cmd"
    WSL = "wsl"
    GITBASH = "gitbash"

    @property
    def label(self) -> str:
        return _LABELS[self]

    @property
    def is_posix(self) -> bool:
        """True when the script body is POSIX shell syntax."""
        return self in POSIX_KINDS


_LABELS = {
    ShellKind.BASH: "Bash",
    ShellKind.SH: "sh",
    ShellKind.ZSH: "zsh",
    ShellKind.POWERSHELL: "PowerShell",
    ShellKind.CMD: "cmd",
    ShellKind.WSL: "WSL",
    ShellKind.GITBASH: "Git Bash",
}

POSIX_KINDS = frozenset(
    {ShellKind.BASH, ShellKind.SH, ShellKind.ZSH, ShellKind.WSL, ShellKind.GITBASH}
)

# Kinds that are launched from a Windows shell into a separate POSIX environment.
BRIDGED_KINDS = frozenset({ShellKind.WSL, ShellKind.GITBASH})

_ALIASES = {
    "pwsh": ShellKind.POWERSHELL,
    "ps": ShellKind.POWERSHELL,
    "ps1": ShellKind.POWERSHELL,
    "git-bash": ShellKind.GITBASH,
    "git bash": ShellKind.GITBASH,
    "cmd.exe": ShellKind.CMD,
}

GIT_BASH_PATH = r"C:\Program Files\Git\bin\bash.exe"
POWERSHELL_EXECUTABLE = "pwsh"

_DRIVE_RE = re.compile(r"^([A-Za-z]):(?:[\\/]|$)")


def parse_shell_kind(value: "ShellKind | str | None") -> ShellKind | None:
    """Resolve a user-supplied shell name (``"wsl"``, ``"pwsh"``, ...) to a kind.

    Returns None for empty or unrecognised names.
    """
    if value is None:
        return None
    if isinstance(value, ShellKind):
        return value
    key = value.strip().lower()
    if not key:
        return None
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return ShellKind(key)
    except ValueError:
        return None


def detect_shell_kind(shell_path: str) -> ShellKind:
    """Infer the kind of a shell from its executable path.

    Unknown shells are treated as a generic POSIX ``sh``.
    """
    if "\\" in shell_path or _DRIVE_RE.match(shell_path):
        name = PureWindowsPath(shell_path).name
    else:
        name = PurePosixPath(shell_path).name
    name = name.lower()
    if name.endswith(".exe"):
        name = name[: -len(".exe")]

    if name in ("pwsh", "powershell"):
        return ShellKind.POWERSHELL
    if name == "cmd":
        return ShellKind.CMD
    if name == "wsl":
        return ShellKind.WSL
    if name == "bash":
        return ShellKind.GITBASH if "git" in shell_path.lower() else ShellKind.BASH
    if name == "zsh":
        return ShellKind.ZSH
    return ShellKind.SH


def extension_for(kind: ShellKind) -> str:
    """File extension a staged script for ``kind`` should carry."""
    if kind is ShellKind.POWERSHELL:
        return ".ps1"
    if kind is ShellKind.CMD:
        return ".cmd"
    return ".sh"


def session_name_for(kind: ShellKind, base: str = "Script Runner") -> str:
    """Display-name prefix shared by every pooled session of ``kind``."""
    return f"{base} ({kind.label})"


def prepare_script(script: str, kind: ShellKind) -> str:
    """Normalise script text for the shell that will run it.

    POSIX scripts get LF line endings and, unless they already carry a
    shebang, a prologue that stops on the first failing command.
    """
    if kind.is_posix:
        body = script.replace("\r\n", "\n")
        if not body.startswith("#!"):
            interpreter = "/bin/sh" if kind is ShellKind.SH else f"/bin/{_posix_interpreter(kind)}"
            body = f"#!{interpreter}\nset -e\n{body}"
        return body
    if kind is ShellKind.CMD:
        return script.replace("\r\n", "\n").replace("\n", "\r\n")
    return script


def to_target_path(path: str, target: ShellKind) -> str:
    """Rewrite a host path into the form the target shell expects.

    ``C:\\work\\a.sh`` becomes ``/mnt/c/work/a.sh`` for WSL and
    ``/c/work/a.sh`` for Git Bash. PowerShell and cmd receive the path as is.
    """
    if target in (ShellKind.POWERSHELL, ShellKind.CMD):
        return path

    slashed = path.replace("\\", "/")
    match = _DRIVE_RE.match(path)
    if match is None:
        return slashed

    drive = match.group(1).lower()
    rest = slashed[2:].lstrip("/")
    if target is ShellKind.WSL:
        prefix = f"/mnt/{drive}"
    elif target is ShellKind.GITBASH:
        prefix = f"/{drive}"
    else:
        return slashed
    return f"{prefix}/{rest}" if rest else prefix


def posix_quote(value: str) -> str:
    return shlex.quote(value)


def powershell_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def cmd_quote(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


def quote_for(invoking: ShellKind, value: str) -> str:
    """Quote ``value`` as a single argument in the invoking shell's syntax."""
    if invoking is ShellKind.POWERSHELL:
        return powershell_quote(value)
    if invoking is ShellKind.CMD:
        return cmd_quote(value)
    return posix_quote(value)


def default_invoking_kind(target: ShellKind) -> ShellKind:
    """Shell assumed to be typing the invocation when the caller does not say.

    Native kinds invoke themselves; WSL and Git Bash are reached from PowerShell.
    """
    if target in BRIDGED_KINDS:
        return ShellKind.POWERSHELL
    return target


def build_invocation(
    script_path: str,
    target: "ShellKind | str",
    invoking: "ShellKind | str | None" = None,
) -> str:
    """Build the command line that runs ``script_path`` with merged output.

    Args:
        script_path: Host path of the staged script
        target: Shell that must interpret the script (unknown names fall back to sh)
        invoking: Shell the returned string is typed into

    Returns:
        Invocation string in the invoking shell's syntax
    """
    target_kind = parse_shell_kind(target) or ShellKind.SH
    invoking_kind = parse_shell_kind(invoking) or default_invoking_kind(target_kind)
    path = to_target_path(script_path, target_kind)

    if target_kind is ShellKind.POWERSHELL:
        inner = f"& {powershell_quote(path)} *>&1"
        return (
            f"{POWERSHELL_EXECUTABLE} -NoProfile -ExecutionPolicy Bypass -Command "
            f"{quote_for(invoking_kind, inner)}"
        )

    if target_kind is ShellKind.CMD:
        inner = f"call {cmd_quote(path)} 2>&1"
        if invoking_kind is ShellKind.CMD:
            return inner
        # /s strips exactly one pair of outer quotes from the command text
        wrapped = '"' + inner + '"'
        return f"cmd /d /s /c {quote_for(invoking_kind, wrapped)}"

    inner = f"{_posix_interpreter(target_kind)} {posix_quote(path)} 2>&1"

    if target_kind is ShellKind.WSL:
        if invoking_kind is ShellKind.WSL:
            return inner
        return f"wsl bash -c {quote_for(invoking_kind, inner)}"

    if target_kind is ShellKind.GITBASH:
        if invoking_kind is ShellKind.POWERSHELL:
            return f"& {powershell_quote(GIT_BASH_PATH)} -c {powershell_quote(inner)}"
        if invoking_kind is ShellKind.CMD:
            return f"{cmd_quote(GIT_BASH_PATH)} -c {cmd_quote(inner)}"
        return inner

    # bash / sh / zsh
    if invoking_kind.is_posix:
        return inner
    return f"{target_kind.value} -c {quote_for(invoking_kind, inner)}"


def _posix_interpreter(kind: ShellKind) -> str:
    if kind in (ShellKind.SH, ShellKind.ZSH):
        return kind.value
    return "bash"
