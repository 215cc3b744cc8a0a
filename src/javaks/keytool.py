from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

from .errors import KeytoolNotFound

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120
TIMEOUT_EXIT = 124
SECRET_PREFIX = "JAVAKS_SECRET_"


@dataclass(frozen=True)
class ToolResult:
    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out

    @property
    def diagnostic(self) -> str:
        # keytool writes "keytool error: ..." to stdout
        parts = [p.strip() for p in (self.stderr, self.stdout) if p and p.strip()]
        if self.timed_out:
            parts.insert(0, "keytool timed out")
        return "\n".join(parts)


def find_keytool(configured: str | None = None) -> str:
    candidates = []
    if configured:
        candidates.append(configured)
    if os.environ.get("JAVAKS_KEYTOOL"):
        candidates.append(os.environ["JAVAKS_KEYTOOL"])
    java_home = os.environ.get("JAVA_HOME")
    if java_home:
        candidates.append(str(Path(java_home) / "bin" / "keytool"))
    candidates.append("keytool")
    for candidate in candidates:
        path = shutil.which(candidate)
        if path:
            return path
    raise KeytoolNotFound(f"keytool not found (tried {', '.join(candidates)})")


def password_option(option: str, name: str) -> list[str]:
    """Reference a secret by environment variable, e.g. ``-storepass:env NAME``."""
    return [f"{option}:env", SECRET_PREFIX + name]


@dataclass
class Keytool:
    executable: str = "keytool"
    timeout: float = DEFAULT_TIMEOUT
    env: Mapping[str, str] = field(default_factory=dict)

    def _child_env(self, secrets: Mapping[str, str]) -> dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        env["LC_ALL"] = "C"
        env["LANG"] = "C"
        for name, value in secrets.items():
            env[SECRET_PREFIX + name] = value
        return env

    def run(
        self,
        args: Sequence[str],
        secrets: Mapping[str, str] | None = None,
        stdin: str | None = None,
    ) -> ToolResult:
        cmd = [self.executable, *args]
        logger.debug("running %s", " ".join(cmd))
        try:
            cp = subprocess.run(
                cmd,
                env=self._child_env(secrets or {}),
                input=stdin,
                text=True,
                capture_output=True,
                timeout=self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            logger.warning("keytool timed out after %ss: %s", self.timeout, " ".join(args[:1]))
            return ToolResult(
                args=tuple(args),
                returncode=TIMEOUT_EXIT,
                stdout=_text(exc.stdout),
                stderr=_text(exc.stderr),
                timed_out=True,
            )
        except OSError as exc:
            raise KeytoolNotFound(f"cannot execute {self.executable}: {exc}") from exc
        logger.debug("keytool exited %s", cp.returncode)
        return ToolResult(args=tuple(args), returncode=cp.returncode, stdout=cp.stdout, stderr=cp.stderr)


def _text(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
