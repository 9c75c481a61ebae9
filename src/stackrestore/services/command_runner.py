"""Subprocess execution service for stackrestore."""

import os
import subprocess
from typing import Dict, Iterable, List, Optional

from stackrestore.errors import RestoreError


class CommandRunner:
    """Runs external commands with consistent error handling."""

    MASK = "****"

    def __init__(
        self,
        logger,
        default_timeout: Optional[float] = None,
        sensitive_values: Optional[Iterable[str]] = None,
    ):
        self.logger = logger
        self.default_timeout = default_timeout
        self.sensitive_values = [value for value in (sensitive_values or []) if value]

    def mask(self, text: str) -> str:
        for value in self.sensitive_values:
            text = text.replace(value, self.MASK)
        return text

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        timeout: Optional[float] = None,
        cwd: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        stdin_path: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = self.mask(" ".join(cmd))
        if cwd:
            self.logger.debug("Executing in %s: %s", cwd, cmd_str)
        else:
            self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        process_env = None
        if env:
            process_env = dict(os.environ)
            process_env.update(env)

        stdin_file = None
        try:
            if stdin_path is not None:
                stdin_file = open(stdin_path, "rb")
            result = subprocess.run(
                cmd,
                text=stdin_file is None,
                capture_output=capture_output,
                timeout=effective_timeout,
                cwd=cwd,
                env=process_env,
                stdin=stdin_file,
            )
        except FileNotFoundError as exc:
            if stdin_path is not None and stdin_file is None:
                raise RestoreError(f"Input file not found: {stdin_path}") from exc
            raise RestoreError(
                f"Required command not found: {cmd[0]}. Please install it and try again."
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise RestoreError(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except Exception as exc:
            raise RestoreError(f"Failed to execute command: {cmd_str}. {self.mask(str(exc))}") from exc
        finally:
            if stdin_file is not None:
                stdin_file.close()

        if stdin_file is not None and capture_output:
            result.stdout = _decode(result.stdout)
            result.stderr = _decode(result.stderr)

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", self.mask(result.stdout.strip()))

        if result.returncode == 0:
            return result

        stderr = self.mask((result.stderr or "").strip()) if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise RestoreError(message)

        # Callers probe with check=False and warn themselves when it matters.
        self.logger.debug(message)
        return result


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value or ""
