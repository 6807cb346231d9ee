"""Run an external command and collect its standard output."""

from __future__ import annotations

import subprocess


def get_output_from_cmd(cmd: str, timeout: float | None = None) -> bytes:
    """Run cmd (split on single spaces) and return its standard output.

    Standard error goes to this process's standard error. A non-zero exit
    raises CalledProcessError, or RuntimeError carrying the output when the
    command printed something. A timeout raises subprocess.TimeoutExpired.
    """
    name, *args = cmd.split(" ")
    try:
        result = subprocess.run(
            [name, *args],
            stdout=subprocess.PIPE,
            timeout=timeout,
            check=True,
        )
    except subprocess.CalledProcessError as exc:
        if exc.output:
            output = exc.output.decode(errors="replace")
            raise RuntimeError(f"cmd err: {exc}, output: {output}") from exc
        raise
    return result.stdout