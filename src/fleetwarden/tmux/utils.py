"""Parsing helpers for tmux output."""

from __future__ import annotations


def parse_lines(output: str) -> list[str]:
    """Return non-empty, stripped lines from tmux output."""

    return [line.strip() for line in output.splitlines() if line.strip()]


def parse_pid_lines(output: str) -> list[int]:
    """Return the integer PIDs found one-per-line in ``output``.

    Lines that do not parse as integers are skipped.
    """

    pids: list[int] = []
    for line in parse_lines(output):
        try:
            pids.append(int(line.split()[0]))
        except ValueError:
            continue
    return pids


__all__ = ["parse_lines", "parse_pid_lines"]
