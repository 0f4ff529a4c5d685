"""Capabilities — Shell.

Commands are tokenized (quote aware), split into segments on ``| || && ;``
and classified against three configured lists:

    denied pattern anywhere            → deny
    expansion / redirection / compound → ask
    every segment starts with a safe   → auto
    otherwise (ask list or unknown)    → ask

Pattern tokens ending in ``=`` (``dd if=``) or starting with ``/``
(``> /dev``) match as prefixes; every other token must match exactly.
"""

from __future__ import annotations

import asyncio
import os
import re
import shlex
import time
from dataclasses import dataclass
from typing import Any

from safeact.config import ShellPolicyConfig
from safeact.logging import get_logger
from safeact.redaction import redact_secrets
from safeact.security.capabilities.base import BaseCapability, approved_label
from safeact.security.models import (
    Allowed,
    AuditDecision,
    AuditResult,
    CapabilityResult,
    DecisionLevel,
    Denied,
    PermissionDecision,
    PermissionRequest,
)

log = get_logger(__name__)

SEGMENT_OPERATORS = frozenset({"|", "||", "&&", ";", "&"})
REDIRECT_OPERATORS = frozenset({">", ">>", "<", "<<", "&>", ">&", "<&", ">|"})
_EXPANSION = re.compile(r"`|\$\(|\$\{|<\(|>\(|\n")


def tokenize(command: str) -> list[str]:
    """Split *command* like a POSIX shell would, keeping operators as tokens."""
    lexer = shlex.shlex(command, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    return list(lexer)


def split_segments(tokens: list[str]) -> list[list[str]]:
    segments: list[list[str]] = []
    current: list[str] = []
    for token in tokens:
        if token in SEGMENT_OPERATORS:
            if current:
                segments.append(current)
            current = []
            continue
        current.append(token)
    if current:
        segments.append(current)
    return segments


def _token_matches(token: str, pattern: str) -> bool:
    if pattern.endswith("=") or pattern.startswith("/"):
        return token.startswith(pattern)
    return token == pattern


def _window_match(tokens: list[str], pattern: list[str]) -> bool:
    if not pattern or len(tokens) < len(pattern):
        return False
    for start in range(len(tokens) - len(pattern) + 1):
        if all(_token_matches(tokens[start + i], p) for i, p in enumerate(pattern)):
            return True
    return False


def _pipeline_match(segments: list[list[str]], pattern_segments: list[list[str]]) -> bool:
    """``curl | bash`` also matches ``curl -s https://x | bash`` (segment heads)."""
    if len(pattern_segments) < 2 or len(segments) < len(pattern_segments):
        return False
    for start in range(len(segments) - len(pattern_segments) + 1):
        window = segments[start:start + len(pattern_segments)]
        if all(
            len(seg) >= len(pat) and all(_token_matches(t, p) for t, p in zip(seg, pat))
            for seg, pat in zip(window, pattern_segments)
        ):
            return True
    return False


@dataclass(frozen=True)
class _CompiledPattern:
    text: str
    tokens: list[str]
    segments: list[list[str]]


def _compile(text: str) -> _CompiledPattern:
    tokens = [t.lower() for t in tokenize(text)]
    return _CompiledPattern(text=text, tokens=tokens, segments=split_segments(tokens))


def _prefix_of(words: list[str], prefix: list[str]) -> bool:
    return 0 < len(prefix) <= len(words) and words[: len(prefix)] == prefix


class ShellCapability(BaseCapability):
    name = "shell"
    description = "Execute shell commands with safety classification"

    def __init__(self, config: ShellPolicyConfig) -> None:
        self._config = config
        self._denied = [_compile(p) for p in config.denied_patterns]
        self._safe = [[t.lower() for t in tokenize(c)] for c in config.safe_commands]
        self._ask = [[t.lower() for t in tokenize(c)] for c in config.ask_commands]

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def _denied_by(self, tokens: list[str]) -> str | None:
        segments = split_segments(tokens)
        for pattern in self._denied:
            if _window_match(tokens, pattern.tokens) or _pipeline_match(segments, pattern.segments):
                return pattern.text
        return None

    def classify_segment(self, words: list[str]) -> str:
        """Return ``safe``, ``ask`` or ``unknown`` for one lower-cased segment."""
        if any(w in REDIRECT_OPERATORS for w in words):
            return "ask"
        if any(_prefix_of(words, safe) for safe in self._safe):
            return "safe"
        if any(_prefix_of(words, ask) for ask in self._ask):
            return "ask"
        return "unknown"

    def check_permission(self, request: PermissionRequest) -> PermissionDecision:
        command = request.resource.strip()
        if not command:
            return Denied("Empty command")

        try:
            tokens = [t.lower() for t in tokenize(command)]
            parsed = True
        except ValueError:
            tokens = command.lower().split()
            parsed = False

        matched = self._denied_by(tokens)
        if matched is not None:
            log.warning(
                "shell_command_denied",
                command=redact_secrets(command),
                pattern=matched,
                requested_by=request.requested_by,
            )
            return Denied(f'Command denied by policy pattern: "{matched}"')

        segments = split_segments(tokens)
        if not segments:
            return Denied("Empty command")

        needs_approval = not parsed or len(segments) > 1 or bool(_EXPANSION.search(command))
        for words in segments:
            if self.classify_segment(words) != "safe":
                needs_approval = True

        if needs_approval:
            return Allowed(DecisionLevel.USER_APPROVED)
        return Allowed(DecisionLevel.AUTO)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, action: str, params: dict[str, Any]) -> CapabilityResult:
        command = params.get("command")
        if not isinstance(command, str) or not command.strip():
            return self._fail(
                action, "", params, "Missing or invalid command parameter",
                decision=AuditDecision.ERROR, result=AuditResult.ERROR,
            )
        if action != "run":
            return self._fail(
                action, command, params, f"Unknown action: {action}", result=AuditResult.ERROR
            )

        decision, refusal = self._guard(action, command, params)
        if refusal is not None:
            log.warning(
                "shell_execution_refused", command=redact_secrets(command), reason=refusal.error
            )
            return refusal

        cwd = params.get("cwd")
        if cwd:
            cwd = os.path.realpath(os.path.expanduser(str(cwd)))
            if not os.path.isdir(cwd):
                return self._fail(
                    action, command, params, "Invalid cwd: not a directory",
                    decision=AuditDecision.ERROR, result=AuditResult.ERROR,
                )

        timeout = float(params.get("timeout") or self._config.timeout_seconds)
        started = time.perf_counter()
        try:
            stdout, stderr, exit_code = await self._run(command, cwd, timeout)
        except (OSError, TimeoutError) as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            message = redact_secrets(str(exc))
            log.error("shell_command_failed", command=redact_secrets(command), error=message)
            return self._fail(
                action, command, params, message,
                decision=AuditDecision.ERROR, result=AuditResult.ERROR, duration_ms=duration_ms,
            )

        limit = self._config.max_output_chars
        output = {
            "stdout": redact_secrets(stdout)[:limit],
            "stderr": redact_secrets(stderr)[:limit],
            "exit_code": exit_code,
        }
        text = _format_output(output)
        log.info(
            "shell_command_executed",
            command=redact_secrets(command),
            exit_code=exit_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        if exit_code == 0:
            return self._succeed(action, command, params, decision, output, text, started)

        duration_ms = (time.perf_counter() - started) * 1000
        error = output["stderr"] or f"Command exited with code {exit_code}"
        entry = self._entry(
            action, command, params, approved_label(decision), AuditResult.ERROR,
            duration_ms=duration_ms, output=text, error=error,
        )
        return CapabilityResult(
            success=False, output=output, error=error, audit_entry=entry, duration_ms=duration_ms
        )

    async def _run(self, command: str, cwd: str | None, timeout: float) -> tuple[str, str, int]:
        proc = await asyncio.create_subprocess_exec(
            "/bin/sh", "-c", command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.communicate()
            raise TimeoutError(f"Command timed out after {timeout}s")
        return (
            stdout_bytes.decode("utf-8", errors="replace"),
            stderr_bytes.decode("utf-8", errors="replace"),
            proc.returncode if proc.returncode is not None else -1,
        )


def _format_output(output: dict[str, Any]) -> str:
    parts = []
    if output["stdout"]:
        parts.append(f"stdout: {output['stdout']}")
    if output["stderr"]:
        parts.append(f"stderr: {output['stderr']}")
    parts.append(f"exit_code: {output['exit_code']}")
    return "\n".join(parts)
