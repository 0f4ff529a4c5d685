"""Capabilities — Filesystem.

Decision order for a path (after ``~`` expansion and symlink resolution):

    1. path traversal through ``..`` escaping its starting directory → deny
    2. any ``denied_paths`` glob matches                               → deny
    3. inside the workspace                                            → auto
    4. first ``allowed_paths`` rule matching path AND action           → its level
    5. nothing matched                                                 → deny

Actions: read, write, list, search, move, delete.  ``move`` checks both the
source and the destination.
"""

from __future__ import annotations

import asyncio
import fnmatch
import os
import shutil
import time
from pathlib import Path
from typing import Any

from safeact.config import FilesystemPolicyConfig
from safeact.logging import get_logger
from safeact.security.capabilities.base import BaseCapability
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

ACTIONS = ("read", "write", "list", "search", "move", "delete")
SEARCH_MAX_RESULTS = 200


def expand_tilde(raw: str, home: str) -> str:
    if raw == "~":
        return home
    if raw.startswith("~/"):
        return os.path.join(home, raw[2:])
    return raw


def glob_match(path: str, pattern: str) -> bool:
    """Shell-style match where ``dir/**`` also covers ``dir`` itself."""
    if fnmatch.fnmatchcase(path, pattern):
        return True
    return pattern.endswith("/**") and path == pattern[:-3]


class FilesystemCapability(BaseCapability):
    name = "filesystem"
    description = "Controls file system access: read, write, list, search, move and delete"

    def __init__(self, config: FilesystemPolicyConfig, home: str | None = None) -> None:
        self._home = home or str(Path.home())
        self._workspace = self._absolute(config.workspace)
        self._denied = [self._absolute(p) for p in config.denied_paths]
        self._rules = [
            (self._absolute(rule.path), set(rule.actions), rule.level)
            for rule in config.allowed_paths
        ]

    @property
    def workspace(self) -> str:
        return self._workspace

    def _absolute(self, raw: str) -> str:
        return os.path.realpath(expand_tilde(raw, self._home))

    # ------------------------------------------------------------------
    # Path resolution
    # ------------------------------------------------------------------

    def resolve(self, raw: str, action: str) -> str:
        """Return the real path *action* would touch.  Raises OSError if unresolvable."""
        absolute = os.path.abspath(expand_tilde(raw, self._home))
        if action in ("write", "move_destination") and not os.path.lexists(absolute):
            parent = os.path.dirname(absolute)
            if not os.path.isdir(parent):
                raise FileNotFoundError(f"No such directory: {parent}")
            return os.path.join(os.path.realpath(parent), os.path.basename(absolute))
        if not os.path.lexists(absolute):
            raise FileNotFoundError(f"No such file or directory: {absolute}")
        return os.path.realpath(absolute)

    def _is_traversal(self, raw: str, resolved: str) -> bool:
        if ".." not in raw:
            return False
        head = expand_tilde(raw, self._home).split("..")[0] or "."
        expected_parent = os.path.dirname(os.path.abspath(head))
        return not resolved.startswith(expected_parent)

    # ------------------------------------------------------------------
    # Permission
    # ------------------------------------------------------------------

    def check_permission(self, request: PermissionRequest) -> PermissionDecision:
        if not request.resource:
            return Denied("Missing required parameter: path")
        return self._decide(request.resource, request.action)

    def check_call(
        self, action: str, resource: str, params: dict[str, Any]
    ) -> PermissionDecision:
        decision = super().check_call(action, resource, params)
        if action != "move" or isinstance(decision, Denied):
            return decision
        destination = str(params.get("destination") or "")
        if not destination:
            return Denied("Missing required parameter: destination")
        target = self._decide(destination, "move_destination", "move")
        if isinstance(target, Denied):
            return target
        if decision.level.needs_approval or target.level.needs_approval:
            return Allowed(DecisionLevel.USER_APPROVED)
        return decision

    def _decide(self, raw: str, action: str, rule_action: str | None = None) -> PermissionDecision:
        rule_action = rule_action or action
        try:
            effective = self.resolve(raw, action)
        except OSError as exc:
            return Denied(f'Path resolution failed for "{raw}": {exc}')

        if self._is_traversal(raw, effective):
            log.warning("path_traversal_detected", raw=raw, resolved=effective)
            return Denied(f"Path traversal detected: {raw} resolves to {effective}")

        for pattern in self._denied:
            if glob_match(effective, pattern):
                return Denied(f"Path is denied: {raw}")

        if effective == self._workspace or effective.startswith(self._workspace + os.sep):
            return Allowed(DecisionLevel.AUTO)

        for pattern, actions, level in self._rules:
            if rule_action in actions and glob_match(effective, pattern):
                if level == "deny":
                    return Denied(f"Rule explicitly denies {rule_action} on {raw}")
                if level == "ask":
                    return Allowed(DecisionLevel.USER_APPROVED)
                return Allowed(DecisionLevel.AUTO)

        return Denied(f"No rule allows '{rule_action}' on {raw}")

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(self, action: str, params: dict[str, Any]) -> CapabilityResult:
        raw = str(params.get("path") or "")
        if not raw:
            return self._fail(
                action, "", params, "Missing required parameter: path",
                result=AuditResult.ERROR,
            )
        if action not in ACTIONS:
            return self._fail(
                action, raw, params, f"Unknown action: {action}", result=AuditResult.ERROR
            )

        decision, refusal = self._guard(action, raw, params)
        if refusal is not None:
            log.warning("filesystem_access_denied", action=action, path=raw, reason=refusal.error)
            return refusal

        path = raw
        started = time.perf_counter()
        handler = getattr(self, f"_action_{action}")
        try:
            path = self.resolve(raw, action)
            output, text = await handler(path, params)
        except OSError as exc:
            duration_ms = (time.perf_counter() - started) * 1000
            log.error("filesystem_action_failed", action=action, path=path, error=str(exc))
            return self._fail(
                action, path, params, str(exc),
                decision=AuditDecision.ERROR, result=AuditResult.ERROR, duration_ms=duration_ms,
            )
        return self._succeed(action, path, params, decision, output, text, started)

    async def _action_read(self, path: str, params: dict[str, Any]) -> tuple[Any, str]:
        content = await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        return content, content

    async def _action_write(self, path: str, params: dict[str, Any]) -> tuple[Any, str]:
        content = str(params.get("content") or "")
        await asyncio.to_thread(Path(path).write_text, content, encoding="utf-8")
        written = len(content.encode("utf-8"))
        return {"bytes_written": written}, f"{written} bytes written"

    async def _action_list(self, path: str, params: dict[str, Any]) -> tuple[Any, str]:
        entries = sorted(await asyncio.to_thread(os.listdir, path))
        return entries, "\n".join(entries)

    async def _action_search(self, path: str, params: dict[str, Any]) -> tuple[Any, str]:
        pattern = str(params.get("pattern") or "*")
        matches = await asyncio.to_thread(self._search_sync, path, pattern)
        return matches, "\n".join(matches)

    def _search_sync(self, root: str, pattern: str) -> list[str]:
        matches: list[str] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [
                d for d in sorted(dirnames)
                if not any(glob_match(os.path.join(dirpath, d), p) for p in self._denied)
            ]
            for name in sorted(filenames):
                if not fnmatch.fnmatch(name, pattern):
                    continue
                full = os.path.join(dirpath, name)
                if any(glob_match(full, p) for p in self._denied):
                    continue
                matches.append(full)
                if len(matches) >= SEARCH_MAX_RESULTS:
                    return matches
        return matches

    async def _action_move(self, path: str, params: dict[str, Any]) -> tuple[Any, str]:
        destination = self.resolve(str(params["destination"]), "move_destination")
        await asyncio.to_thread(shutil.move, path, destination)
        return {"source": path, "destination": destination}, f"Moved {path} -> {destination}"

    async def _action_delete(self, path: str, params: dict[str, Any]) -> tuple[Any, str]:
        await asyncio.to_thread(os.unlink, path)
        return {"deleted": True}, f"Deleted {path}"
