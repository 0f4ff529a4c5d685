"""Filesystem tools — thin wrappers over the ``filesystem`` capability."""

from __future__ import annotations

from typing import Any

from safeact.tools.base import CapabilityTool
from safeact.tools.params import (
    ListDirectoryParams,
    MoveFileParams,
    ReadFileParams,
    SearchFilesParams,
    WriteFileParams,
)


class ReadFileTool(CapabilityTool):
    name = "read_file"
    description = "Read a UTF-8 text file from an allowed path."
    params_model = ReadFileParams
    capability = "filesystem"
    action = "read"


class WriteFileTool(CapabilityTool):
    name = "write_file"
    description = "Write text content to a file in an allowed path, replacing it."
    params_model = WriteFileParams
    capability = "filesystem"
    action = "write"


class ListDirectoryTool(CapabilityTool):
    name = "list_directory"
    description = "List the entries of a directory."
    params_model = ListDirectoryParams
    capability = "filesystem"
    action = "list"


class SearchFilesTool(CapabilityTool):
    name = "search_files"
    description = "Search files by name pattern under an allowed directory."
    params_model = SearchFilesParams
    capability = "filesystem"
    action = "search"


class MoveFileTool(CapabilityTool):
    name = "move_file"
    description = "Move or rename a file between allowed paths."
    params_model = MoveFileParams
    capability = "filesystem"
    action = "move"

    def map_params(self, params: MoveFileParams) -> dict[str, Any]:
        # The source is the primary resource the sandbox checks and audits.
        return {"path": params.source_path, "destination": params.destination_path}


def create_filesystem_tools() -> list[CapabilityTool]:
    return [ReadFileTool(), WriteFileTool(), ListDirectoryTool(), SearchFilesTool(), MoveFileTool()]
