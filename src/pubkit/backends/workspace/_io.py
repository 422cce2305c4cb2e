# Copyright 2026 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# SPDX-License-Identifier: Apache-2.0

"""Async manifest parsing helpers shared by the readers."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import aiofiles
import tomlkit
import tomlkit.exceptions

from pubkit.errors import E, PubkitError


async def read_file(path: Path) -> str:
    """Read a UTF-8 text file asynchronously via aiofiles."""
    try:
        async with aiofiles.open(path, encoding='utf-8') as f:
            return await f.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'Failed to read {path}: {exc}',
            hint=f'Check that {path} is readable UTF-8 text.',
        ) from exc


async def read_toml(path: Path) -> dict[str, Any]:  # noqa: ANN401 - TOML values are untyped
    """Read and parse a TOML manifest into plain Python values."""
    text = await read_file(path)
    try:
        return tomlkit.parse(text).unwrap()
    except tomlkit.exceptions.TOMLKitError as exc:
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'Failed to parse {path}: {exc}',
            hint=f'Check that {path} contains valid TOML.',
        ) from exc


async def read_json_object(path: Path) -> dict[str, Any]:  # noqa: ANN401 - JSON values are untyped
    """Read a JSON file whose top level must be an object."""
    text = await read_file(path)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'Failed to parse {path}: {exc}',
            hint=f'Check that {path} contains valid JSON.',
        ) from exc
    if not isinstance(data, dict):
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'{path} is not a JSON object',
            hint=f'Expected a JSON object at the top level of {path}.',
        )
    return data


def require_str(data: dict[str, Any], key: str, path: Path) -> str:  # noqa: ANN401
    """Return ``data[key]`` if it is a non-empty string, else raise."""
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise PubkitError(
            code=E.MANIFEST_INVALID,
            message=f'{path}: missing or empty "{key}"',
            hint=f'Set a "{key}" string so the package can be identified.',
        )
    return value.strip()
