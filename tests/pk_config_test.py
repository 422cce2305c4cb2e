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

"""Tests for pubkit.config module."""

from __future__ import annotations

from pathlib import Path

import pytest
from pubkit.backends.workspace import Ecosystem
from pubkit.config import (
    CONFIG_FILENAME,
    PubkitConfig,
    WorkspaceConfig,
    default_workspace,
    load_config,
)
from pubkit.errors import E, PubkitError
from pubkit.logging import configure_logging

configure_logging(quiet=True)


def _write_config(tmp_path: Path, content: str) -> Path:
    """Write a pubkit.toml file and return the directory."""
    (tmp_path / CONFIG_FILENAME).write_text(content, encoding='utf-8')
    return tmp_path


class TestLoadConfigDefaults:
    """Tests for loading with no config file."""

    def test_no_file(self, tmp_path: Path) -> None:
        """No file means defaults."""
        config = load_config(tmp_path)
        assert config == PubkitConfig()
        assert config.config_path is None

    def test_default_workspace_per_ecosystem(self) -> None:
        """Each ecosystem has its own pacing defaults."""
        rust = default_workspace(Ecosystem.RUST)
        python = default_workspace(Ecosystem.PYTHON)
        js = default_workspace(Ecosystem.JS)
        assert (rust.settle_delay, rust.upload_delay) == (120.0, 10.0)
        assert (python.settle_delay, python.upload_delay) == (0.0, 20.0)
        assert (js.settle_delay, js.upload_delay) == (0.0, 0.0)
        assert (js.max_attempts, js.backoff_base, js.backoff_cap) == (8, 60.0, 600.0)
        assert js.dist_tag == 'next'


class TestLoadConfig:
    """Tests for parsing pubkit.toml."""

    def test_full_file(self, tmp_path: Path) -> None:
        """Global keys and workspace sections are parsed."""
        root = _write_config(
            tmp_path,
            'concurrency = 6\nhttp_timeout = 10\n\n'
            '[workspace.rust]\nroot = "rust"\ntiers = [["acme-types"], ["acme-core"]]\nupload_delay = 5\n\n'
            '[workspace.web]\necosystem = "js"\nroot = "js"\ndist_tag = "beta"\nexclude = ["*-example"]\n',
        )

        config = load_config(root)

        assert config.concurrency == 6
        assert config.http_timeout == 10.0
        assert config.config_path == root / CONFIG_FILENAME
        rust = config.workspaces['rust']
        assert rust.ecosystem == 'rust'
        assert rust.tiers == [['acme-types'], ['acme-core']]
        assert rust.upload_delay == 5.0
        # Ecosystem default survives where the file is silent.
        assert rust.settle_delay == 120.0
        web = config.workspaces['web']
        assert web.ecosystem_enum == Ecosystem.JS
        assert web.dist_tag == 'beta'
        assert web.exclude == ['*-example']

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Test invalid toml."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, 'concurrency = \n'))
        assert exc_info.value.code == E.CONFIG_INVALID

    def test_unknown_global_key_suggests(self, tmp_path: Path) -> None:
        """A typo gets a suggestion."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, 'concurency = 2\n'))
        assert exc_info.value.code == E.CONFIG_INVALID_KEY
        assert exc_info.value.hint == "Did you mean 'concurrency'?"

    def test_workspace_key_at_top_level(self, tmp_path: Path) -> None:
        """A workspace key in the wrong place says where it belongs."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, 'settle_delay = 30\n'))
        assert 'Move it under [workspace.<label>]' in exc_info.value.hint

    def test_unknown_workspace_key(self, tmp_path: Path) -> None:
        """Test unknown workspace key."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, '[workspace.js]\ndist_tags = "next"\n'))
        assert exc_info.value.code == E.CONFIG_INVALID_KEY
        assert exc_info.value.hint == "Did you mean 'dist_tag'?"

    def test_invalid_label(self, tmp_path: Path) -> None:
        """Test invalid label."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, '[workspace.JS]\necosystem = "js"\n'))
        assert exc_info.value.code == E.CONFIG_INVALID_KEY

    def test_missing_ecosystem(self, tmp_path: Path) -> None:
        """A label that is not an ecosystem needs an explicit one."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, '[workspace.web]\nroot = "js"\n'))
        assert exc_info.value.code == E.CONFIG_INVALID_VALUE

    def test_unknown_ecosystem(self, tmp_path: Path) -> None:
        """Test unknown ecosystem."""
        with pytest.raises(PubkitError):
            load_config(_write_config(tmp_path, '[workspace.go]\necosystem = "go"\n'))

    @pytest.mark.parametrize(
        'content',
        [
            'concurrency = 0\n',
            'concurrency = "4"\n',
            'concurrency = true\n',
            '[workspace.rust]\nsettle_delay = -1\n',
            '[workspace.rust]\nmax_attempts = 0\n',
            '[workspace.rust]\nbackoff_base = 100\nbackoff_cap = 10\n',
            '[workspace.rust]\ntiers = ["acme-core"]\n',
            '[workspace.rust]\nmembers = [1]\n',
            'workspace = 3\n',
        ],
    )
    def test_invalid_values(self, tmp_path: Path, content: str) -> None:
        """Type and range errors are reported as invalid values."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, content))
        assert exc_info.value.code == E.CONFIG_INVALID_VALUE


class TestWorkspaceFor:
    """Tests for PubkitConfig.workspace_for()."""

    def _config(self) -> PubkitConfig:
        return PubkitConfig(
            workspaces={
                'web': WorkspaceConfig(label='web', ecosystem='js', root='js'),
                'docs': WorkspaceConfig(label='docs', ecosystem='js', root='docs'),
                'rust': WorkspaceConfig(label='rust', ecosystem='rust', root='rust'),
            }
        )

    def test_first_matching_section(self) -> None:
        """Without a label the first section of the ecosystem wins."""
        assert self._config().workspace_for(Ecosystem.JS).label == 'web'

    def test_explicit_label(self) -> None:
        """Test explicit label."""
        assert self._config().workspace_for(Ecosystem.JS, 'docs').root == 'docs'

    def test_fallback_default(self) -> None:
        """An unconfigured ecosystem gets defaults."""
        ws = self._config().workspace_for(Ecosystem.PYTHON)
        assert ws == default_workspace(Ecosystem.PYTHON)

    def test_unknown_label(self) -> None:
        """Test unknown label."""
        with pytest.raises(PubkitError) as exc_info:
            self._config().workspace_for(Ecosystem.JS, 'nope')
        assert exc_info.value.code == E.CONFIG_UNKNOWN_WORKSPACE
        assert 'docs, rust, web' in exc_info.value.hint

    def test_wrong_ecosystem(self) -> None:
        """A label for another ecosystem is refused."""
        with pytest.raises(PubkitError) as exc_info:
            self._config().workspace_for(Ecosystem.RUST, 'web')
        assert exc_info.value.code == E.CONFIG_UNKNOWN_WORKSPACE

class TestUploadUrl:
    """Tests for registry_url / upload_url pairing."""

    def test_npm_registry_url_is_publish_target(self, tmp_path: Path) -> None:
        """npm reads and publishes through one registry."""
        config = load_config(_write_config(tmp_path, '[workspace.js]\nregistry_url = "http://localhost:4873"\n'))
        assert config.workspaces['js'].publish_url == 'http://localhost:4873'

    def test_python_pair(self, tmp_path: Path) -> None:
        """Test python pair."""
        config = load_config(
            _write_config(
                tmp_path,
                '[workspace.python]\nregistry_url = "https://test.pypi.org"\n'
                'upload_url = "https://test.pypi.org/legacy/"\n',
            )
        )
        ws = config.workspaces['python']
        assert ws.registry_url == 'https://test.pypi.org'
        assert ws.publish_url == 'https://test.pypi.org/legacy/'

    @pytest.mark.parametrize('label', ['python', 'rust'])
    def test_registry_url_without_upload_url(self, tmp_path: Path, label: str) -> None:
        """Queries and uploads must not silently target different registries."""
        with pytest.raises(PubkitError) as exc_info:
            load_config(_write_config(tmp_path, f'[workspace.{label}]\nregistry_url = "http://localhost:8080"\n'))
        assert exc_info.value.code == E.CONFIG_INVALID_VALUE
        assert 'upload_url' in exc_info.value.message

    def test_default_publish_url(self) -> None:
        """Test default publish url."""
        assert default_workspace(Ecosystem.PYTHON).publish_url == ''
