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

"""Shared test fakes for pubkit.

Provides reusable fake implementations of the Registry and
PackageManager protocols so that individual test modules don't need to
duplicate boilerplate classes.

Usage::

    from tests._fakes import OK, FakePM, FakeRegistry

    registry = FakeRegistry(published={'core==1.0.0'})
    pm = FakePM(uploads={'cli': [UploadStatus.RATE_LIMITED, UploadStatus.UPLOADED]})
"""

from tests._fakes._pm import OK as OK, FakePM as FakePM, failed as failed
from tests._fakes._registry import FakeRegistry as FakeRegistry

__all__ = [
    'OK',
    'FakePM',
    'FakeRegistry',
    'failed',
]
