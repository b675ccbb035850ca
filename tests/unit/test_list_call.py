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

import mock
import pytest

from api_paging import list_call


@pytest.mark.parametrize(
    "token,expected", [(None, True), ("", False), ("abc", False)]
)
def test_is_absent_token(token, expected):
    assert list_call.is_absent_token(token) is expected


@pytest.mark.parametrize(
    "token,expected", [(None, True), ("", True), ("abc", False)]
)
def test_is_absent_or_empty_token(token, expected):
    assert list_call.is_absent_or_empty_token(token) is expected


def test_constructor_defaults():
    call = list_call.ListCall(
        mock.sentinel.request,
        mock.sentinel.issue,
        mock.sentinel.read_token,
        mock.sentinel.write_token,
        mock.sentinel.read_items,
    )

    assert call.request is mock.sentinel.request
    assert call.issue is mock.sentinel.issue
    assert call.read_token is mock.sentinel.read_token
    assert call.write_token is mock.sentinel.write_token
    assert call.read_items is mock.sentinel.read_items
    assert call.write_size is None
    assert call.is_terminal_token is list_call.is_absent_token
    assert not call.supports_page_size


def test_constructor_options():
    call = list_call.ListCall(
        mock.sentinel.request,
        mock.sentinel.issue,
        mock.sentinel.read_token,
        mock.sentinel.write_token,
        mock.sentinel.read_items,
        write_size=mock.sentinel.write_size,
        is_terminal_token=list_call.is_absent_or_empty_token,
    )

    assert call.write_size is mock.sentinel.write_size
    assert call.is_terminal_token is list_call.is_absent_or_empty_token
    assert call.supports_page_size


def test___repr__():
    call = list_call.ListCall(
        {"parent": "p"},
        mock.sentinel.issue,
        mock.sentinel.read_token,
        mock.sentinel.write_token,
        mock.sentinel.read_items,
    )

    assert repr(call) == "ListCall(request={'parent': 'p'}, issue=sentinel.issue)"
