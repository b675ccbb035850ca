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

"""Description of a single paged list operation.

A :class:`ListCall` bundles the initial request of a list method with the
handful of capabilities the iterators in :mod:`api_paging.page_iterator` and
:mod:`api_paging.page_iterator_async` need to page through it:

    >>> call = ListCall(
    ...     request={"parent": "projects/p"},
    ...     issue=fetch_json,
    ...     read_token=lambda response: response.get("nextPageToken"),
    ...     write_token=lambda request, token: dict(request, pageToken=token),
    ...     read_items=lambda response: response.get("items", ()),
    ...     write_size=lambda request, size: dict(request, pageSize=size),
    ... )

Transport specific constructors live in :mod:`api_paging.grpc_helpers`,
:mod:`api_paging.grpc_helpers_async` and :mod:`api_paging.rest_helpers`.
"""

from typing import Any, Callable, Optional, Sequence


def is_absent_token(token: Optional[str]) -> bool:
    """Return True if ``token`` marks the end of a listing.

    Only a missing (``None``) token ends the listing; an empty string is
    passed back to the server like any other token.
    """
    return token is None


def is_absent_or_empty_token(token: Optional[str]) -> bool:
    """Return True if ``token`` is missing or the empty string.

    This is the convention of proto3 based APIs, where an unset string field
    reads back as ``""``.
    """
    # Note: intentionally a falsy check instead of a None check. The RPC
    # can return an empty string indicating no more pages.
    return not token


class ListCall:
    """The request and capabilities that describe one list operation.

    Instances are treated as immutable; the iterators never modify
    :attr:`request`, they derive a new request for every page through
    ``write_token`` and ``write_size``.

    Args:
        request (Any): The request for the first page. Its page token and page
            size fields are left alone unless the iterator needs to set them.
        issue (Callable[[Any], Any]): Performs one remote invocation and
            returns the response. A coroutine function for the asyncio
            iterators. Retry, authentication and timeouts are its concern.
        read_token (Callable[[Any], Optional[str]]): Extracts the next page
            token from a response.
        write_token (Callable[[Any, str], Any]): Returns a copy of a request
            carrying the given page token.
        read_items (Callable[[Any], Sequence[Any]]): Extracts the resources of
            a response, in order.
        write_size (Optional[Callable[[Any, int], Any]]): Returns a copy of a
            request carrying the given page size. Without it the page size is
            never written and the API default applies.
        is_terminal_token (Callable[[Optional[str]], bool]): Decides whether a
            token read from a response means "no more pages". Defaults to
            :func:`is_absent_token`.
    """

    def __init__(
        self,
        request: Any,
        issue: Callable[[Any], Any],
        read_token: Callable[[Any], Optional[str]],
        write_token: Callable[[Any, str], Any],
        read_items: Callable[[Any], Sequence[Any]],
        write_size: Optional[Callable[[Any, int], Any]] = None,
        is_terminal_token: Callable[[Optional[str]], bool] = is_absent_token,
    ):
        self.request = request
        self.issue = issue
        self.read_token = read_token
        self.write_token = write_token
        self.read_items = read_items
        self.write_size = write_size
        self.is_terminal_token = is_terminal_token

    @property
    def supports_page_size(self) -> bool:
        """bool: Whether requests of this call can carry a page size."""
        return self.write_size is not None

    def __repr__(self):
        return "{}(request={!r}, issue={!r})".format(
            type(self).__name__, self.request, self.issue
        )
