# Copyright 2020 Google LLC
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

"""AsyncIO iterators for paging through paged API methods.

These iterators mirror :mod:`api_paging.page_iterator` with AsyncIO
semantics: the ``issue`` capability of the list call is a coroutine function
and every page fetch is awaited. Ordering, page token handling and fixed-size
re-packing are identical.

    >>> results_iterator = list_all(call)

Or you can walk your way through items and call off the search early if
you find what you're looking for (resulting in possibly fewer requests)::

    >>> async for resource in results_iterator:
    ...     print(resource.name)
    ...     if not resource.is_valid:
    ...         break

To iterate based on each page of items (where a page corresponds to
a request)::

    >>> async for page in results_iterator.pages:
    ...     print('  Items in page: {:d}'.format(page.num_items))
    ...     print('Next page token: {}'.format(page.next_page_token))

Or in batches of an exact size::

    >>> async for fixed_page in list_all(call).pages.with_fixed_size(25):
    ...     render(list(fixed_page))

Cancelling the task that consumes an iterator cancels the in-flight fetch;
:class:`asyncio.CancelledError` propagates and no partial page is produced.
An :class:`asyncio.Event` passed as ``cancel_event`` does the same without
cancelling the task, raising
:class:`~api_paging.exceptions.IterationCancelled`.
"""

import asyncio

from api_paging import client_logging
from api_paging import exceptions
from api_paging.page_iterator import (
    Cursor,
    FixedSizePage,
    Page,
    PageFetcher,
    _FixedSizeBuffer,
    _log_fetch,
    _log_page,
    _raise_if_cancelled,
    _validate_size,
)

__all__ = [
    "AsyncFixedSizePageIterator",
    "AsyncPageFetcher",
    "AsyncPageIterator",
    "AsyncResourceIterator",
    "FixedSizePage",
    "Page",
    "list_all",
]


class AsyncPageFetcher(PageFetcher):
    """Issues the awaitable remote call for a single page of a list call."""

    async def fetch(self, request, page_token=None, page_size=None):
        """Fetch one page.

        Returns:
            Tuple[Any, Optional[str], Sequence[Any]]: The response, the next
                page token it carries and its items.
        """
        response = await self._call.issue(
            self.prepare(request, page_token, page_size)
        )
        next_page_token, items = self.unpack(response)
        return response, next_page_token, items


class AsyncResourceIterator(object):
    """A generic class for iterating through the resources of a list call.

    Args:
        call (~api_paging.list_call.ListCall): The list call to iterate. Its
            ``issue`` capability must be a coroutine function.
        page_size (Optional[int]): The page size to request. When unset, the
            request's own page size (usually the API default) is used.
        page_token (Optional[str]): A token identifying a page in a result
            set to start fetching results from.
        cancel_event (Optional[asyncio.Event]): Cancels the iteration when set,
            including a fetch already in flight.

    .. autoattribute:: pages
    """

    def __init__(self, call, page_size=None, page_token=None, cancel_event=None):
        self._started = False
        self.__active_aiterator = None

        self.call = call
        """~api_paging.list_call.ListCall: The list call being iterated."""
        self._fetcher = AsyncPageFetcher(call)
        self._cursor = Cursor(call.is_terminal_token, page_token=page_token)
        self._cancel_event = cancel_event
        self._page_size = None
        if page_size is not None:
            self.with_page_size(page_size)

        # The attributes below will change over the life of the iterator.
        self.page_number = 0
        """int: The current page of results."""
        self.num_results = 0
        """int: The total number of results fetched so far."""

        client_logging.initialize_logging()

    @property
    def next_page_token(self):
        """Optional[str]: The token the next request will carry."""
        return self._cursor.page_token

    @property
    def page_size(self):
        """Optional[int]: The page size written to each request."""
        return self._page_size

    def with_page_size(self, page_size):
        """Set the page size requested from the API.

        Raises:
            ~api_paging.exceptions.InvalidArgument: If ``page_size`` is not
                positive or the list call cannot carry a page size.
            ValueError: If the iterator has already been started.
        """
        _validate_size(page_size, "page_size")
        if not self.call.supports_page_size:
            raise exceptions.InvalidArgument(
                "The list call does not support a page size", self.call
            )
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._page_size = page_size
        return self

    @property
    def pages(self):
        """Iterator of pages in the response.

        returns:
            AsyncPageIterator: An async iterator of :class:`Page` instances.

        raises:
            ValueError: If the iterator has already been started.
        """
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return AsyncPageIterator(self)

    async def _items_aiter(self):
        """Iterator for each item returned."""
        async for page in self._page_aiter(increment=False):
            for item in page:
                self.num_results += 1
                yield item

    def __aiter__(self):
        """Iterator for each item returned.

        Returns:
            types.AsyncGeneratorType[Any]: A generator of items from the API.

        Raises:
            ValueError: If the iterator has already been started.
        """
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return self._items_aiter()

    async def __anext__(self):
        if self.__active_aiterator is None:
            self.__active_aiterator = self.__aiter__()
        return await self.__active_aiterator.__anext__()

    async def _page_aiter(self, increment):
        """Generator of pages of API responses.

        Args:
            increment (bool): Flag indicating if the total number of results
                should be incremented on each page.

        Yields:
            Page: each page of items from the API.
        """
        page = await self._next_page()
        while page is not None:
            self.page_number += 1
            if increment:
                self.num_results += page.num_items
            yield page
            page = await self._next_page()

    async def _fetch(self, page_token):
        fetch = self._fetcher.fetch(self.call.request, page_token, self._page_size)
        if self._cancel_event is None:
            return await fetch

        fetch_task = asyncio.create_task(fetch)
        cancel_task = asyncio.create_task(self._cancel_event.wait())
        try:
            await asyncio.wait(
                [fetch_task, cancel_task], return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_task.cancel()
            if not fetch_task.done() or self._cancel_event.is_set():
                fetch_task.cancel()
        _raise_if_cancelled(self._cancel_event)
        return fetch_task.result()

    async def _next_page(self):
        """Get the next page in the iterator.

        Returns:
            Optional[Page]: The next page in the iterator or :data:`None` if
                there are no pages left.
        """
        cursor = self._cursor
        if cursor.exhausted:
            return None

        _raise_if_cancelled(self._cancel_event)
        _log_fetch(self.page_number + 1, cursor.page_token, self._page_size)
        response, next_page_token, items = await self._fetch(cursor.page_token)

        page = cursor.advance(response, next_page_token, items)
        _log_page(self.page_number + 1, page)
        return page


class AsyncPageIterator(object):
    """Async iterator over the raw pages of an :class:`AsyncResourceIterator`.

    Args:
        parent (AsyncResourceIterator): The iterator whose pages are produced.
    """

    def __init__(self, parent):
        self._parent = parent
        self._started = False
        self.__active_aiterator = None

    @property
    def page_number(self):
        """int: The number of pages fetched so far."""
        return self._parent.page_number

    @property
    def next_page_token(self):
        """Optional[str]: The token the next request will carry."""
        return self._parent.next_page_token

    def with_fixed_size(self, size):
        """Re-pack the pages into pages of exactly ``size`` resources.

        See :meth:`api_paging.page_iterator.PageIterator.with_fixed_size`.

        Returns:
            AsyncFixedSizePageIterator: An async iterator of
                :class:`FixedSizePage`.
        """
        _validate_size(size, "size")
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        if self._parent.call.supports_page_size:
            self._parent._page_size = size
        return AsyncFixedSizePageIterator(self._parent, size)

    def __aiter__(self):
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return self._parent._page_aiter(increment=True)

    async def __anext__(self):
        if self.__active_aiterator is None:
            self.__active_aiterator = self.__aiter__()
        return await self.__active_aiterator.__anext__()


class AsyncFixedSizePageIterator(object):
    """Async iterator of :class:`FixedSizePage` re-packed from API pages.

    See :class:`api_paging.page_iterator.FixedSizePageIterator`.

    Args:
        parent (AsyncResourceIterator): The iterator whose pages are re-packed.
        size (int): The number of resources per page.
    """

    def __init__(self, parent, size):
        self._parent = parent
        self._buffer = _FixedSizeBuffer(size, parent.call.is_terminal_token)
        self._started = False
        self.__active_aiterator = None

    @property
    def size(self):
        """int: The number of resources per page."""
        return self._buffer.size

    def _take(self):
        fixed_page = self._buffer.take()
        self._parent.num_results += fixed_page.num_items
        return fixed_page

    async def _fixed_page_aiter(self):
        buffer = self._buffer
        async for page in self._parent._page_aiter(increment=False):
            buffer.add(page)
            while buffer.is_full:
                yield self._take()
        if buffer:
            yield self._take()

    def __aiter__(self):
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return self._fixed_page_aiter()

    async def __anext__(self):
        if self.__active_aiterator is None:
            self.__active_aiterator = self.__aiter__()
        return await self.__active_aiterator.__anext__()


def list_all(call, page_size=None, page_token=None, cancel_event=None):
    """Iterate asynchronously over every resource of a list call.

    Args:
        call (~api_paging.list_call.ListCall): The list call. Its ``issue``
            capability must be a coroutine function.
        page_size (Optional[int]): The page size to request.
        page_token (Optional[str]): A token to resume the listing from.
        cancel_event (Optional[asyncio.Event]): An event that cancels the
            iteration when set.

    Returns:
        AsyncResourceIterator: A lazy async iterator of resources. Use its
            ``pages`` property to iterate pages instead.
    """
    return AsyncResourceIterator(
        call, page_size=page_size, page_token=page_token, cancel_event=cancel_event
    )
