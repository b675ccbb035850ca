# Copyright 2015 Google LLC
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

"""Iterators for paging through paged API methods.

These iterators simplify the process of paging through API responses
where the request takes a page token and the response is a list of results with
a token for the next page. See `list pagination`_ in the Google API Style Guide
for more details.

.. _list pagination:
    https://cloud.google.com/apis/design/design_patterns#list_pagination

Any list method described by a :class:`~api_paging.list_call.ListCall` can be
iterated with :func:`list_all`:

    >>> results_iterator = list_all(call)

Or you can walk your way through items and call off the search early if
you find what you're looking for (resulting in possibly fewer requests)::

    >>> for resource in results_iterator:
    ...     print(resource.name)
    ...     if not resource.is_valid:
    ...         break

At any point, you may check the number of items consumed by referencing the
``num_results`` property of the iterator::

    >>> for my_item in results_iterator:
    ...     if results_iterator.num_results >= 10:
    ...         break

When iterating, not every new item will send a request to the server.
To iterate based on each page of items (where a page corresponds to
a request)::

    >>> for page in results_iterator.pages:
    ...     print('=' * 20)
    ...     print('    Page number: {:d}'.format(results_iterator.page_number))
    ...     print('  Items in page: {:d}'.format(page.num_items))
    ...     print('     First item: {!r}'.format(next(page)))
    ...     print('Items remaining: {:d}'.format(page.remaining))
    ...     print('Next page token: {}'.format(page.next_page_token))
    ====================
        Page number: 1
      Items in page: 1
         First item: <MyItemClass at 0x7f1d3cccf690>
    Items remaining: 0
    Next page token: eav1OzQB0OM8rLdGXOEsyQWSG
    ====================
        Page number: 2
      Items in page: 19
         First item: <MyItemClass at 0x7f1d3cccffd0>
    Items remaining: 18
    Next page token: None

Pages returned by the API can have any size. To present results in batches
of an exact size, re-pack them with ``with_fixed_size``::

    >>> for fixed_page in list_all(call).pages.with_fixed_size(25):
    ...     render(list(fixed_page))

Each fixed-size page holds exactly 25 resources, except the last one, and as
many requests are made as needed to fill it.
"""

import collections
import logging

from api_paging import client_logging
from api_paging import exceptions

_LOGGER = logging.getLogger(__name__)


def _validate_size(size, name):
    """Raise :class:`~.exceptions.InvalidArgument` unless ``size`` > 0."""
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise exceptions.InvalidArgument(
            "{} must be a positive integer, got {!r}".format(name, size)
        )


def _raise_if_cancelled(cancel_event):
    if cancel_event is not None and cancel_event.is_set():
        raise exceptions.IterationCancelled(
            "Iteration was cancelled by the caller."
        )


def _log_fetch(page_number, page_token, page_size):
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug(
            "Fetching page",
            extra=client_logging.page_fields(
                page_number=page_number, page_token=page_token, page_size=page_size
            ),
        )


def _log_page(page_number, page):
    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug(
            "Received page",
            extra=client_logging.page_fields(
                page_number=page_number,
                page_token=page.next_page_token,
                num_items=page.num_items,
            ),
        )


class Page(object):
    """Single page of results in an iterator.

    Args:
        items (Sequence[Any]): The resources in this page, in order.
        raw_page (Optional[Any]):
            The raw page response whose items are being iterated. This will
            be exposed via :attr:`raw_page`.
        page_token (Optional[str]): The token that was used to request this
            page. ``None`` for a request that carried no token.
        next_page_token (Optional[str]): The token carried by the response.
    """

    def __init__(self, items, raw_page=None, page_token=None, next_page_token=None):
        self._num_items = len(items)
        self._remaining = self._num_items
        self._item_iter = iter(items)
        self._raw_page = raw_page
        self.page_token = page_token
        """Optional[str]: The token that was used to request this page."""
        self.next_page_token = next_page_token
        """Optional[str]: The next page token carried by this page."""

    @property
    def raw_page(self):
        """Any: The raw page response (request response) for this page."""
        return self._raw_page

    @property
    def num_items(self):
        """int: Total items in the page."""
        return self._num_items

    @property
    def remaining(self):
        """int: Remaining items in the page."""
        return self._remaining

    def __iter__(self):
        """The :class:`Page` is an iterator of items."""
        return self

    def __next__(self):
        """Get the next value in the page."""
        item = next(self._item_iter)
        self._remaining -= 1
        return item


class FixedSizePage(object):
    """A batch of resources re-packed to an exact size.

    Every fixed-size page produced by an iterator holds exactly the requested
    number of resources, except the last one, which may be shorter.

    :attr:`next_page_token` is the token to start a new listing from after
    this batch:

    * When the batch used up every resource of the last API page consulted,
      it is that page's next page token, and resuming delivers nothing twice.
      This is the usual case, since the fixed size is also requested as the
      API page size.
    * Otherwise it is the token that was used to request that API page.

    .. warning::
        In the second case, API page boundaries do not line up with
        fixed-size boundaries. Starting a new listing from the token fetches
        that API page again, and the resources of it that were already
        delivered are delivered a second time. Callers resuming from it must
        discard those duplicates themselves.

        The last batch of a listing is always in the second case: its token
        fetches the final API page again. It is not a way to continue a
        finished listing.

    Args:
        items (Iterable[Any]): The resources in this batch.
        next_page_token (Optional[str]): The token to resume a listing from.
            ``None`` when resuming means starting the listing over, i.e. the
            last API page consulted was requested without a token.
    """

    def __init__(self, items, next_page_token=None):
        self._items = tuple(items)
        self.next_page_token = next_page_token

    @property
    def items(self):
        """Tuple[Any]: The resources in this batch."""
        return self._items

    @property
    def num_items(self):
        """int: Total items in the batch."""
        return len(self._items)

    def __len__(self):
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def __getitem__(self, index):
        return self._items[index]

    def __repr__(self):
        return "{}(items={!r}, next_page_token={!r})".format(
            type(self).__name__, self._items, self.next_page_token
        )


class PageFetcher(object):
    """Issues the remote call for a single page of a list call.

    A fetcher holds no iteration state: every :meth:`fetch` makes exactly one
    call to the list call's ``issue`` capability, without retries or caching,
    and lets any exception it raises propagate unchanged.

    Args:
        call (~api_paging.list_call.ListCall): The list call to fetch pages of.
    """

    def __init__(self, call):
        self._call = call

    def prepare(self, request, page_token=None, page_size=None):
        """Derive the request for a page.

        The page size is only written when one was requested, and the page
        token only when there is one, so that the request otherwise keeps the
        API's defaults.

        Args:
            request (Any): The request to derive from.
            page_token (Optional[str]): The page token to request.
            page_size (Optional[int]): The page size to request.

        Returns:
            Any: The request to issue.
        """
        call = self._call
        if page_size is not None and call.supports_page_size:
            request = call.write_size(request, page_size)
        if page_token is not None:
            request = call.write_token(request, page_token)
        return request

    def unpack(self, response):
        """Return the next page token and items of a response."""
        return self._call.read_token(response), self._call.read_items(response)

    def fetch(self, request, page_token=None, page_size=None):
        """Fetch one page.

        Returns:
            Tuple[Any, Optional[str], Sequence[Any]]: The response, the next
                page token it carries and its items.
        """
        response = self._call.issue(self.prepare(request, page_token, page_size))
        next_page_token, items = self.unpack(response)
        return response, next_page_token, items


class Cursor(object):
    """Page token propagation state of one iteration.

    The cursor is shared by the blocking and asyncio iterators; it decides
    which token the next request carries and when the listing is exhausted.
    A listing ends only on a terminal token, never on an empty page: APIs
    may return empty intermediate pages.

    Besides the next token, the cursor remembers every token already
    requested, so that a response pointing back to any earlier page raises
    :class:`~api_paging.exceptions.ProtocolViolation` instead of looping
    forever. That set grows by one token per page for the life of the
    iteration; the pages themselves are not kept.

    Args:
        is_terminal_token (Callable[[Optional[str]], bool]): Decides whether a
            token means "no more pages".
        page_token (Optional[str]): The token of the first page to request.
    """

    def __init__(self, is_terminal_token, page_token=None):
        self._is_terminal_token = is_terminal_token
        self._consumed_tokens = set()
        self.page_token = page_token
        """Optional[str]: The token the next request will carry."""
        self.exhausted = False
        """bool: Whether the last page has been received."""

    def advance(self, response, next_page_token, items):
        """Record a fetched response and return it as a page.

        Args:
            response (Any): The raw response.
            next_page_token (Optional[str]): The token read from it.
            items (Sequence[Any]): The items read from it.

        Returns:
            Page: The page built from the response.

        Raises:
            ~api_paging.exceptions.ProtocolViolation: If the response carries
                a token already used by this iteration.
        """
        page_token = self.page_token
        if page_token is not None:
            self._consumed_tokens.add(page_token)

        if self._is_terminal_token(next_page_token):
            self.exhausted = True
        elif next_page_token in self._consumed_tokens:
            raise exceptions.ProtocolViolation(
                "Response carried page token {!r}, which this iteration has "
                "already requested".format(next_page_token)
            )

        self.page_token = next_page_token
        return Page(
            items,
            raw_page=response,
            page_token=page_token,
            next_page_token=next_page_token,
        )


class _FixedSizeBuffer(object):
    """Resources fetched but not yet delivered in a fixed-size page.

    An API page is only added while fewer than ``size`` resources are
    pending, so whatever is left after a :meth:`take` belongs to the last
    page added.
    """

    def __init__(self, size, is_terminal_token):
        self.size = size
        self._is_terminal_token = is_terminal_token
        self._pending = collections.deque()
        self._last_page = None

    def __len__(self):
        return len(self._pending)

    @property
    def is_full(self):
        """bool: Whether a complete fixed-size page can be taken."""
        return len(self._pending) >= self.size

    def add(self, page):
        """Append the items of an API page."""
        self._pending.extend(page)
        self._last_page = page

    def _resume_token(self):
        page = self._last_page
        if not self._pending and not self._is_terminal_token(page.next_page_token):
            return page.next_page_token
        return page.page_token

    def take(self):
        """Remove up to ``size`` pending items as a :class:`FixedSizePage`."""
        count = min(self.size, len(self._pending))
        items = [self._pending.popleft() for _ in range(count)]
        return FixedSizePage(items, next_page_token=self._resume_token())


class ResourceIterator(object):
    """Iterator over the resources of a paged list call.

    The iterator is lazy: a page is requested only when the resources of the
    previous one have all been consumed. It cannot be restarted; create a new
    one (e.g. with :func:`list_all`) to list again.

    Args:
        call (~api_paging.list_call.ListCall): The list call to iterate.
        page_size (Optional[int]): The page size to request. When unset, the
            request's own page size (usually the API default) is used.
        page_token (Optional[str]): A token identifying a page in a result
            set to start fetching results from.
        cancel_event (Optional[threading.Event]): When set, the next page
            fetch raises :class:`~api_paging.exceptions.IterationCancelled`,
            and a page fetched while it became set is discarded.

    .. autoattribute:: pages
    """

    def __init__(self, call, page_size=None, page_token=None, cancel_event=None):
        self._started = False
        self.__active_iterator = None

        self.call = call
        """~api_paging.list_call.ListCall: The list call being iterated."""
        self._fetcher = PageFetcher(call)
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

        Args:
            page_size (int): The page size.

        Returns:
            ResourceIterator: This iterator.

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
            PageIterator: An iterator of :class:`Page` instances.

        raises:
            ValueError: If the iterator has already been started.
        """
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return PageIterator(self)

    def _items_iter(self):
        """Iterator for each item returned."""
        for page in self._page_iter(increment=False):
            for item in page:
                self.num_results += 1
                yield item

    def __iter__(self):
        """Iterator for each item returned.

        Returns:
            types.GeneratorType[Any]: A generator of items from the API.

        Raises:
            ValueError: If the iterator has already been started.
        """
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return self._items_iter()

    def __next__(self):
        if self.__active_iterator is None:
            self.__active_iterator = iter(self)
        return next(self.__active_iterator)

    def _page_iter(self, increment):
        """Generator of pages of API responses.

        Args:
            increment (bool): Flag indicating if the total number of results
                should be incremented on each page. This is useful since a page
                iterator will want to increment by results per page while an
                items iterator will want to increment per item.

        Yields:
            Page: each page of items from the API.
        """
        page = self._next_page()
        while page is not None:
            self.page_number += 1
            if increment:
                self.num_results += page.num_items
            yield page
            page = self._next_page()

    def _next_page(self):
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
        response, next_page_token, items = self._fetcher.fetch(
            self.call.request, cursor.page_token, self._page_size
        )
        _raise_if_cancelled(self._cancel_event)

        page = cursor.advance(response, next_page_token, items)
        _log_page(self.page_number + 1, page)
        return page


class PageIterator(object):
    """Iterator over the raw pages of a :class:`ResourceIterator`.

    Obtained from :attr:`ResourceIterator.pages`. Each :class:`Page` wraps
    one API response.

    Args:
        parent (ResourceIterator): The iterator whose pages are produced.
    """

    def __init__(self, parent):
        self._parent = parent
        self._started = False
        self.__active_iterator = None

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

        ``size`` is also requested from the API as the page size when the list
        call supports it, so that in the common case API pages already have
        the right size.

        Args:
            size (int): The number of resources per page.

        Returns:
            FixedSizePageIterator: An iterator of :class:`FixedSizePage`.

        Raises:
            ~api_paging.exceptions.InvalidArgument: If ``size`` is not
                positive.
            ValueError: If the iterator has already been started.
        """
        _validate_size(size, "size")
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        if self._parent.call.supports_page_size:
            self._parent._page_size = size
        return FixedSizePageIterator(self._parent, size)

    def __iter__(self):
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return self._parent._page_iter(increment=True)

    def __next__(self):
        if self.__active_iterator is None:
            self.__active_iterator = iter(self)
        return next(self.__active_iterator)


class FixedSizePageIterator(object):
    """Iterator of :class:`FixedSizePage` re-packed from API pages.

    To produce a page, API pages are fetched until at least ``size``
    resources are pending or the listing is exhausted; the first ``size``
    pending resources form the page and the rest are kept for the next one.
    No API page is fetched while a complete page can be served from the
    pending resources. Concatenating all fixed-size pages gives exactly the
    resources of the listing, in order.

    Args:
        parent (ResourceIterator): The iterator whose pages are re-packed.
        size (int): The number of resources per page.
    """

    def __init__(self, parent, size):
        self._parent = parent
        self._buffer = _FixedSizeBuffer(size, parent.call.is_terminal_token)
        self._started = False
        self.__active_iterator = None

    @property
    def size(self):
        """int: The number of resources per page."""
        return self._buffer.size

    def _take(self):
        fixed_page = self._buffer.take()
        self._parent.num_results += fixed_page.num_items
        return fixed_page

    def _fixed_page_iter(self):
        buffer = self._buffer
        for page in self._parent._page_iter(increment=False):
            buffer.add(page)
            while buffer.is_full:
                yield self._take()
        if buffer:
            yield self._take()

    def __iter__(self):
        if self._started:
            raise ValueError("Iterator has already started", self)
        self._started = True
        return self._fixed_page_iter()

    def __next__(self):
        if self.__active_iterator is None:
            self.__active_iterator = iter(self)
        return next(self.__active_iterator)


def list_all(call, page_size=None, page_token=None, cancel_event=None):
    """Iterate over every resource of a list call.

    Args:
        call (~api_paging.list_call.ListCall): The list call.
        page_size (Optional[int]): The page size to request.
        page_token (Optional[str]): A token to resume the listing from.
        cancel_event (Optional[threading.Event]): An event that cancels the
            iteration when set.

    Returns:
        ResourceIterator: A lazy iterator of resources. Use its ``pages``
            property to iterate pages instead.
    """
    return ResourceIterator(
        call, page_size=page_size, page_token=page_token, cancel_event=cancel_event
    )
