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

import threading
import types

import mock
import pytest

from api_paging import exceptions
from api_paging import page_iterator
from api_paging.list_call import ListCall, is_absent_or_empty_token


def _responses(pages):
    """Build fake responses from ``(items, next_token)`` pairs."""
    return [{"items": list(items), "next": token} for items, token in pages]


def _make_call(pages, write_size=True, **kwargs):
    issue = mock.Mock(spec=["__call__"], side_effect=_responses(pages))
    return ListCall(
        request={"parent": "p"},
        issue=issue,
        read_token=lambda response: response.get("next"),
        write_token=lambda request, token: dict(request, token=token),
        read_items=lambda response: response["items"],
        write_size=(lambda request, size: dict(request, size=size))
        if write_size
        else None,
        **kwargs
    )


# Four pages of 2, 3, 0 and 1 items.
SPARSE_PAGES = [
    (["a", "b"], "t1"),
    (["c", "d", "e"], "t2"),
    ([], "t3"),
    (["f"], None),
]


class TestPage(object):
    def test_constructor(self):
        page = page_iterator.Page(
            ("a", "b", "c"),
            raw_page=mock.sentinel.raw_page,
            page_token="t1",
            next_page_token="t2",
        )

        assert page.num_items == 3
        assert page.remaining == 3
        assert page.raw_page is mock.sentinel.raw_page
        assert page.page_token == "t1"
        assert page.next_page_token == "t2"

    def test_defaults(self):
        page = page_iterator.Page(())

        assert page.num_items == 0
        assert page.raw_page is None
        assert page.page_token is None
        assert page.next_page_token is None

    def test___iter__(self):
        page = page_iterator.Page(("a",))
        assert iter(page) is page

    def test_iterator_calls_parent_item_to_value(self):
        page = page_iterator.Page((10, 11, 12))

        assert next(page) == 10
        assert page.remaining == 2
        assert next(page) == 11
        assert next(page) == 12
        assert page.remaining == 0

        with pytest.raises(StopIteration):
            next(page)


class TestFixedSizePage(object):
    def test_sequence_protocol(self):
        fixed_page = page_iterator.FixedSizePage(["a", "b"], next_page_token="t")

        assert len(fixed_page) == 2
        assert fixed_page.num_items == 2
        assert fixed_page[0] == "a"
        assert fixed_page[-1] == "b"
        assert list(fixed_page) == ["a", "b"]
        assert fixed_page.items == ("a", "b")
        assert fixed_page.next_page_token == "t"

    def test_iterable_twice(self):
        fixed_page = page_iterator.FixedSizePage(iter(["a", "b"]))

        assert list(fixed_page) == ["a", "b"]
        assert list(fixed_page) == ["a", "b"]

    def test___repr__(self):
        fixed_page = page_iterator.FixedSizePage(["a"], next_page_token="t")

        assert repr(fixed_page) == "FixedSizePage(items=('a',), next_page_token='t')"


class TestPageFetcher(object):
    def test_prepare_leaves_request_alone(self):
        call = _make_call([])
        fetcher = page_iterator.PageFetcher(call)

        assert fetcher.prepare(call.request) is call.request

    def test_prepare_w_token_and_size(self):
        call = _make_call([])
        fetcher = page_iterator.PageFetcher(call)

        request = fetcher.prepare(call.request, page_token="tok", page_size=5)

        assert request == {"parent": "p", "token": "tok", "size": 5}
        # The original request is not modified.
        assert call.request == {"parent": "p"}

    def test_prepare_size_without_write_size(self):
        call = _make_call([], write_size=False)
        fetcher = page_iterator.PageFetcher(call)

        assert fetcher.prepare(call.request, page_size=5) == {"parent": "p"}

    def test_fetch(self):
        call = _make_call([(["a", "b"], "next")])
        fetcher = page_iterator.PageFetcher(call)

        response, next_page_token, items = fetcher.fetch(call.request, "tok")

        assert response == {"items": ["a", "b"], "next": "next"}
        assert next_page_token == "next"
        assert items == ["a", "b"]
        call.issue.assert_called_once_with({"parent": "p", "token": "tok"})

    def test_fetch_error_propagates_unchanged(self):
        error = exceptions.ServiceUnavailable("down")
        call = _make_call([])
        call.issue.side_effect = error
        fetcher = page_iterator.PageFetcher(call)

        with pytest.raises(exceptions.ServiceUnavailable) as exc_info:
            fetcher.fetch(call.request)

        assert exc_info.value is error
        call.issue.assert_called_once_with({"parent": "p"})


class TestCursor(object):
    def test_constructor(self):
        cursor = page_iterator.Cursor(mock.sentinel.predicate, page_token="start")

        assert cursor.page_token == "start"
        assert not cursor.exhausted

    def test_advance(self):
        cursor = page_iterator.Cursor(lambda token: token is None)

        page = cursor.advance(mock.sentinel.response, "t1", ["a"])

        assert isinstance(page, page_iterator.Page)
        assert page.raw_page is mock.sentinel.response
        assert page.page_token is None
        assert page.next_page_token == "t1"
        assert list(page) == ["a"]
        assert cursor.page_token == "t1"
        assert not cursor.exhausted

        page = cursor.advance(mock.sentinel.response, None, [])

        assert page.page_token == "t1"
        assert cursor.exhausted

    def test_advance_empty_page_does_not_terminate(self):
        cursor = page_iterator.Cursor(lambda token: token is None)

        cursor.advance(mock.sentinel.response, "t1", [])

        assert not cursor.exhausted

    def test_advance_empty_string_token_w_absent_predicate(self):
        cursor = page_iterator.Cursor(lambda token: token is None)

        cursor.advance(mock.sentinel.response, "", ["a"])

        assert not cursor.exhausted
        assert cursor.page_token == ""

    def test_advance_empty_string_token_w_empty_predicate(self):
        cursor = page_iterator.Cursor(is_absent_or_empty_token)

        cursor.advance(mock.sentinel.response, "", ["a"])

        assert cursor.exhausted

    def test_advance_repeated_token(self):
        cursor = page_iterator.Cursor(lambda token: token is None)
        cursor.advance(mock.sentinel.response, "t1", ["a"])
        cursor.advance(mock.sentinel.response, "t2", ["b"])

        with pytest.raises(exceptions.ProtocolViolation):
            cursor.advance(mock.sentinel.response, "t1", ["c"])

    def test_advance_same_token(self):
        cursor = page_iterator.Cursor(lambda token: token is None, page_token="t1")

        with pytest.raises(exceptions.ProtocolViolation):
            cursor.advance(mock.sentinel.response, "t1", ["a"])


class TestResourceIterator(object):
    def test_constructor(self):
        call = _make_call([])
        iterator = page_iterator.ResourceIterator(call)

        assert not iterator._started
        assert iterator.call is call
        assert iterator.page_size is None
        # Changing attributes.
        assert iterator.page_number == 0
        assert iterator.next_page_token is None
        assert iterator.num_results == 0

    def test_constructor_w_options(self):
        call = _make_call([])
        iterator = page_iterator.ResourceIterator(
            call, page_size=10, page_token="start"
        )

        assert iterator.page_size == 10
        assert iterator.next_page_token == "start"

    def test_iterate(self):
        call = _make_call([(["a", "b"], "t1"), (["c"], "t2"), (["d"], None)])
        iterator = page_iterator.list_all(call)

        assert list(iterator) == ["a", "b", "c", "d"]
        assert iterator.num_results == 4
        assert iterator.page_number == 3
        assert call.issue.call_args_list == [
            mock.call({"parent": "p"}),
            mock.call({"parent": "p", "token": "t1"}),
            mock.call({"parent": "p", "token": "t2"}),
        ]

    def test_flattening_pages_matches_items(self):
        items = list(page_iterator.list_all(_make_call(SPARSE_PAGES)))

        flattened = [
            item
            for page in page_iterator.list_all(_make_call(SPARSE_PAGES)).pages
            for item in page
        ]

        assert items == flattened == ["a", "b", "c", "d", "e", "f"]

    def test___next__(self):
        call = _make_call([(["a", "b"], "t1"), (["c"], None)])
        iterator = page_iterator.list_all(call)

        assert next(iterator) == "a"
        assert iterator.num_results == 1
        assert call.issue.call_count == 1

        assert next(iterator) == "b"
        # The second page is only requested once the first is used up.
        assert call.issue.call_count == 1

        assert next(iterator) == "c"
        assert call.issue.call_count == 2

        with pytest.raises(StopIteration):
            next(iterator)
        assert call.issue.call_count == 2

    def test_empty_result(self):
        call = _make_call([([], None)])

        assert list(page_iterator.list_all(call)) == []
        call.issue.assert_called_once_with({"parent": "p"})

    def test_last_page_w_items_makes_no_extra_call(self):
        call = _make_call([(["a", "b"], None)])

        assert list(page_iterator.list_all(call)) == ["a", "b"]
        assert call.issue.call_count == 1

    def test_empty_intermediate_pages(self):
        call = _make_call(SPARSE_PAGES)

        assert list(page_iterator.list_all(call)) == ["a", "b", "c", "d", "e", "f"]
        assert call.issue.call_count == 4

    def test_empty_string_token_terminates_w_predicate(self):
        call = _make_call(
            [(["a"], "t1"), (["b"], "")], is_terminal_token=is_absent_or_empty_token
        )

        assert list(page_iterator.list_all(call)) == ["a", "b"]
        assert call.issue.call_count == 2

    def test_early_termination(self):
        call = _make_call([(["a", "b"], "t1"), (["c"], None)])

        for item in page_iterator.list_all(call):
            if item == "a":
                break

        assert call.issue.call_count == 1

    def test_page_size_written_to_every_request(self):
        call = _make_call([(["a"], "t1"), (["b"], None)])
        iterator = page_iterator.list_all(call).with_page_size(1)

        assert list(iterator) == ["a", "b"]
        assert call.issue.call_args_list == [
            mock.call({"parent": "p", "size": 1}),
            mock.call({"parent": "p", "size": 1, "token": "t1"}),
        ]

    @pytest.mark.parametrize("page_size", [0, -1, 1.5, True, "10"])
    def test_with_page_size_invalid(self, page_size):
        iterator = page_iterator.list_all(_make_call([]))

        with pytest.raises(exceptions.InvalidArgument):
            iterator.with_page_size(page_size)

    def test_with_page_size_unsupported(self):
        iterator = page_iterator.list_all(_make_call([], write_size=False))

        with pytest.raises(exceptions.InvalidArgument):
            iterator.with_page_size(10)

    def test_with_page_size_after_start(self):
        iterator = page_iterator.list_all(_make_call([(["a"], None)]))
        next(iterator)

        with pytest.raises(ValueError):
            iterator.with_page_size(10)

    def test_page_token_resumes(self):
        call = _make_call([(["c"], None)])

        assert list(page_iterator.list_all(call, page_token="t1")) == ["c"]
        call.issue.assert_called_once_with({"parent": "p", "token": "t1"})

    def test___iter__(self):
        iterator = page_iterator.list_all(_make_call([]))

        assert isinstance(iter(iterator), types.GeneratorType)
        assert iterator._started

    def test___iter__restart(self):
        iterator = page_iterator.list_all(_make_call([]))

        iter(iterator)

        # Make sure we cannot restart.
        with pytest.raises(ValueError):
            iter(iterator)

    def test___iter___restart_after_page(self):
        iterator = page_iterator.list_all(_make_call([]))

        assert iterator.pages

        # Make sure we cannot restart after starting the page iterator
        with pytest.raises(ValueError):
            iter(iterator)

    def test_pages_property_restart(self):
        iterator = page_iterator.list_all(_make_call([]))

        assert iterator.pages

        # Make sure we cannot restart.
        with pytest.raises(ValueError):
            assert iterator.pages

    def test_transport_error_propagates_and_ends_iteration(self):
        error = exceptions.InternalServerError("boom")
        call = _make_call([])
        call.issue.side_effect = [{"items": ["a"], "next": "t1"}, error]
        iterator = page_iterator.list_all(call)

        assert next(iterator) == "a"
        with pytest.raises(exceptions.InternalServerError) as exc_info:
            next(iterator)
        assert exc_info.value is error

        with pytest.raises(StopIteration):
            next(iterator)
        assert call.issue.call_count == 2

    def test_repeated_token_is_protocol_violation(self):
        call = _make_call([(["a"], "t1"), (["b"], "t2"), (["c"], "t1")])
        iterator = page_iterator.list_all(call)

        with pytest.raises(exceptions.ProtocolViolation):
            list(iterator)
        assert call.issue.call_count == 3

    def test_cancelled_before_first_fetch(self):
        call = _make_call([(["a"], None)])
        cancel_event = threading.Event()
        cancel_event.set()
        iterator = page_iterator.list_all(call, cancel_event=cancel_event)

        with pytest.raises(exceptions.IterationCancelled):
            next(iterator)
        call.issue.assert_not_called()

    def test_cancelled_not_caught_as_transport_error(self):
        call = _make_call([(["a"], None)])
        cancel_event = threading.Event()
        cancel_event.set()
        iterator = page_iterator.list_all(call, cancel_event=cancel_event)

        with pytest.raises(exceptions.IterationCancelled):
            try:
                next(iterator)
            except exceptions.TransportError:  # pragma: NO COVER
                pytest.fail("Cancellation was handled as a transport error.")

    def test_cancelled_during_fetch(self):
        cancel_event = threading.Event()
        responses = iter(
            _responses([(["a"], "t1"), (["b"], "t2"), (["c"], None)])
        )

        def issue(request):
            if "token" in request and request["token"] == "t1":
                # Cancelled by another thread while page 2 is in flight.
                cancel_event.set()
            return next(responses)

        call = _make_call([])
        call.issue.side_effect = issue
        iterator = page_iterator.list_all(call, cancel_event=cancel_event)

        assert next(iterator) == "a"
        with pytest.raises(exceptions.IterationCancelled):
            next(iterator)
        with pytest.raises(StopIteration):
            next(iterator)

        # Page 2 was never produced and page 3 never requested.
        assert iterator.num_results == 1
        assert call.issue.call_count == 2

    def test_logs_fetches(self):
        call = _make_call([(["a"], None)])

        with mock.patch.object(page_iterator, "_LOGGER") as logger:
            list(page_iterator.list_all(call))

        assert logger.debug.call_count == 2
        fetch_call, page_call = logger.debug.call_args_list
        assert fetch_call[0] == ("Fetching page",)
        assert fetch_call[1]["extra"] == {"pageNumber": 1}
        assert page_call[0] == ("Received page",)
        assert page_call[1]["extra"] == {"pageNumber": 1, "numItems": 1}


class TestPageIterator(object):
    def test_iterate(self):
        call = _make_call([(["a", "b"], "t1"), (["c"], None)])
        iterator = page_iterator.list_all(call)
        pages = iterator.pages

        page1 = next(pages)
        assert pages.page_number == 1
        assert pages.next_page_token == "t1"
        assert iterator.num_results == 2
        assert page1.page_token is None
        assert page1.next_page_token == "t1"
        assert page1.raw_page == {"items": ["a", "b"], "next": "t1"}
        assert list(page1) == ["a", "b"]

        page2 = next(pages)
        assert page2.page_token == "t1"
        assert page2.next_page_token is None
        assert list(page2) == ["c"]
        assert iterator.num_results == 3

        with pytest.raises(StopIteration):
            next(pages)
        assert call.issue.call_count == 2

    def test_empty_intermediate_page_is_yielded(self):
        pages = list(page_iterator.list_all(_make_call(SPARSE_PAGES)).pages)

        assert [page.num_items for page in pages] == [2, 3, 0, 1]

    def test___iter__restart(self):
        pages = page_iterator.list_all(_make_call([])).pages

        iter(pages)

        with pytest.raises(ValueError):
            iter(pages)

    @pytest.mark.parametrize("size", [0, -3, None])
    def test_with_fixed_size_invalid(self, size):
        pages = page_iterator.list_all(_make_call([])).pages

        with pytest.raises(exceptions.InvalidArgument):
            pages.with_fixed_size(size)

    def test_with_fixed_size_after_start(self):
        pages = page_iterator.list_all(_make_call([(["a"], None)])).pages
        next(pages)

        with pytest.raises(ValueError):
            pages.with_fixed_size(2)


class TestFixedSizePageIterator(object):
    def test_sparse_pages(self):
        call = _make_call(SPARSE_PAGES)
        fixed_pages = list(page_iterator.list_all(call).pages.with_fixed_size(2))

        assert [list(fixed_page) for fixed_page in fixed_pages] == [
            ["a", "b"],
            ["c", "d"],
            ["e", "f"],
        ]
        assert call.issue.call_count == 4

    def test_resume_tokens(self):
        call = _make_call(SPARSE_PAGES)
        fixed_pages = list(page_iterator.list_all(call).pages.with_fixed_size(2))

        # "ab" used up the first page; "cd" and "ef" end inside a page.
        assert [fixed_page.next_page_token for fixed_page in fixed_pages] == [
            "t1",
            "t1",
            "t3",
        ]

    def test_resume_after_aligned_page_delivers_no_duplicates(self):
        pages = [(["a", "b"], "t1"), (["c", "d"], "t2"), (["e"], None)]
        fixed_pages = list(
            page_iterator.list_all(_make_call(pages)).pages.with_fixed_size(2)
        )

        assert [fixed_page.next_page_token for fixed_page in fixed_pages] == [
            "t1",
            "t2",
            "t2",
        ]

        resumed = page_iterator.list_all(
            _make_call(pages[1:]), page_token=fixed_pages[0].next_page_token
        )
        assert list(resumed) == ["c", "d", "e"]

    def test_resume_inside_page_redelivers_taken_items(self):
        pages = [(["a", "b", "c"], "t1"), (["d"], None)]
        fixed_pages = list(
            page_iterator.list_all(_make_call(pages)).pages.with_fixed_size(2)
        )

        assert fixed_pages[0].next_page_token is None

        resumed = page_iterator.list_all(
            _make_call(pages), page_token=fixed_pages[0].next_page_token
        )
        assert list(resumed)[: len(fixed_pages[0])] == ["a", "b"]

    def test_resume_token_never_terminal(self):
        call = _make_call(
            [(["a", "b"], "t1"), (["c", "d"], "")],
            is_terminal_token=is_absent_or_empty_token,
        )
        fixed_pages = list(page_iterator.list_all(call).pages.with_fixed_size(2))

        # The last page's "" ends the listing, so its request token is kept.
        assert [fixed_page.next_page_token for fixed_page in fixed_pages] == [
            "t1",
            "t1",
        ]

    @pytest.mark.parametrize("size", [1, 2, 3, 4, 5, 6, 7, 11])
    def test_partition(self, size):
        pages = SPARSE_PAGES[:-1] + [(["f", "g", "h", "i"], "t4"), (["j"], None)]
        expected = list(page_iterator.list_all(_make_call(pages)))

        fixed_pages = list(
            page_iterator.list_all(_make_call(pages)).pages.with_fixed_size(size)
        )

        assert [item for page in fixed_pages for item in page] == expected
        assert all(len(page) == size for page in fixed_pages[:-1])
        assert 0 < len(fixed_pages[-1]) <= size

    def test_lazy(self):
        call = _make_call([(["a", "b", "c", "d", "e"], "t1"), (["f"], None)])
        fixed_pages = page_iterator.list_all(call).pages.with_fixed_size(2)

        assert list(next(fixed_pages)) == ["a", "b"]
        assert list(next(fixed_pages)) == ["c", "d"]
        assert call.issue.call_count == 1

        assert list(next(fixed_pages)) == ["e", "f"]
        assert call.issue.call_count == 2

        with pytest.raises(StopIteration):
            next(fixed_pages)
        assert call.issue.call_count == 2

    def test_exact_multiple_has_no_empty_page(self):
        call = _make_call([(["a", "b"], "t1"), (["c", "d"], None)])
        fixed_pages = list(page_iterator.list_all(call).pages.with_fixed_size(2))

        assert [len(fixed_page) for fixed_page in fixed_pages] == [2, 2]
        assert call.issue.call_count == 2

    def test_empty_result(self):
        call = _make_call([([], None)])

        assert list(page_iterator.list_all(call).pages.with_fixed_size(3)) == []
        call.issue.assert_called_once_with({"parent": "p", "size": 3})

    def test_size_written_to_requests(self):
        call = _make_call([(["a"], "t1"), (["b"], None)])
        iterator = page_iterator.list_all(call, page_size=10)

        list(iterator.pages.with_fixed_size(2))

        assert call.issue.call_args_list == [
            mock.call({"parent": "p", "size": 2}),
            mock.call({"parent": "p", "size": 2, "token": "t1"}),
        ]

    def test_size_not_written_without_write_size(self):
        call = _make_call([(["a", "b", "c"], None)], write_size=False)
        fixed_pages = list(page_iterator.list_all(call).pages.with_fixed_size(2))

        assert [list(fixed_page) for fixed_page in fixed_pages] == [["a", "b"], ["c"]]
        call.issue.assert_called_once_with({"parent": "p"})

    def test_num_results(self):
        call = _make_call(SPARSE_PAGES)
        iterator = page_iterator.list_all(call)
        fixed_pages = iterator.pages.with_fixed_size(4)

        assert fixed_pages.size == 4
        next(fixed_pages)
        assert iterator.num_results == 4
        next(fixed_pages)
        assert iterator.num_results == 6

    def test___iter__restart(self):
        fixed_pages = page_iterator.list_all(_make_call([])).pages.with_fixed_size(2)

        iter(fixed_pages)

        with pytest.raises(ValueError):
            iter(fixed_pages)
