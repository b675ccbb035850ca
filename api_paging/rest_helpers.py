# Copyright 2021 Google LLC
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

"""Helpers for paging through HTTP/JSON list methods.

:func:`list_call` describes a JSON collection endpoint, queried with a
:class:`requests.Session`, as a :class:`~api_paging.list_call.ListCall`::

    >>> call = rest_helpers.list_call(
    ...     requests.Session(),
    ...     "https://example.com/v1/projects/p/widgets",
    ...     items_key="widgets",
    ...     params={"filter": {"state": "ACTIVE"}},
    ... )
    >>> for widget in page_iterator.list_all(call):
    ...     print(widget["name"])
"""

import itertools

from api_paging import exceptions
from api_paging.list_call import ListCall, is_absent_or_empty_token

_DEFAULT_ITEMS_KEY = "items"
_PAGE_TOKEN = "pageToken"
_PAGE_SIZE = "pageSize"
_NEXT_TOKEN = "nextPageToken"


def flatten_query_params(obj, key_path=[]):
    """Flatten a nested dict into a list of (name,value) tuples.

    The result is suitable for setting query params on an http request.

    .. code-block:: python

        >>> obj = {'a':
        ...         {'b':
        ...           {'c': ['x', 'y', 'z']} },
        ...      'd': 'uvw', }
        >>> flatten_query_params(obj)
        [('a.b.c', 'x'), ('a.b.c', 'y'), ('a.b.c', 'z'), ('d', 'uvw')]

    Args:
      obj: a nested dictionary (from json)
      key_path: a list of name segments, representing levels above this obj.

    Returns: a list of tuples, with each tuple having a (possibly) multi-part name
      and a scalar value.
    """

    if obj is None:
        return []
    if isinstance(obj, dict):
        return _flatten_dict(obj, key_path=key_path)
    if isinstance(obj, list):
        return _flatten_list(obj, key_path=key_path)
    return _flatten_value(obj, key_path=key_path)


def _is_value(obj):
    if obj is None:
        return False
    return not (isinstance(obj, list) or isinstance(obj, dict))


def _flatten_value(obj, key_path=[]):
    if not key_path:
        # There must be a key.
        return []
    return [('.'.join(key_path), obj)]


def _flatten_dict(obj, key_path=[]):
    return list(
        itertools.chain(*(flatten_query_params(v, key_path=key_path + [k])
                        for k, v in obj.items())))


def _flatten_list(l, key_path=[]):
    # Only lists of scalar values are supported.
    # The name (key_path) is repeated for each value.
    return list(
        itertools.chain(*(_flatten_value(elem, key_path=key_path)
                          for elem in l
                          if _is_value(elem))))


def _key_writer(key):
    def write(params, value):
        return dict(params, **{key: value})

    return write


def list_call(
    session,
    url,
    items_key=_DEFAULT_ITEMS_KEY,
    params=None,
    page_token_param=_PAGE_TOKEN,
    page_size_param=_PAGE_SIZE,
    next_token_key=_NEXT_TOKEN,
    http_method="GET",
    timeout=None,
):
    """Describe an HTTP/JSON list endpoint as a :class:`~.list_call.ListCall`.

    Args:
        session (requests.Session): The session used to send requests.
            Authentication and retries are configured on it.
        url (str): The URL of the collection.
        items_key (str): The key in the API response where the list of items
            can be found.
        params (Optional[dict]): Extra parameters for the API call. Nested
            dictionaries are flattened with :func:`flatten_query_params`.
        page_token_param (str): The name of the parameter used to send page
            tokens.
        page_size_param (Optional[str]): The name of the parameter used to send
            the page size. ``None`` if the endpoint has none.
        next_token_key (str): The key in the API response that holds the token
            for the next page.
        http_method (str): ``GET`` sends the parameters as a query string,
            ``POST`` as a JSON body.
        timeout (Optional[float]): The timeout of each request, in seconds.

    Returns:
        ~api_paging.list_call.ListCall: The list call.

    Raises:
        ~api_paging.exceptions.InvalidArgument: If ``params`` uses the page
            token parameter.
        ValueError: If the HTTP method is not ``GET`` or ``POST``.
    """
    request = dict(params or {})
    reserved_in_use = {page_token_param}.intersection(request)
    if reserved_in_use:
        raise exceptions.InvalidArgument("Using a reserved parameter", reserved_in_use)
    if http_method not in ("GET", "POST"):
        raise ValueError("Unexpected HTTP method", http_method)

    def issue(page_params):
        if http_method == "GET":
            response = session.request(
                http_method,
                url,
                params=flatten_query_params(page_params),
                timeout=timeout,
            )
        else:
            response = session.request(
                http_method, url, json=page_params, timeout=timeout
            )
        if response.status_code >= 400:
            raise exceptions.from_http_response(response)
        return response.json()

    return ListCall(
        request,
        issue,
        read_token=lambda response: response.get(next_token_key),
        write_token=_key_writer(page_token_param),
        read_items=lambda response: response.get(items_key, ()),
        write_size=_key_writer(page_size_param) if page_size_param else None,
        is_terminal_token=is_absent_or_empty_token,
    )
