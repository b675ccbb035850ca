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

"""AsyncIO helpers for paging through :mod:`grpc.aio` list methods.

Please combine more detailed docstring in grpc_helpers.py to use following
functions. This module is implementing the same surface with AsyncIO semantics.
"""

import functools
import logging

import grpc

from api_paging import client_logging
from api_paging import exceptions
from api_paging import grpc_helpers

_LOGGER = logging.getLogger(__name__)


def wrap_errors(callable_):
    """Wrap a ``grpc.aio`` unary callable so that errors are raised as
    :mod:`api_paging.exceptions`.

    Args:
        callable_ (Callable): A ``grpc.aio`` unary-unary callable.

    Returns:
        Callable: A coroutine function calling the wrapped callable.
    """
    grpc_helpers._patch_callable_name(callable_)

    @functools.wraps(callable_)
    async def error_remapped_callable(*args, **kwargs):
        try:
            return await callable_(*args, **kwargs)
        except grpc.RpcError as rpc_error:
            raise exceptions.from_grpc_error(rpc_error) from rpc_error

    return error_remapped_callable


def list_call(
    method,
    request,
    items_field,
    request_token_field=grpc_helpers._DEFAULT_REQUEST_TOKEN_FIELD,
    response_token_field=grpc_helpers._DEFAULT_RESPONSE_TOKEN_FIELD,
    page_size_field=grpc_helpers._DEFAULT_PAGE_SIZE_FIELD,
    timeout=None,
    metadata=(),
):
    """Describe a ``grpc.aio`` list method as a :class:`~.list_call.ListCall`.

    The returned list call is meant for
    :func:`api_paging.page_iterator_async.list_all`. See
    :func:`api_paging.grpc_helpers.list_call` for the arguments.

    Returns:
        ~api_paging.list_call.ListCall: The list call.
    """
    wrapped = wrap_errors(method)
    rpc_name = grpc_helpers._rpc_name(method)
    kwargs = grpc_helpers._call_kwargs(timeout, metadata)

    async def issue(page_request):
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Sending list request",
                extra=client_logging.page_fields(rpc_name=rpc_name),
            )
        return await wrapped(page_request, **kwargs)

    return grpc_helpers._build_list_call(
        issue,
        request,
        items_field,
        request_token_field,
        response_token_field,
        page_size_field,
    )
