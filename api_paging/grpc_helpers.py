# Copyright 2017 Google LLC
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

"""Helpers for paging through :mod:`grpc` list methods.

:func:`list_call` describes a unary-unary list method that follows the
`list pagination`_ pattern as a :class:`~api_paging.list_call.ListCall`::

    >>> call = grpc_helpers.list_call(
    ...     stub.ListOperations,
    ...     operations_pb2.ListOperationsRequest(name="operations"),
    ...     items_field="operations",
    ... )
    >>> for operation in page_iterator.list_all(call, page_size=50):
    ...     print(operation.name)

.. _list pagination:
    https://cloud.google.com/apis/design/design_patterns#list_pagination
"""

import functools
import logging

import grpc
import proto

from api_paging import client_logging
from api_paging import exceptions
from api_paging.list_call import ListCall, is_absent_or_empty_token

_LOGGER = logging.getLogger(__name__)

_DEFAULT_REQUEST_TOKEN_FIELD = "page_token"
_DEFAULT_RESPONSE_TOKEN_FIELD = "next_page_token"
_DEFAULT_PAGE_SIZE_FIELD = "page_size"


def _patch_callable_name(callable_):
    """Fix-up gRPC callable attributes.

    gRPC callable lack the ``__name__`` attribute which causes
    :func:`functools.wraps` to error. This adds the attribute if needed.
    """
    if not hasattr(callable_, "__name__"):
        callable_.__name__ = callable_.__class__.__name__


def _simplify_method_name(method) -> str:
    """Simplifies a gRPC method name.

    When gRPC invokes the channel to create a callable, it gives a full
    method name like "/google.longrunning.Operations/ListOperations". This
    returns just the name of the method, in this case "ListOperations".

    Args:
        method (str): The name of the method.

    Returns:
        str: The simplified name of the method.
    """
    return method.rsplit("/", 1).pop()


def _rpc_name(method):
    """Return the simplified name of a bound gRPC method, if it has one."""
    name = getattr(method, "_method", None)
    if isinstance(name, bytes):
        name = name.decode("utf-8")
    if not isinstance(name, str):
        return None
    return _simplify_method_name(name)


def wrap_errors(callable_):
    """Wrap a unary gRPC callable so that errors are raised as
    :mod:`api_paging.exceptions`.

    Args:
        callable_ (Callable): A gRPC callable.

    Returns:
        Callable: The wrapped gRPC callable.
    """
    _patch_callable_name(callable_)

    @functools.wraps(callable_)
    def error_remapped_callable(*args, **kwargs):
        try:
            return callable_(*args, **kwargs)
        except grpc.RpcError as exc:
            raise exceptions.from_grpc_error(exc) from exc

    return error_remapped_callable


def copy_message(message):
    """Return a copy of a protobuf or proto-plus message.

    Args:
        message (Union[google.protobuf.message.Message, proto.Message]): The
            message to copy.

    Returns:
        Union[google.protobuf.message.Message, proto.Message]: A new message
            of the same type with the same contents.
    """
    if isinstance(message, proto.Message):
        # The proto-plus constructor copies the wrapped protobuf.
        return type(message)(message)
    copied = type(message)()
    copied.CopyFrom(message)
    return copied


def _field_writer(field):
    def write(request, value):
        request = copy_message(request)
        setattr(request, field, value)
        return request

    return write


def _call_kwargs(timeout, metadata):
    kwargs = {}
    if timeout is not None:
        kwargs["timeout"] = timeout
    if metadata:
        kwargs["metadata"] = tuple(metadata)
    return kwargs


def _build_list_call(
    issue,
    request,
    items_field,
    request_token_field,
    response_token_field,
    page_size_field,
):
    return ListCall(
        request,
        issue,
        read_token=lambda response: getattr(response, response_token_field),
        write_token=_field_writer(request_token_field),
        read_items=lambda response: getattr(response, items_field),
        write_size=_field_writer(page_size_field) if page_size_field else None,
        # proto3 string fields read back as "" when unset.
        is_terminal_token=is_absent_or_empty_token,
    )


def list_call(
    method,
    request,
    items_field,
    request_token_field=_DEFAULT_REQUEST_TOKEN_FIELD,
    response_token_field=_DEFAULT_RESPONSE_TOKEN_FIELD,
    page_size_field=_DEFAULT_PAGE_SIZE_FIELD,
    timeout=None,
    metadata=(),
):
    """Describe a gRPC list method as a :class:`~.list_call.ListCall`.

    The request is never mutated: a copy is made for every page that needs a
    token or a page size.

    Args:
        method (grpc.UnaryUnaryMultiCallable): A bound gRPC method that takes
            a single request message.
        request (Union[google.protobuf.message.Message, proto.Message]): The
            request for the first page.
        items_field (str): The field in the response message that has the
            items for the page.
        request_token_field (str): The field in the request message used to
            specify the page token.
        response_token_field (str): The field in the response message that has
            the token for the next page.
        page_size_field (Optional[str]): The field in the request message used
            to specify the page size. ``None`` if the method has none.
        timeout (Optional[float]): The timeout of each page request, in
            seconds.
        metadata (Sequence[Tuple[str, str]]): Metadata sent with each page
            request.

    Returns:
        ~api_paging.list_call.ListCall: The list call.
    """
    wrapped = wrap_errors(method)
    rpc_name = _rpc_name(method)
    kwargs = _call_kwargs(timeout, metadata)

    def issue(page_request):
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Sending list request",
                extra=client_logging.page_fields(rpc_name=rpc_name),
            )
        return wrapped(page_request, **kwargs)

    return _build_list_call(
        issue,
        request,
        items_field,
        request_token_field,
        response_token_field,
        page_size_field,
    )
