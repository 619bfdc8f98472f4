#!/usr/local/bin/python

# Copyright (c) 2021-present Machine Intelligence Services, Inc.
# All rights reserved.
#
# This software is provided "as is," without warranty of any kind,
# express or implied. In no event shall the author or contributors
# be held liable for any damages arising in any way from the use of
# this software.
#
# This software is dual-licensed under open source and commercial licenses:
#
# 1. The software can be licensed under the terms of the Mozilla Public
# License Version 2.0:
#
# This Source Code Form is subject to the terms of the Mozilla Public
# License, v. 2.0. If a copy of the MPL was not distributed with this
# file, You can obtain one at https://mozilla.org/MPL/2.0/.
#
# 2. The commercial license gives you the full rights to create
# and distribute software on your own terms without any open source license
# obligations.

import json
import logging
from http import HTTPStatus
from typing import Optional

from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound
from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

from .common_constants import JSON_CONTENT_TYPE
from .introspector import Introspector, LocalSystemError, RuntimeContext
from .response_encoder import ResponseEncoder

_logger = logging.getLogger(__name__)
_logger.addHandler(logging.NullHandler())


class IntrospectionApp:
    """
    WSGI application serving the snapshot at GET /.
    The snapshot is recomputed for every request.
    """

    ALLOWED_METHODS = ["GET"]

    def __init__(
        self,
        introspector: Introspector,
        encoder: Optional[ResponseEncoder] = None,
    ):
        self.introspector = introspector
        self.encoder = encoder or ResponseEncoder()

    def dispatch_request(self, request: Request) -> Response:
        _logger.info(f"{request.method} {request.full_path.rstrip('?')}")

        if request.path != "/":
            raise NotFound()

        if request.method not in self.ALLOWED_METHODS:
            raise MethodNotAllowed(valid_methods=self.ALLOWED_METHODS)

        snapshot = self.introspector.introspect()

        compress = "gzip" in request.headers.get("Accept-Encoding", "")

        try:
            body = self.encoder.encode(snapshot, compress=compress)
        except (TypeError, ValueError) as ex:
            _logger.exception("Unable to encode snapshot")
            return self.make_error_response(str(ex))

        response = Response(body, status=HTTPStatus.OK.value, content_type=JSON_CONTENT_TYPE)
        response.vary.add("Accept-Encoding")

        if compress:
            response.headers["Content-Encoding"] = "gzip"

        return response

    def make_error_response(self, message: str) -> Response:
        body = json.dumps({"error": message}, ensure_ascii=False) + "\n"
        return Response(
            body,
            status=HTTPStatus.INTERNAL_SERVER_ERROR.value,
            content_type=JSON_CONTENT_TYPE,
        )

    def wsgi_app(self, environ, start_response):
        request = Request(environ)

        try:
            response = self.dispatch_request(request)
        except HTTPException as http_exception:
            return http_exception(environ, start_response)
        except LocalSystemError as ex:
            _logger.error(f"Unable to introspect host: {ex}")
            response = self.make_error_response(str(ex))

        return response(environ, start_response)

    def __call__(self, environ, start_response):
        return self.wsgi_app(environ, start_response)


def make_app(context: RuntimeContext) -> IntrospectionApp:
    return IntrospectionApp(introspector=Introspector(context=context))


def serve(context: RuntimeContext) -> None:
    params = context.params
    app = make_app(context)

    server = make_server(params.host, params.port, app, threaded=True)

    _logger.info(f"Server listening on {params.host}:{server.port}")

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        _logger.info("Caught interrupt, shutting down")
    finally:
        server.server_close()
