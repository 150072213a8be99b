'''
TCP client interface to `JsonDatabaseServer`.
'''

import os
import logging

from functools import partial

from tornado.ioloop import IOLoop
from tornado.tcpclient import TCPClient
from tornado.escape import json_decode, json_encode
from tornado import gen

import jsonschema

from .protocol import read_frame, write_frame
from . import DEFAULT_ADDRESS, DEFAULT_PORT

logger = logging.getLogger(__name__)  # pylint: disable=invalid-name

RESPONSE_SCHEMA = {
    '$schema': 'http://json-schema.org/draft-04/schema#',
    'type': 'object',
    'properties': {
        'response': {
            'enum': ['OK', 'ERROR']
        },
        'value': {},
        'reason': {
            'type': 'string'
        }
    },
    'required': ['response'],
}

@gen.coroutine
def fetch(host, port, request, client=None):
    '''
    Send one request to the server at `host`:`port` and return its response.

    If `request` is a string, it is sent as is. Otherwise, it is
    JSON-encoded and sent. The response is decoded and validated.
    '''

    if not isinstance(request, str):
        request = json_encode(request)

    stream = yield (client or TCPClient()).connect(host, port)
    try:
        yield write_frame(stream, request)
        logger.debug('{}:{} <- {}'.format(host, port, request))

        body = yield read_frame(stream)
        logger.debug('{}:{} -> {}'.format(host, port, body))
    finally:
        stream.close()

    try:
        obj = json_decode(body)
        jsonschema.validate(obj, RESPONSE_SCHEMA)
    except (ValueError, jsonschema.ValidationError) as exc:
        logger.error('malformed response: {}\n\nResponse:\n{}'.format(exc, body))
        raise RuntimeError('malformed response')

    return obj

def _parse_server(server):
    (host, _, port) = server.rpartition(':')
    if not host:
        return (port, DEFAULT_PORT)

    try:
        return (host, int(port))
    except ValueError:
        raise ValueError('JSONDB_SERVER port is not a number: {!r}'.format(server))

class DatabaseClient(object):
    '''
    Blocking client for a jsondb server.

    Each call opens a new connection, sends one request, and returns the
    decoded response object. Calls are serviced on a private event loop,
    so a `DatabaseClient` must not be used from inside a running loop.
    '''

    def __init__(self, host=None, port=None):
        if not host:
            # fall back to environment variable
            server = os.environ.get('JSONDB_SERVER', None)
            if server:
                (host, env_port) = _parse_server(server)
                port = port or env_port
        if not host:
            # fall back to default
            host = DEFAULT_ADDRESS

        self.host = host
        self.port = port or DEFAULT_PORT

        self._loop = IOLoop(make_current=False)
        self._client = TCPClient()
        self._closed = False

    def request(self, request):
        '''
        Send `request` and block until the response arrives.
        '''

        if self._closed:
            raise RuntimeError('client closed')

        return self._loop.run_sync(partial(fetch, self.host, self.port, request, client=self._client))

    def get(self, key):
        return self.request({'type': 'get', 'key': key})

    def set(self, key, value):
        return self.request({'type': 'set', 'key': key, 'value': value})

    def delete(self, key):
        return self.request({'type': 'delete', 'key': key})

    def exit(self):
        '''
        Ask the server to shut down.
        '''

        return self.request({'type': 'exit'})

    def close(self):
        if not self._closed:
            self._closed = True
            self._client.close()
            self._loop.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

def build_request(operation, key=None, value=None):
    '''
    Build a request object from command line style arguments.

    Returns `None` for an unrecognized `operation`.
    '''

    if operation == 'set':
        return {'type': operation, 'key': key, 'value': value}
    elif operation in ['get', 'delete']:
        return {'type': operation, 'key': key}
    elif operation == 'exit':
        return {'type': operation}
    else:
        return None

if __name__ == '__main__':
    from argparse import ArgumentParser, ArgumentDefaultsHelpFormatter

    parser = ArgumentParser(description='jsondb client', formatter_class=ArgumentDefaultsHelpFormatter)

    parser.add_argument('-a', '--address', metavar='HOST', help='database server host')
    parser.add_argument('-P', '--port', metavar='PORT', type=int, help='database server port')
    parser.add_argument('-t', '--type', metavar='TYPE', help='type of request')
    parser.add_argument('-k', '--key', metavar='KEY', help='key to access')
    parser.add_argument('-v', '--value', metavar='VALUE', help='value to set')
    parser.add_argument('-in', '--input', metavar='FILE', help='file holding a raw request to send')
    parser.add_argument('--data', metavar='DIR', default='.', help='directory for request files')
    parser.add_argument('-d', '--debug', action='store_true', help='enable debug logging')

    args = parser.parse_args()

    from .log import configure
    configure(debug=args.debug)

    if args.input:
        with open(os.path.join(args.data, args.input), encoding='utf-8') as f:
            message = f.read()
    else:
        request = build_request(args.type, args.key, args.value)
        if request is None:
            parser.error('unrecognized request type: {}'.format(args.type))
        message = json_encode(request)

    print('Client started!')
    with DatabaseClient(args.address, args.port) as client:
        print('Sent: {}'.format(message))
        response = client.request(message)
        print('Received: {}'.format(json_encode(response)))
