'''
TCP server interface for jsondb.

Each connection carries one request frame and one response frame before
it is closed. The request body is a JSON object with the structure below.
```
{
    'type': 'get' | 'set' | 'delete' | 'exit',
    'key': <string> | [<string>, ...],      -- get, set, delete
    'value': <value>                        -- set
}
```
Refer to `jsondb.protocol` for the framing and the response body.
'''

import logging

from concurrent.futures import ThreadPoolExecutor

from tornado.ioloop import IOLoop
from tornado.iostream import StreamClosedError
from tornado.locks import Event
from tornado.netutil import bind_sockets
from tornado.tcpserver import TCPServer
from tornado.escape import json_decode
from tornado import gen

import jsonschema

from .core import Outcome
from .protocol import read_frame, write_frame, dump_response
from . import DEFAULT_ADDRESS, DEFAULT_PORT, DEFAULT_BACKLOG, DEFAULT_POOL_SIZE, DEFAULT_DATA_PATH

logger = logging.getLogger(__name__)  # pylint: disable=invalid-name

class RequestDispatcher(object):
    '''
    Maps a single request onto a `Store` operation and its response.

    A dispatcher serves exactly one request. It moves from `AWAITING` to
    `DISPATCHED` once the request has been run against the store, and to
    `RESPONDED` once the response text has been produced.
    '''

    AWAITING = 'awaiting'
    DISPATCHED = 'dispatched'
    RESPONDED = 'responded'

    REQUEST_SCHEMA = {
        '$schema': 'http://json-schema.org/draft-04/schema#',
        'type': 'object',
        'properties': {
            'type': {
                'type': 'string'
            },
            'key': {
                'anyOf': [
                    {'type': 'string'},
                    {
                        'type': 'array',
                        'items': {
                            'type': 'string'
                        },
                    },
                ]
            },
            'value': {}
        },
        'required': ['type'],
    }

    def __init__(self, store, shutdown=None):
        self.store = store
        self.state = RequestDispatcher.AWAITING
        self._shutdown = shutdown

    def dispatch(self, request):
        '''
        Run the request text `request` and return its `Outcome`.

        Malformed requests and unrecognized operations are reported as
        invalid arguments.
        '''

        if self.state != RequestDispatcher.AWAITING:
            raise RuntimeError('request already dispatched')
        self.state = RequestDispatcher.DISPATCHED

        try:
            # decode and validate the request JSON
            obj = json_decode(request)
            jsonschema.validate(obj, RequestDispatcher.REQUEST_SCHEMA)
        except (ValueError, RecursionError, jsonschema.ValidationError) as exc:
            logger.warning('malformed request: {}\n\nRequest:\n{}'.format(exc, request))
            return Outcome.invalid_arguments()

        operation = obj['type']
        if operation == 'get':
            return self.store.get(obj.get('key'))
        elif operation == 'set':
            return self.store.set(obj.get('key'), obj.get('value'))
        elif operation == 'delete':
            return self.store.delete(obj.get('key'))
        elif operation == 'exit':
            logger.info('exit requested')
            if self._shutdown:
                self._shutdown()
            return Outcome.success()
        else:
            logger.warning('invalid operation: {}'.format(operation))
            return Outcome.invalid_arguments()

    def handle(self, request):
        '''
        Dispatch the request text `request` and return the response text.
        '''

        logger.debug('Received: {}'.format(request))

        outcome = self.dispatch(request)
        response = dump_response(outcome)
        self.state = RequestDispatcher.RESPONDED

        logger.debug('Sent: {}'.format(response))
        return response

class JsonDatabaseServer(TCPServer):
    '''
    Tornado TCP server for database access.

    Requests run on a bounded pool of worker threads so that slow disk
    access never blocks the event loop. An `exit` request closes the
    listening sockets, lets in-flight connections finish, and then makes
    `run` return.
    '''

    def __init__(self, store, address=DEFAULT_ADDRESS, port=DEFAULT_PORT,
                 backlog=DEFAULT_BACKLOG, pool_size=DEFAULT_POOL_SIZE):
        super(JsonDatabaseServer, self).__init__()
        self.store = store
        self._address = address
        self._port = port
        self._backlog = backlog

        self._executor = ThreadPoolExecutor(max_workers=pool_size)
        self._active = 0
        self._closing = False
        self.stopped = Event()

    @gen.coroutine
    def handle_stream(self, stream, address):
        '''
        Serve the single request arriving on `stream`.
        '''

        self._active += 1
        loop = IOLoop.current()
        dispatcher = RequestDispatcher(self.store, shutdown=lambda: loop.add_callback(self.shutdown))

        try:
            try:
                request = yield read_frame(stream)
            except UnicodeDecodeError as exc:
                logger.warning('undecodable request from {}: {}'.format(address[0], exc))
                response = dump_response(Outcome.invalid_arguments())
            else:
                try:
                    response = yield loop.run_in_executor(self._executor, dispatcher.handle, request)
                except Exception:  # pylint: disable=broad-except
                    logger.exception('request from {} failed'.format(address[0]))
                    response = dump_response(Outcome.database_error())

            try:
                yield write_frame(stream, response)
            except ValueError as exc:
                logger.error('response not sent to {}: {}'.format(address[0], exc))
                yield write_frame(stream, dump_response(Outcome.database_error()))
        except StreamClosedError:
            logger.warning('connection {} closed early'.format(address[0]))
        except IOError as exc:
            logger.warning('connection {} failed: {}'.format(address[0], exc))
        finally:
            if not stream.closed():
                stream.close()

            self._active -= 1
            self._check_stopped()

    def shutdown(self):
        '''
        Stop accepting connections and finish once in-flight work drains.
        '''

        if self._closing:
            return

        logger.info('jsondb shutting down')
        self._closing = True
        self.stop()
        self._check_stopped()

    def _check_stopped(self):
        if self._closing and not self._active:
            self.stopped.set()

    @gen.coroutine
    def serve(self, sockets=None):
        '''
        Listen until shutdown.

        If `sockets` is provided, those pre-bound sockets are used instead
        of binding the configured address and port.
        '''

        if sockets is None:
            sockets = bind_sockets(self._port, self._address or None, backlog=self._backlog)
        self.add_sockets(sockets)

        logger.info('jsondb started on {}:{}'.format(
            self._address or '*', sockets[0].getsockname()[1]))

        yield self.stopped.wait()

    def run(self, sockets=None):
        '''
        Service a private Tornado event loop until shutdown.
        '''

        loop = IOLoop(make_current=False)

        try:
            loop.run_sync(lambda: self.serve(sockets))
        except KeyboardInterrupt:
            pass
        finally:
            loop.close(all_fds=True)
            self.close()

        logger.info('jsondb stopped')

    def close(self):
        '''
        Wait for the worker pool to finish its requests and release it.
        '''

        self._executor.shutdown(wait=True)

if __name__ == '__main__':
    from argparse import ArgumentParser, ArgumentDefaultsHelpFormatter

    parser = ArgumentParser(description='jsondb server', formatter_class=ArgumentDefaultsHelpFormatter)

    parser.add_argument('-a', '--address', metavar='HOST', default=DEFAULT_ADDRESS, help='address to bind')
    parser.add_argument('-P', '--port', metavar='PORT', type=int, default=DEFAULT_PORT, help='port to bind')
    parser.add_argument('-b', '--backlog', metavar='N', type=int, default=DEFAULT_BACKLOG, help='listen backlog')
    parser.add_argument('-w', '--workers', metavar='N', type=int, default=DEFAULT_POOL_SIZE, help='worker pool size')
    parser.add_argument('-f', '--file', metavar='PATH', default=DEFAULT_DATA_PATH, help='database file')
    parser.add_argument('-p', '--persist', action='store_true', help='keep an existing database file')
    parser.add_argument('-d', '--debug', action='store_true', help='log every request and response')

    args = parser.parse_args()

    from .log import configure
    configure(debug=args.debug)

    from .core import Store, prepare
    prepare(args.file, persist=args.persist)

    server = JsonDatabaseServer(Store(args.file), address=args.address, port=args.port,
                                backlog=args.backlog, pool_size=args.workers)
    print('Server started!')
    server.run()
