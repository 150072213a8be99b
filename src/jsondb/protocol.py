'''
Wire format for jsondb requests and responses.

Each message is a single frame: a 2-byte big-endian unsigned length
followed by that many bytes of UTF-8 encoded JSON text. A connection
carries exactly one request frame and one response frame.
'''

import struct

from tornado import gen
from tornado.escape import json_encode

from .core import Outcome

HEADER = struct.Struct('>H')
MAX_FRAME_LENGTH = 0xffff

OK = 'OK'
ERROR = 'ERROR'

REASON_NO_SUCH_KEY = 'No such key'
REASON_INVALID_ARGUMENTS = 'Invalid arguments'
REASON_DATABASE_ERROR = '503 - something went wrong on server side'

REASONS = {
    Outcome.NO_SUCH_KEY: REASON_NO_SUCH_KEY,
    Outcome.INVALID_ARGUMENTS: REASON_INVALID_ARGUMENTS,
    Outcome.DATABASE_ERROR: REASON_DATABASE_ERROR,
}

def encode_frame(text):
    '''
    Encode `text` as a length-prefixed frame.

    Raises `ValueError` if the encoded text does not fit the length prefix.
    '''

    data = text.encode('utf-8')
    if len(data) > MAX_FRAME_LENGTH:
        raise ValueError('frame too long: {} bytes'.format(len(data)))

    return HEADER.pack(len(data)) + data

def decode_header(header):
    '''
    Return the body length announced by a frame header.
    '''

    if len(header) != HEADER.size:
        raise ValueError('frame header must be {} bytes'.format(HEADER.size))

    (length,) = HEADER.unpack(header)
    return length

@gen.coroutine
def read_frame(stream):
    '''
    Read one frame from the Tornado `IOStream` and return its text.
    '''

    header = yield stream.read_bytes(HEADER.size)
    length = decode_header(header)
    if length:
        body = yield stream.read_bytes(length)
    else:
        body = b''

    return body.decode('utf-8')

@gen.coroutine
def write_frame(stream, text):
    '''
    Write `text` as one frame to the Tornado `IOStream`.
    '''

    yield stream.write(encode_frame(text))

def encode_response(outcome):
    '''
    Build the response object for `outcome`.

    ```
    {
        'response': 'OK',
        'value': <value>        -- only if the outcome carries a value
    }
    -- OR --
    {
        'response': 'ERROR',
        'reason': <reason>
    }
    ```
    '''

    if outcome.ok:
        response = {'response': OK}
        if outcome.has_value:
            response['value'] = outcome.value
    else:
        response = {'response': ERROR, 'reason': REASONS[outcome.status]}

    return response

def dump_response(outcome):
    '''
    Serialize the response for `outcome` as JSON text.
    '''

    return json_encode(encode_response(outcome))
