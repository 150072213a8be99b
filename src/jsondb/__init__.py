'''

# jsondb

A single-file, path-addressable JSON key-value database served over TCP.

## Design

The whole database is one JSON object persisted in one file. A key is
either a string, which addresses a top-level field, or a list of strings,
which addresses a location nested inside successive JSON objects. The value
can be any JSON element.

The database supports four operations.
 - `get`: retrieve a value
 - `set`: store a value, creating intermediate objects as needed
 - `delete`: remove a value
 - `exit`: shut the server down
Unlike a dictionary, `get` and `delete` on a key that does not exist are
reported as `No such key` errors rather than returning a default.

Every request reads the file fresh and every mutation rewrites it before
the response is sent. Readers share a lock; a mutation holds the lock
exclusively for its whole read-merge-write cycle.

### Example

Suppose the database starts empty.
```
{}
```
After setting the value `4` at key `["a", "b", "c"]`, the database creates
the necessary structure to contain the nested keys `a`, `b`, and `c`.
```
{
    "a": {
        "b": {
            "c": 4
        }
    }
}
```
The `get` operations below will have the following results.
 - `get(["a", "b", "c"]) -> 4`
 - `get("a") -> {"b": {"c": 4}}`
 - `get("random") -> No such key`

After setting the value `{"s": 2}` at key `["a", "d"]`:
```
{
    "a": {
        "b": {
            "c": 4
        },
        "d": {
            "s": 2
        }
    }
}
```

## Wire protocol

One request per connection. Each direction carries a single frame: a
2-byte big-endian length followed by that many bytes of UTF-8 JSON.
```
-> {"type": "set", "key": ["a", "d"], "value": {"s": 2}}
<- {"response": "OK"}
-> {"type": "get", "key": "a"}
<- {"response": "OK", "value": {"b": {"c": 4}, "d": {"s": 2}}}
-> {"type": "get", "key": "random"}
<- {"response": "ERROR", "reason": "No such key"}
```

## Usage

The following code snippet starts a database server on the default address
and port backed by the default data file.
```
from jsondb.core import Store
from jsondb.server import JsonDatabaseServer

server = JsonDatabaseServer(Store('data/db.json'))
server.run()
```
The `JsonDatabaseServer.run` method blocks until an `exit` request arrives
or a `KeyboardInterrupt` is raised.

The following code snippet creates a client that connects to the default
address and port.
```
from jsondb.client import DatabaseClient

client = DatabaseClient()
client.set(['a', 'b', 'c'], 4)
client.get(['a', 'b', 'c']) # -> {'response': 'OK', 'value': 4}
```
'''

DEFAULT_ADDRESS = '127.0.0.1'
DEFAULT_PORT = 22222
DEFAULT_BACKLOG = 50
DEFAULT_POOL_SIZE = 4
DEFAULT_DATA_PATH = 'data/db.json'
