'''
Core database components of jsondb.
'''

import os
import json

from tempfile import NamedTemporaryFile

from .lock import ReadWriteLock

import logging
logger = logging.getLogger(__name__)  # pylint: disable=invalid-name

class DatabaseError(Exception):
    '''
    Raised when the database file cannot be read or written.
    '''
    pass

class PathKey(object):
    '''
    Location of a value within the database document.

    A scalar key addresses a single top-level field by name. A path key
    addresses a nested location by descending through `segments` in order,
    one JSON object per segment.
    '''

    def __init__(self, segments, scalar=False):
        segments = list(segments)
        if not segments:
            raise ValueError('empty key path')
        if scalar and len(segments) != 1:
            raise ValueError('scalar key must have exactly one segment')
        for segment in segments:
            if not isinstance(segment, str):
                raise ValueError('key segment is not a string: {!r}'.format(segment))

        self.segments = segments
        self.scalar = scalar

    @classmethod
    def parse(cls, key):
        '''
        Build a `PathKey` from a request key.

        A string becomes a scalar key and is never split. A list or tuple
        of strings becomes a path key. Anything else raises `ValueError`.
        '''

        if isinstance(key, PathKey):
            return key
        elif isinstance(key, str):
            return cls([key], scalar=True)
        elif isinstance(key, (list, tuple)):
            return cls(key)
        else:
            raise ValueError('invalid key: {!r}'.format(key))

    @property
    def head(self):
        return self.segments[0]

    @property
    def parents(self):
        return self.segments[:-1]

    @property
    def leaf(self):
        return self.segments[-1]

    def __eq__(self, other):
        if not isinstance(other, PathKey):
            return NotImplemented
        return self.segments == other.segments and self.scalar == other.scalar

    def __hash__(self):
        return hash((tuple(self.segments), self.scalar))

    def __repr__(self):
        if self.scalar:
            return 'PathKey({!r})'.format(self.segments[0])
        else:
            return 'PathKey({!r})'.format(self.segments)

class Outcome(object):
    '''
    Result of a `Store` operation.

    A successful outcome may carry a value. `has_value` distinguishes an
    outcome without a value from one whose value is JSON `null`.
    '''

    SUCCESS = 'success'
    NO_SUCH_KEY = 'no_such_key'
    INVALID_ARGUMENTS = 'invalid_arguments'
    DATABASE_ERROR = 'database_error'

    _NO_VALUE = object()

    def __init__(self, status, value=_NO_VALUE):
        self.status = status
        self._value = value

    @classmethod
    def success(cls, value=_NO_VALUE):
        return cls(cls.SUCCESS, value)

    @classmethod
    def no_such_key(cls):
        return cls(cls.NO_SUCH_KEY)

    @classmethod
    def invalid_arguments(cls):
        return cls(cls.INVALID_ARGUMENTS)

    @classmethod
    def database_error(cls):
        return cls(cls.DATABASE_ERROR)

    @property
    def ok(self):
        return self.status == Outcome.SUCCESS

    @property
    def has_value(self):
        return self._value is not Outcome._NO_VALUE

    @property
    def value(self):
        if not self.has_value:
            return None
        return self._value

    def __eq__(self, other):
        if not isinstance(other, Outcome):
            return NotImplemented
        return self.status == other.status and self._value == other._value

    def __repr__(self):
        if self.has_value:
            return 'Outcome({}, {!r})'.format(self.status, self._value)
        else:
            return 'Outcome({})'.format(self.status)

def skeleton(key, value):
    '''
    Build the smallest document holding only `value` at `key`.

    The result always has exactly one top-level field, the first segment
    of `key`.
    '''

    for segment in reversed(key.segments):
        value = {segment: value}
    return value

def merge(target, source):
    '''
    Recursively merge the object `source` into the object `target` in place.

    Fields holding objects on both sides are merged. Any other field of
    `source` replaces the field of `target` wholesale. Fields of `target`
    missing from `source` are kept. Returns `target`.
    '''

    for (k, v) in source.items():
        if isinstance(v, dict) and isinstance(target.get(k), dict):
            merge(target[k], v)
        else:
            target[k] = v
    return target

def _resolve(document, segments):
    '''
    Descend into `document` along `segments`.

    `KeyError` is raised if a field is missing or if a segment before the
    last lands on something that is not an object.
    '''

    node = document
    for segment in segments:
        if not isinstance(node, dict) or segment not in node:
            raise KeyError(segment)
        node = node[segment]
    return node

def prepare(path, persist=False):
    '''
    Ready the database file at `path` for a new server.

    The parent directory is created if needed. The file is truncated to
    empty unless `persist` and the file already exists.
    '''

    parent = os.path.dirname(os.path.abspath(path))
    if not os.path.isdir(parent):
        logger.info('creating data directory "{}"'.format(parent))
        os.makedirs(parent)

    if persist and os.path.exists(path):
        logger.info('keeping existing database "{}"'.format(path))
    else:
        logger.info('initializing empty database "{}"'.format(path))
        with open(path, 'w'):
            pass

class StoreInterface(object):
    '''
    Basic interface for a `Store`.
    '''

    def get(self, key=None):
        raise NotImplementedError

    def set(self, key=None, value=None):
        raise NotImplementedError

    def delete(self, key=None):
        raise NotImplementedError

class Store(StoreInterface):
    '''
    Path-addressed JSON document persisted as a single file.

    The document root is always a JSON object. Nothing is cached between
    operations: every operation reads the file, and every mutation writes
    the whole document back before returning.

    All operations return an `Outcome` rather than raising.

    Reads hold `lock` shared for their duration. Mutations hold it
    exclusively across the entire read, merge and write so concurrent
    mutations cannot lose each other's updates. Pass the same `lock` to
    several `Store`s only if they share the same file.
    '''

    def __init__(self, path, lock=None):
        self._path = path
        self._lock = lock or ReadWriteLock()

    @property
    def path(self):
        return self._path

    @property
    def lock(self):
        return self._lock

    def get(self, key=None):
        '''
        Get the value referenced by `key`.
        '''

        logger.debug('get: {!r}'.format(key))

        try:
            key = PathKey.parse(key)
        except ValueError as exc:
            logger.warning('get rejected: {}'.format(exc))
            return Outcome.invalid_arguments()

        try:
            with self._lock.shared():
                document = self._load()
            return Outcome.success(_resolve(document, key.segments))
        except KeyError:
            return Outcome.no_such_key()
        except DatabaseError:
            return Outcome.database_error()

    def set(self, key=None, value=None):
        '''
        Store `value` at `key`.

        Intermediate objects are created as needed. A non-object found
        along the path is replaced by a fresh object. Objects already in
        the database are merged with rather than replaced.

        A `value` of `None` is rejected; use `delete` instead.
        '''

        logger.debug('set: {!r}'.format(key))

        try:
            key = PathKey.parse(key)
        except ValueError as exc:
            logger.warning('set rejected: {}'.format(exc))
            return Outcome.invalid_arguments()

        if value is None:
            logger.warning('set rejected: missing value')
            return Outcome.invalid_arguments()

        try:
            json.dumps(value)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.warning('set rejected: unserializable value: {}'.format(exc))
            return Outcome.invalid_arguments()

        update = skeleton(key, value)

        try:
            with self._lock.exclusive():
                document = self._load()
                merge(document, update)
                self._save(document)
        except DatabaseError:
            return Outcome.database_error()

        return Outcome.success()

    def delete(self, key=None):
        '''
        Remove the value at `key`.

        Objects left empty by the removal stay in the database.
        '''

        logger.debug('delete: {!r}'.format(key))

        try:
            key = PathKey.parse(key)
        except ValueError as exc:
            logger.warning('delete rejected: {}'.format(exc))
            return Outcome.invalid_arguments()

        try:
            with self._lock.exclusive():
                document = self._load()
                parent = _resolve(document, key.parents)
                if not isinstance(parent, dict) or key.leaf not in parent:
                    raise KeyError(key.leaf)

                del parent[key.leaf]
                self._save(document)
        except KeyError:
            return Outcome.no_such_key()
        except DatabaseError:
            return Outcome.database_error()

        return Outcome.success()

    def _load(self):
        '''
        Read the document from disk.

        A missing, empty or unparseable file, or one whose root is not an
        object, reads as an empty document.
        '''

        try:
            with open(self._path, 'r', encoding='utf-8') as f:
                text = f.read()
        except FileNotFoundError:
            return {}
        except (IOError, OSError) as exc:
            logger.error('database read failed: {}'.format(exc))
            raise DatabaseError(str(exc))

        if not text.strip():
            return {}

        try:
            document = json.loads(text)
        except ValueError as exc:
            logger.warning('unparseable database "{}" treated as empty: {}'.format(self._path, exc))
            return {}

        if not isinstance(document, dict):
            logger.warning('database root is {} not an object, treated as empty'.format(type(document).__name__))
            return {}

        return document

    def _save(self, document):
        '''
        Write the whole document to disk.

        The document goes to a temporary file beside the database which
        then replaces it, so readers never observe a partial write.
        '''

        try:
            text = json.dumps(document)
        except (TypeError, ValueError, RecursionError) as exc:
            logger.error('database not serializable: {}'.format(exc))
            raise DatabaseError(str(exc))

        directory = os.path.dirname(os.path.abspath(self._path))
        tmp = None
        try:
            with NamedTemporaryFile('w', encoding='utf-8', dir=directory,
                                    prefix='.', suffix='.tmp', delete=False) as f:
                tmp = f.name
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self._path)
            tmp = None
        except (IOError, OSError) as exc:
            logger.error('database write failed: {}'.format(exc))
            raise DatabaseError(str(exc))
        finally:
            # only left set when the replace did not happen
            if tmp and os.path.exists(tmp):
                os.remove(tmp)
