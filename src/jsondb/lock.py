'''
Shared/exclusive lock guarding the database file.
'''

import threading

from contextlib import contextmanager

class ReadWriteLock(object):
    '''
    Reader/writer lock for threads.

    Any number of threads may hold the lock shared at once. A thread
    holding the lock exclusively excludes all other holders, shared or
    exclusive.

    Threads waiting for exclusive access block new shared acquisitions
    so that a steady stream of readers cannot starve a writer.

    The lock is not reentrant.
    '''

    def __init__(self):
        self._condition = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._waiting_writers = 0

    def acquire_shared(self):
        '''
        Block until the lock can be held shared.
        '''

        with self._condition:
            while self._writer or self._waiting_writers:
                self._condition.wait()
            self._readers += 1

    def release_shared(self):
        with self._condition:
            if self._readers <= 0:
                raise RuntimeError('release of unheld shared lock')

            self._readers -= 1
            if not self._readers:
                self._condition.notify_all()

    def acquire_exclusive(self):
        '''
        Block until the lock can be held exclusively.
        '''

        with self._condition:
            self._waiting_writers += 1
            try:
                while self._writer or self._readers:
                    self._condition.wait()
                self._writer = True
            finally:
                self._waiting_writers -= 1
                if not self._writer:
                    # interrupted while waiting so wake readers held back
                    self._condition.notify_all()

    def release_exclusive(self):
        with self._condition:
            if not self._writer:
                raise RuntimeError('release of unheld exclusive lock')

            self._writer = False
            self._condition.notify_all()

    @contextmanager
    def shared(self):
        '''
        Context manager holding the lock shared for the enclosed block.
        '''

        self.acquire_shared()
        try:
            yield self
        finally:
            self.release_shared()

    @contextmanager
    def exclusive(self):
        '''
        Context manager holding the lock exclusively for the enclosed block.
        '''

        self.acquire_exclusive()
        try:
            yield self
        finally:
            self.release_exclusive()

    @property
    def readers(self):
        '''Number of current shared holders.'''
        with self._condition:
            return self._readers

    @property
    def locked(self):
        '''`True` if the lock is currently held exclusively.'''
        with self._condition:
            return self._writer
