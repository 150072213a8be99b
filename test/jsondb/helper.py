'''
Helpers for running database-dependent tests.
'''

import os
import json
import shutil
import tempfile

from unittest import TestCase

from tornado.testing import AsyncTestCase, bind_unused_port

from jsondb.core import Store
from jsondb.server import JsonDatabaseServer

class TemporaryStoreTestCase(TestCase):
    '''
    Unit test base class with a `Store` backed by a file in a fresh
    temporary directory.

    Subclasses may set `initial` to a document written before each test.
    '''

    initial = None

    def setUp(self):
        self.directory = tempfile.mkdtemp(prefix='jsondb-test-')
        self.path = os.path.join(self.directory, 'db.json')
        if self.initial is not None:
            self.write(self.initial)
        self.store = Store(self.path)

    def write(self, document):
        with open(self.path, 'w') as f:
            json.dump(document, f)

    def read(self):
        with open(self.path) as f:
            return json.load(f)

    def tearDown(self):
        shutil.rmtree(self.directory, ignore_errors=True)

class DatabaseServerTestCase(AsyncTestCase):
    '''
    Unit test base class that sets up a database server on an unused
    local port just for the tests in this case.
    '''

    initial = None

    def setUp(self):
        super(DatabaseServerTestCase, self).setUp()

        self.directory = tempfile.mkdtemp(prefix='jsondb-test-')
        self.path = os.path.join(self.directory, 'db.json')
        if self.initial is not None:
            with open(self.path, 'w') as f:
                json.dump(self.initial, f)

        (sock, self.port) = bind_unused_port()
        self.server = JsonDatabaseServer(Store(self.path))
        self.server.add_sockets([sock])

    def read(self):
        with open(self.path) as f:
            return json.load(f)

    def tearDown(self):
        self.server.shutdown()
        self.server.close()
        super(DatabaseServerTestCase, self).tearDown()
        shutil.rmtree(self.directory, ignore_errors=True)
