'''
Logging setup for the jsondb command line tools.
'''

import sys
import logging

from rainbow_logging_handler import RainbowLoggingHandler

FORMAT = '%(asctime)s\t[%(name)s] %(pathname)s:%(lineno)d\t%(levelname)s:\t%(message)s'

class LevelFilter(logging.Filter):
    '''
    Handler-level filter selecting the lowest level shown per logger namespace.

    The most specific matching namespace wins. Records from namespaces
    without a rule are dropped.
    '''

    def __init__(self, rules=None):
        super(LevelFilter, self).__init__()
        self._rules = []
        for (namespace, level) in (rules or {}).items():
            self.add(namespace, level)

    def filter(self, record):
        for (namespace, level) in self._rules:
            if record.name == namespace or record.name.startswith(namespace + '.') or not namespace:
                return record.levelno >= level

        return False

    def add(self, namespace, level):
        self.remove(namespace)
        self._rules.append((namespace, level))
        # longest namespace first so the most specific rule matches
        self._rules.sort(key=lambda rule: len(rule[0]), reverse=True)

    def remove(self, namespace):
        self._rules = [x for x in self._rules if x[0] != namespace]

def configure(debug=False, stream=None):
    '''
    Send colored log output to `stream` (default `stderr`).

    jsondb records are shown from DEBUG when `debug` and from INFO
    otherwise. Tornado and everything else are shown from WARNING.
    '''

    handler = RainbowLoggingHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(FORMAT))
    handler.addFilter(LevelFilter({
        '': logging.WARNING,
        'tornado': logging.WARNING,
        'jsondb': logging.DEBUG if debug else logging.INFO,
        '__main__': logging.DEBUG if debug else logging.INFO,
    }))

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    return handler
