"""Typed channels connecting pipeline stages.

Channels hold `(key, payload)` items where the key is a sample identifier.
Three consumption disciplines are supported:

  - Channel: per-item. A consuming stage runs once per key, as soon as every
    keyed input of the stage holds that key.
  - Broadcast: one payload, published once, read by any number of consumers.
  - Barrier: collected. The consumer receives the whole list of items once
    the declared number of producers have terminated.

Items are never depleted by consumers. Every read returns a deep copy, so
two stages fed by the same item can not see each other's modifications.
"""
import collections
import copy


class Channel(object):
    """Keyed per-item channel; one downstream task per key.
    """
    kind = "item"

    def __init__(self, name):
        self.name = name
        self._items = collections.OrderedDict()

    def put(self, key, payload):
        if key in self._items:
            raise ValueError("Channel %s already holds an item for %s" % (self.name, key))
        self._items[key] = payload

    def keys(self):
        return list(self._items.keys())

    def get(self, key):
        return copy.deepcopy(self._items[key])

    def is_ready(self):
        return len(self._items) > 0

    def __contains__(self, key):
        return key in self._items

    def __len__(self):
        return len(self._items)

    def __repr__(self):
        return "<%s %s: %s items>" % (self.__class__.__name__, self.name, len(self._items))


class Broadcast(Channel):
    """Single payload shared, without depletion, by unbounded consumers.
    """
    kind = "broadcast"

    def put(self, key, payload):
        if len(self._items) > 0:
            raise ValueError("Broadcast %s can only be published once" % self.name)
        self._items[key] = payload

    def get(self, key=None):
        if not self.is_ready():
            raise ValueError("Broadcast %s has not been published" % self.name)
        return copy.deepcopy(list(self._items.values())[0])


class Barrier(Channel):
    """Collected channel; blocks its consumer until `expected` producers finish.

    Producers that terminate without output, because their sample branch
    failed upstream, are abandoned and count as finished.
    """
    kind = "barrier"

    def __init__(self, name, expected):
        super(Barrier, self).__init__(name)
        self.expected = int(expected)
        self._abandoned = set()

    def put(self, key, payload):
        super(Barrier, self).put(key, payload)
        self._abandoned.discard(key)

    def abandon(self, key):
        if key not in self._items:
            self._abandoned.add(key)

    def abandoned(self):
        return sorted(self._abandoned, key=str)

    def is_ready(self):
        return len(self._items) + len(self._abandoned) >= self.expected

    def get(self, key=None):
        """Retrieve all collected payloads, ordered by key for reproducible output.
        """
        if not self.is_ready():
            raise ValueError("Barrier %s has %s of %s items" % (self.name, len(self._items),
                                                                self.expected))
        return [copy.deepcopy(self._items[k]) for k in sorted(self._items, key=str)]
