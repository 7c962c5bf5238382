# dicekv

The core of an in-memory key-value database in plain Python, with no
third-party dependencies. It provides:

- `dicekv.store.Store`: keys mapped to objects, with millisecond expiry,
  active expiry sampling, glob-style key matching, renaming, a key counter in
  `Store.stats`, and change notifications (`WatchEvent`) put on a queue you
  supply;
- `dicekv.eviction`: eviction once the key limit is reached, configured by
  `EvictionSettings` and `EvictionPolicy` (simple-first, all-keys random,
  approximate LRU and LFU through an `EvictionPool`);
- `dicekv.aof`: an append-only file (`AOF`) that writes operations one per
  line and reads them back, plus `encode` and `dump_all`;
- `dicekv.dsql` and `dicekv.executor`: a small SQL-like query language that
  filters, orders and limits keys and values, with JSON path access into JSON
  values; `dicekv.sqlast` holds the parser and expression tree it is built on;
- `dicekv.httpcmd`: turns an HTTP request path, query and JSON body into a
  command name with arguments (`RedisCmd`);
- `dicekv.clock`: a replaceable time source;
- `dicekv.jsontype` and `dicekv.testtools`: small helpers for classifying
  decoded JSON values, splitting command lines and comparing JSON documents.

## Installing

```
pip install .
```

For the test suite:

```
pip install ".[test]"
pytest
```

## Storing values

```python
from dicekv.store import Store
from dicekv.obj import ObjType, ObjEncoding

store = Store()
obj = store.new_obj("v1", -1, ObjType.STRING, ObjEncoding.RAW)
store.put("k1", obj)

store.get("k1").value          # "v1"
store.set_expiry(obj, 5000)    # expires five seconds from now
store.get_expiry(obj)          # expiry time in Unix milliseconds
store.keys("k*")               # ["k1"]
store.delete("k1")             # True
```

`new_obj` sets an expiry when its duration is zero or more; `-1` means none.
`put(key, obj, keep_ttl=True)` carries the expiry of the object being
replaced over to the new one. `get` records the access, `get_no_touch` does
not; both drop the key and return `None` if it has expired. `get_del`,
`get_all`, `rename`, `set_unix_time_expiry`, `del_expiry`, `db_size`, `reset`
and `delete_expired_keys` round out the store. In `keys`, `*`, `?` and `[...]`
work as in shell patterns but never match `/`; a malformed pattern raises
`ValueError`.

Pass any object with a `put` method, such as a `queue.Queue`, as
`watch_queue` to receive a `WatchEvent(key, operation, value)` for every set
and delete, with `operation` one of `Operation.SET` and `Operation.DEL`.

## Eviction

```python
from dicekv.eviction import EvictionPolicy, EvictionSettings
from dicekv.store import Store

settings = EvictionSettings(policy=EvictionPolicy.ALL_KEYS_LFU, keys_limit=1000)
store = Store(settings=settings)
```

The defaults are `ALL_KEYS_LRU`, a limit of 10000 keys, an eviction ratio of
0.1 and an LFU log factor of 10. When a `put` finds the store at its limit,
`evict(store)` frees space according to the policy. Each object keeps a 24-bit
access clock, and under LFU an 8-bit probabilistic access counter in its top
byte (`get_lfu_log_counter`, `get_idle_time`).

## Querying

Queries select `$key`, `$value` or both, filter with `WHERE`, and may carry
one `ORDER BY` and a `LIMIT`. `LIKE` and `NOT LIKE` use `*` and `?`
wildcards. For JSON values a quoted path such as `'$value.name'` reaches into
the document.

```python
from dicekv.dsql import parse_query
from dicekv.executor import execute_query

query = parse_query(
    "SELECT $key, $value WHERE $key like 'k*' ORDER BY $value DESC LIMIT 10"
)
for row in execute_query(query, store.items()):
    print(row.key, row.value.value)

print(query)   # SELECT $key, $value WHERE $key like 'k*' ORDER BY $value desc LIMIT 10
```

`execute_query` accepts a mapping or any iterable of `(key, Obj)` pairs and
returns `QueryResultRow` items holding copies of the objects; JSON values come
back as compact JSON text. Queries that cannot be parsed, or that use `FROM`,
`GROUP BY` or `HAVING`, raise `ValueError` with a message saying why;
comparisons between incompatible types raise `QueryExecutionError`.

`Store.cache_keys_for_query(where)` returns the pairs in a store that satisfy
a parsed `WHERE` expression.

## Append-only file

```python
from dicekv.aof import AOF

with AOF("data.aof") as aof:
    aof.write("SET key1 value1")

with AOF("data.aof") as aof:
    aof.load()     # ["SET key1 value1"]
```

Each `write` is flushed and synced to disk. `dump_all(store, path)` appends
every key in a store as a RESP-encoded `SET` command.

## HTTP requests to commands

```python
from dicekv.httpcmd import parse_http_request

parse_http_request("/set", body='{"key": "k1", "value": "v1", "nx": "true"}')
# RedisCmd(cmd='SET', args=['k1', 'v1', 'nx'])
```

The body fields `key`, `field`, `path` and `value` come first, in that order;
a string `"true"` becomes the bare field name, and nested objects and arrays
become JSON text. For `JSON.INGEST` a `key_prefix` query parameter is put
first.

## Clock

All time-dependent code reads the time through `dicekv.clock`. In tests,
`set_clock(MockClock(...))` pins the current time and returns the clock it
replaced.

## What this package does not do

There is no network server, no wire-protocol parser and no command
evaluator: nothing here executes `GET`, `SET` or other commands against a
store, and `RedisCmd` values and AOF records are produced but not run. There
is no command-line program. The store is a single in-process object with no
sharding or thread coordination of its own.