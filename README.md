# lbstore

A small log-structured key-value store and the HTTP services built around it.
The package uses only the standard library.

## Installation

```
pip install .
```

To run the tests, install the `test` extra:

```
pip install .[test]
pytest
```

## The store

`lbstore.db.Db` keeps its data in a directory of segment files named
`current-data0`, `current-data1`, and so on. Writes are appended to the newest
segment. When a write would make that segment larger than `max_segment_size`,
a new segment is started. When there are three or more segments, all segments
except the newest are merged into one segment, and only the latest value of
each key is kept. The merge runs during the write that starts the new segment.

```python
from lbstore.db import Db, KeyNotFoundError

with Db("/tmp/lbstore-data", 4096) as db:
    db.put("team", "2024-01-01")
    print(db.get("team"))
    try:
        db.get("missing")
    except KeyNotFoundError:
        print("no such key")
```

- `Db.get(key)` returns the latest value. It raises `KeyNotFoundError` if the
  key is unknown or the store is closed. It raises `lbstore.entry.ChecksumError`
  if the stored value fails its checksum.
- `Db.put(key, value)` appends a record. It raises `DatabaseClosedError` after
  `close()`.
- `Db.segments` gives the current `Segment` objects, oldest first. Each has a
  `path`, an in-memory `index` of keys to offsets, and a `read(position)` method.

When a `Db` is opened on a directory that already holds segments, it rebuilds
the index from the segment files. Records whose checksum does not match are
logged as warnings and skipped. A record whose size field is invalid, or that
is cut short, raises `ValueError`.

### Record format

`lbstore.entry` defines how records are stored. A record holds, in order: the
total size (uint32, little-endian), the key length, the key bytes, the value
length, the value bytes, and the 20-byte SHA-1 digest of the value.

- `Entry(key, value).encode()` serialises a record. `Entry.length()` and
  `entry_length(key, value)` give its size.
- `decode_entry(data)` parses a record without checking its checksum.
  `Entry.verify_checksum()` raises `ChecksumError` on a mismatch.
- `read_value(stream)` reads one record from a binary stream, checks its
  checksum and returns the value.

## Commands

### `lbstore-db`

This command serves the store over HTTP.

```
lbstore-db --dir /opt/practice-4/out --port 8083 --segment-size 250
```

- `GET /db/<key>` returns `{"key": ..., "value": ...}`, or 404 if the key
  cannot be read.
- `POST /db/<key>` with a JSON body `{"value": ...}` stores the value as text.
  Numbers, booleans, lists and objects are rendered as plain text, and `null`
  is stored as `<nil>`. A malformed body gets 400.
- `GET /db/health` answers `OK`.
- Other methods get 405.

### `lbstore-server`

This command runs a demo backend.

```
lbstore-server --port 8080
```

At startup it posts today's date under the key `osb` to the DB service at
`http://db:8083/db/`. It makes up to 10 attempts, 5 seconds apart. It serves:

- `/health`: `OK`, or 503 `Unhealthy` when `CONF_HEALTH_FAILURE` is set.
- `/api/v1/some-data?key=<key>`: looks the key up in the DB service and
  returns its value as JSON. It returns 400 without `key`, 404 if the key is
  not found, and 500 if the DB reply cannot be decoded. Each request is
  recorded in the report, and the response carries an `lb-from` header.
- `/report`: JSON that maps each `lb-author` header value to the last 100
  `lb-req-cnt` values seen (`lbstore.report.Report`).

The backend reads these environment variables:

- `PORT` overrides the listening port.
- `SERVER_ID` sets the `lb-from` header. It defaults to `server-<port>`.
- `CONF_RESPONSE_DELAY_SEC` delays each data response by that many seconds.
  Only values from 1 to 299 take effect.
- `CONF_HEALTH_FAILURE` makes `/health` report the backend as unhealthy.

### `lbstore-balancer`

This command runs a load balancer in front of the backends `server1:8080`,
`server2:8080` and `server3:8080`.

```
lbstore-balancer --port 8090 --timeout-sec 3 --trace
```

The balancer checks each backend's `/health` at startup and every 10 seconds
after that. Each request goes to a healthy backend chosen by an FNV-1a hash of
the client's `host:port`. When no backend is healthy, or forwarding fails, the
balancer answers 503. With `--trace`, responses carry an `lb-from` header that
names the backend. Use `--https` for backends that serve HTTPS. The same logic
is available as `lbstore.balancer.LoadBalancer`, `health` and `forward`.

### `lbstore-client`

This command polls `<target>/api/v1/some-data` once a second and logs each
response status.

```
lbstore-client --target http://localhost:8090 --count 10
```

The default `--count 0` runs until the command is interrupted.

### `lbstore-stats`

This command fetches `/report` from `localhost:8080`, `localhost:8081` and
`localhost:8082` and logs the last 5 entries per author for each backend.

```
lbstore-stats --https
```

## Limitations

- The backend addresses used by the balancer and by the stats tool are fixed,
  as is the DB service URL used by the demo backend. None of them can be
  changed from the command line.
- The store has no delete operation and no way to list its keys.