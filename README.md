# svcbase

Small building blocks that most long-running services need. Each module
stands alone, and the package uses only the Python standard library.

| Module | What it gives you |
| --- | --- |
| `svcbase.env` | Infrastructure endpoints read from environment variables |
| `svcbase.apperror` | Typed application errors with a code, a status hint, a cause and a captured stack |
| `svcbase.concurrency` | A bounded worker pool, retry with exponential backoff and jitter, and de-duplication of in-flight calls |
| `svcbase.breaker` | A circuit breaker that trips after consecutive failures |
| `svcbase.raster` | An RGBA canvas, a 5x7 bitmap font, and PNG encoding and decoding |
| `svcbase.captcha` | PNG image captchas with single-use verification |
| `svcbase.graceful` | Start components together and stop them in reverse order |

## Installation

Install the `svcbase` distribution with your usual package installer. It needs
Python 3.10 or later and has no runtime dependencies. The `test` extra adds
pytest and responses.

## Environment endpoints

Host lists can be separated by commas or semicolons. Items are trimmed and
blank ones are dropped. A variable that is missing or blank raises
`EnvUnsetError`.

```python
from svcbase.env import kafka_hosts, split_hosts, EnvUnsetError

split_hosts("a, b;c")          # ["a", "b", "c"]

try:
    brokers = kafka_hosts()    # reads KAFKA_HOSTS
except EnvUnsetError:
    brokers = ["localhost:9092"]
```

The other readers are `server_host()` (SERVER_HOST), `host_ip()` (HOST_IP),
`zookeeper_hosts()` (ZK_HOSTS), `hdfs_hosts()` (HDFS_HOSTS),
`elastic_hosts()` (ES_HOSTS) and `redis_hosts()` (REDIS_HOSTS).

## Typed errors

`AppError` is an exception with `code`, `status`, `message` and `cause`.
Messages are formatted with `%`-style arguments.

```python
from svcbase import apperror

NOT_FOUND = apperror.new_sentinel("USER_NOT_FOUND", 404, "user not found")

err = apperror.new("USER_NOT_FOUND", 404, "user %s does not exist", "u-1")
str(err)                               # "user u-1 does not exist"
apperror.error_is(err, NOT_FOUND)      # True: same code
apperror.code_of(err)                  # "USER_NOT_FOUND"
apperror.status_of(err)                # 404

wrapped = apperror.wrap(EOFError("EOF"), "READ_FAIL", 500, "cannot read user profile")
str(wrapped)                           # "cannot read user profile: EOF"
apperror.error_is(wrapped, EOFError)   # True: causes are searched too
```

`error_is(err, target)` walks the error, its causes and the members of any
`JoinedError`, and matches by identity, by exception class, or by equal
non-empty `AppError` code. `code_of` and `status_of` return `""` and `0` when
no `AppError` is found.

`new` and `wrap` record the caller's stack; `err.stack()` returns it as text,
and sentinels have an empty stack. `set_stack_depth(n)` limits how many
frames are kept (0 turns capture off, negative values count as 0), and
`stack_depth()` reports the current limit.

`Multi` collects several errors and ignores `None`:

```python
m = apperror.Multi()
m.append(step_one(), step_two())
if (combined := m.err()) is not None:
    raise combined
```

With one error, `err()` returns that error unchanged. With more, it returns a
`JoinedError`, whose text is the members' messages on separate lines.
`len(m)` and `m.errors()` give the count and a copy of the list.
`append_err(dst, err)` does the same for code that builds up a single value.

## Worker pool, retry and single-flight

Tasks are callables that take no arguments.

```python
from svcbase.concurrency import Pool, PoolBusyError, retry, RetryOptions, SingleFlight

with Pool(4, 16) as pool:          # 4 workers, queue of 16
    for job in jobs:
        pool.submit(job.run)       # blocks while the queue is full
    try:
        pool.try_submit(extra.run)
    except PoolBusyError:
        ...
# leaving the block closes the pool and runs every queued task first
```

`submit(task, timeout=...)` raises `TimeoutError` if no room appears in time.
A task that raises does not stop its worker. After `close()`, submitting
raises `PoolClosedError`.

```python
result = retry(fetch, RetryOptions(attempts=5, min_delay=0.1, max_delay=5.0))
```

`retry` returns the first successful result. Waits grow exponentially from
`min_delay` up to `max_delay` (seconds) with full jitter. Errors rejected by
`should_retry` are raised unchanged; by default `TimeoutError` and
cancellation are not retried. When every attempt fails it raises
`RetryError`, whose `last_error` holds the final failure. Pass a
`threading.Event` as `cancel` to stop waiting; setting it during a wait
raises `RetryInterruptedError`.

```python
flight = SingleFlight()
value, shared = flight.do("user:42", load_user)
```

Concurrent callers with the same key share one call; `shared` tells whether
the result went to more than one caller.

## Circuit breaker

```python
from svcbase.breaker import Breaker, BreakerOptions, BreakerOpenError, State

breaker = Breaker(BreakerOptions(name="payments", failure_threshold=5, timeout=10.0))
try:
    receipt = breaker.do(charge_card)
except BreakerOpenError:
    use_fallback()

breaker.state() is State.CLOSED
breaker.snapshot()          # Counts of requests, successes and failures
```

After `failure_threshold` consecutive failures the breaker opens and your
function is not called. After `timeout` seconds it goes half-open and lets
`max_requests` probes through; calls beyond that raise
`TooManyRequestsError`. Enough successful probes close it, and a failed probe
opens it again. Errors from your function propagate unchanged.
`should_trip`, `is_successful`, `interval` and `on_state_change(old, new)`
customise the rules.

## Raster images

```python
from svcbase.raster import Canvas, draw_char, decode_png

canvas = Canvas(40, 30, (255, 255, 255))
draw_char(canvas, 2, 2, "A", (0, 0, 0))
png = canvas.to_png()
decode_png(png).get(2, 2)   # (0, 0, 0, 255)
```

The font covers `0-9` and `A-Z`, drawn at three times its 5x7 size; other
characters are skipped. `decode_png` reads 8-bit RGB or RGBA PNGs without
interlacing and raises `ValueError` on anything else.

## Captchas

```python
from svcbase.captcha import Captcha, CaptchaOptions

captcha = Captcha(CaptchaOptions(length=5, ttl=300))
challenge_id, png_bytes = captcha.generate()
# send png_bytes to the client and keep challenge_id
ok = captcha.verify(challenge_id, user_answer)   # consumes the challenge
```

Answers come from a cryptographically secure source, and IDs are 24
lowercase hex characters. The comparison runs in constant time and ignores
case unless `case_sensitive=True`. Unknown, expired or already-used IDs
verify as `False`. `MemoryStore(interval)` is the built-in store; it removes
expired entries every `interval` seconds until `close()`. Any object with
`put(id, answer, ttl)` and `take(id)` can be passed as `store`.

## Graceful shutdown

```python
from svcbase.graceful import App

app = App(shutdown_timeout=30)
app.add("http-server", server.run, server.shutdown)
app.add("worker", worker.run, worker.stop)
app.run()
```

Each run function receives a `threading.Event` that is set when shutdown
begins. `run` returns at the first of: SIGINT or SIGTERM (when called from the
main thread), any component returning, or the optional `stop_event` being
set. Close functions are then called in reverse order of registration, each
given the seconds left of the shutdown deadline. If a component raises,
`run` raises `ComponentError`; failing close functions are reported together
as a `JoinedError`. Running with no components raises `GracefulError`.

## What the package does not do

It does not load configuration files, schedule recurring jobs, connect to SQL
databases, take locks in Redis, or talk to Elasticsearch. The captcha store
lives in one process's memory; sharing challenges across replicas needs a
store object of your own.