# bisectservice

A small HTTP service that accepts a snippet of code, finds the nightly
compiler that introduced a regression in it, and keeps every job and its
result in a SQLite database.

Jobs go to a single background worker through a bounded queue. The queue
holds up to ten waiting jobs. For each job the worker does the following:

1. It records the job as in progress.
2. It creates a throwaway library crate and runs `cargo-bisect-rustc` in it
   (`--preserve --access github --timeout 30`, with `RUST_LOG=error`).
3. It stores the result:
   - On success, the output from `searched nightlies:` onwards.
   - On failure, the last 30 lines of the tool's stderr.
   - On an internal error, the text `Internal error`.
4. It prunes old `bisector-` toolchains with `rustup`, so that no more than
   fifteen are kept.

## Requirements

- Python 3.10 or later
- `cargo`, `rustup` and `cargo-bisect-rustc` on `PATH`

## Installation

```
pip install .
```

## Running

```
bisectservice
```

The command takes no options apart from `--help`. Before it starts serving,
it creates the database table if it is missing and prunes old toolchains.
It then starts two servers:

- the main service on port 4000
- a metrics endpoint on port 4001, which serves `/metrics` in Prometheus text
  format. The only counter is `bisections`, the number of accepted bisection
  requests.

The database file is taken from the `SQLITE_DB` environment variable. If it is
not set, `bisect.sqlite` in the current directory is used.

## HTTP API

| Method | Path           | Description                                   |
|--------|----------------|-----------------------------------------------|
| GET    | `/`            | HTML front page read from a file (see below)  |
| POST   | `/bisect`      | Queue a job; the request body is the code     |
| GET    | `/bisect`      | List all bisections                           |
| GET    | `/bisect/<id>` | One bisection, or `null` if it is unknown     |

Query parameters for `POST /bisect`:

- `start` (required): the first nightly date, `YYYY-MM-DD`
- `end` (optional): the last nightly date, `YYYY-MM-DD`
- `kind` (optional): the regression kind passed to `--regress`; defaults to `ice`

Responses:

- A successful post returns `{"job_id": "<uuid>"}`.
- A missing or malformed date gives status 400.
- If the queue is full, the service answers with status 429.
- An `<id>` that is not a UUID gives status 400.
- A database error gives status 500.

Each bisection is returned as JSON, with its time in UTC:

```json
{
  "id": "…",
  "code": "fn main() {}",
  "time": "2024-01-01T00:00:00Z",
  "status": {"status": "Success", "output": "searched nightlies: …"}
}
```

`status` is one of `InProgress`, `Error` or `Success`. The last two carry an
`output` field.

## What it does not do

The package does not ship a front page. `GET /` serves the file named by the
`INDEX_HTML` environment variable, or `index.html` in the current directory.
If that file cannot be read, the response is a 404.

## Using it as a library

The building blocks can also be used on their own:

- `bisectservice.server.create_app(conn, jobs, metrics)` builds the Flask
  application.
- `bisectservice.server.create_metrics_app(metrics)` builds the metrics
  application.
- `bisectservice.server.Metrics` holds the counters.
- `bisectservice.db` holds the SQLite storage functions:
  - `setup`
  - `add_bisection`
  - `update_bisection_status`
  - `get_bisections`
  - `get_bisection`
- `bisectservice.bisect` holds the job functions:
  - `process_job`
  - `bisect_worker` runs until it receives `None` from the queue.
  - `run_bisect_for_file`
  - `process_result`
- `bisectservice.models` holds the data types:
  - `Bisection`
  - `BisectStatus`
  - `StatusKind`
  - `Options`
  - `parse_options`, which builds `Options` from query parameters.
- `bisectservice.toolchain.clean_toolchains()` prunes old bisector toolchains.

## Tests

```
pip install ".[test]"
pytest
```