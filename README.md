# kubedock

kubedock holds the core of a Docker-API-compatible container service whose
containers are meant to run as Kubernetes workloads. It keeps an in-memory
record of containers, execs, networks and images, answers the Docker Engine
API endpoints that test-container libraries rely on, and hands the actual
work of running containers to a backend object that you supply.

The package has no third-party dependencies.

## What is inside

- `kubedock.model.database` — `Database`, a thread-safe in-memory store for
  containers, execs, networks and images. `default_database()` returns a
  shared instance. Every new database starts with the predefined `null`,
  `host` and `bridge` networks. Saving a record without an id assigns a
  random id, a 12-character short id and a creation time. Records are found
  by full id, short id or name; a missing record raises `NotFoundError`.
- `kubedock.model.container` — the `Container` record and its helpers:
  environment variables (`get_env_vars`), pull policy (`get_image_pull_policy`,
  returning a `PullPolicy`), CPU and memory requests and limits read from
  labels (`get_resource_requirements`), the numeric run-as user
  (`get_run_as_user`), port mappings (`add_host_port`, `map_port`,
  `get_service_ports`), volume binds (`get_volumes`, `get_volume_files`,
  `get_volume_folders`), single-file pre-archives, network membership
  (`connect_network`, `disconnect_network`), stop/attach signals, filter
  matching (`match`) and the Docker-style `state_string` and `status_string`.
- `kubedock.model.quantity` — `parse_quantity` and `Quantity` for resource
  quantities such as `500m`, `2000Mi` or `1000000000n`; `str()` gives the
  canonical form. Malformed input raises `QuantityError`.
- `kubedock.model.records` — the `Exec`, `Image` and `Network` records.
- `kubedock.filter` — `Filter`, which reads the `filters` query argument of
  the Docker API (both the list and the map form) and tests any object with a
  `match(typ, key, val)` method against it. Unparsable input raises
  `FilterError`.
- `kubedock.stringid` — `generate_random_id`, `truncate_id`, `is_short_id`
  and `validate_id`.
- `kubedock.tarutil` — `pack_folder`, `unpack_file`, `get_target_file_names`,
  `get_target_folder_names` and `is_single_file_archive`.
- `kubedock.ioproxy` — `IoProxy`, a writer that frames output line by line in
  the Docker multiplexed stream format, tagging each frame with a `StdType`;
  a partial line is flushed shortly after it was written.
- `kubedock.md2text` — `to_text`, a rough markdown-to-plain-text converter,
  and `wrap` for word wrapping.
- `kubedock.reaper` — `Reaper`, which in a background thread removes stored
  containers older than its keep time and execs older than five minutes. The
  backend given to it needs `delete_container(container)` and
  `delete_older_than(age)`.
- `kubedock.reverseproxy` — `ReverseProxy`, a TCP forwarder from a local port
  on `0.0.0.0` to a remote address; usable as a context manager.
- `kubedock.routes` — the endpoint handlers (`ContainerRoutes`,
  `NetworkRoutes`, `ImageRoutes`, `ExecRoutes`) brought together by
  `kubedock.routes.app.Router`, plus the request bodies in
  `kubedock.routes.requests` and the shared pieces in `kubedock.routes.base`
  (`ApiRequest`, `ApiResponse`, `ApiError`, `RouterConfig`, `Backend`,
  `DeployState`, `RateLimiter`).

## Examples

Storing and finding containers:

```python
from kubedock.model.container import Container
from kubedock.model.database import NotFoundError, default_database

db = default_database()
container = Container(name="web")
db.save_container(container)            # assigns an id, short id and creation time

assert db.get_container(container.short_id) is container
assert db.get_container_by_name_or_id("web") is container

try:
    db.get_container("nonexistent")
except NotFoundError as exc:
    print(exc)
```

Filtering containers the way `GET /containers/json` does:

```python
from kubedock.filter import Filter

flt = Filter('{"label": ["com.docker.compose.project=demo"]}')
matching = [c for c in db.get_containers() if flt.match(c)]
```

Working with ids:

```python
from kubedock.stringid import generate_random_id, is_short_id, truncate_id

full = generate_random_id()
short = truncate_id(full)
assert is_short_id(short)
```

Dispatching an API call:

```python
from kubedock.routes.app import Router
from kubedock.routes.base import ApiRequest, RouterConfig

router = Router(my_backend, RouterConfig(port_forward=True))
response = router.dispatch("GET", "/v1.41/networks", ApiRequest())
print(response.status, response.body)
```

`dispatch` strips a leading `/v1.xx` version (see `strip_version`), finds the
handler for the method and path, and returns an `ApiResponse`. Handler errors
become a JSON body `{"message": ...}` with the matching status; unknown paths
give 404. A response with `stream` set expects the caller to hand it the raw
connection to write to (used by attach and exec start).

## What the package does not do

- It contains no HTTP server and no command to start one; `Router.dispatch`
  has to be wired into a server of your choice.
- It contains no Kubernetes backend. Starting, stopping, inspecting and
  copying files to containers is done by the object you pass as `backend`,
  which must provide the methods described by `kubedock.routes.base.Backend`.
- The router does not serve `/info`, `/version`, container logs, or the
  `GET`/`PUT` container archive endpoints; those paths answer 404. A number of
  other endpoints (top, stats, pause, build and the like) answer 501.

## Tests

The test suite uses pytest and lives in `tests/`; install the `test` extra
and run `pytest`.