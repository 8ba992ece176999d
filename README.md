# ocvsmd

This package holds the building blocks of a service that manages OpenCyphal nodes. It is a library. It provides no command to run.

## Installing

```
pip install .
```

Run the tests with:

```
pip install ".[test]"
pytest
```

## Modules

### `ocvsmd.config`

`Config.make(path)` loads a TOML configuration file. It raises if the file can't be read or parsed. Each reader returns `None`, or an empty list, when an entry is missing or has the wrong type:

- `cyphal_app_node_id()` returns an integer from 0 to 65535.
- `cyphal_app_unique_id()` returns 16 `bytes`.
- `cyphal_transport_interfaces()`, `file_server_roots()` and `ipc_connections()` return lists of strings.
- `logging_file()`, `logging_level()` and `logging_flush_level()` return strings.

There are two setters. `set_cyphal_app_unique_id(unique_id)` takes 16 integers in the range 0..255 and stores them as a one-line array of hex numbers. `set_file_server_roots(roots)` stores the list of roots. A setter only marks the configuration as changed.

`save()` writes the changes back to the file, together with a `__meta__.last_modified` timestamp. If nothing has changed, it does not write. The existing comments and layout are kept. A failure to save is logged and is not raised.

```toml
[cyphal.application]
node_id = 42

[cyphal.transport]
interfaces = ["udp://127.0.0.1"]

[file_server]
roots = ["/srv/firmware"]

[ipc]
connections = ["unix-abstract:org.opencyphal.ocvsmd.ipc"]

[logging]
level = "info"
flush_level = "warn"
```

### `ocvsmd.errors`

This module defines the Cyphal failures. All of them derive from `CyphalError`:

- `ArgumentError`
- `OutOfMemoryError`
- `AnonymousError`
- `CapacityError`
- `AlreadyExistsError`
- `PlatformError(code)`
- `SerializationError`
- `ResponsePromiseExpired`
- `TooManyPendingRequestsError`

`error_to_code(error)` maps a failure to its errno value, for example `ETIMEDOUT` for an expired response promise. `describe_error(error)` returns a short description, for example `"PlatformError(code=5)"`.

### `ocvsmd.udp`

Addresses are integers in host order, so 127.0.0.1 is `0x7F000001`.

- `parse_iface_address("127.0.0.1")` returns `0x7F000001`. It returns `0` if the address is not recognised.
- `is_multicast(address)` tests whether the address lies in 224.0.0.0/4.
- `UdpTxSocket(local_iface_address)` sends from one interface with a multicast TTL of 16. Its `send(remote_address, remote_port, dscp, payload)` returns `True` when the datagram was sent and `False` when the socket was not ready.
- `UdpRxSocket(local_iface_address, multicast_group, remote_port)` joins a multicast group. Its `receive(max_size=2000)` returns the datagram, or `None` if nothing is pending.
- `wait(timeout_usec, tx, rx)` polls the given sockets. It returns two lists of readiness flags, one for the TX sockets and one for the RX sockets.

Invalid arguments raise `ValueError`. Errors from the operating system raise `PlatformError`. Both socket classes work as context managers.

### `ocvsmd.udp_media`

`UdpMedia(iface_address)` stands for one local interface. It makes TX sockets with `make_tx_socket()` and RX sockets with `make_rx_socket(multicast_address, port)`.

`UdpMediaCollection.parse("192.168.1.2,10.0.0.3")` configures up to three media from a comma-separated list and skips empty items. `count()` returns the number of configured media and `media()` returns them.

### `ocvsmd.socketcan`

This module is for Linux only.

- `SocketCan.open(iface_name, can_fd=False)` opens a non-blocking raw CAN socket. The socket has kernel timestamps and loop-back of its own frames enabled.
- `push(frame, timeout_usec=0)` returns `True` when the frame was queued and `False` on timeout.
- `pop(timeout_usec=0, accept_loopback=False)` returns a `CanFrame`, or `None` on timeout or when the frame is dropped.
- `set_filters(filters)` installs `CanFilter` acceptance filters.

Only extended-ID data frames are passed on. The encoding is available without a socket through `encode_frame`, `decode_frame` and `encode_filters`.

### `ocvsmd.file_provider`

`FileProvider(config)` serves files from the ordered list of roots that `config.file_server_roots()` returns.

- `get_info(path)` returns a `GetInfoResponse`.
- `read(path, offset)` returns a `ReadResponse` that holds up to 256 bytes.

Both methods resolve the path against each root in turn and take the first match. A path that resolves outside its root is never served. Failures are reported as `FileError` values. `convert_error_code(code)` maps an errno value to a `FileError`.

`push_root(path, back)` and `pop_root(path, back)` change the list of roots. They store the new list through `config.set_file_server_roots`.

### `ocvsmd.file_server`

`ListRootsService`, `PopRootService` and `PushRootService` are called with a channel and a request. The channel needs `send(response)` and `complete()`. The pop and push services take a `RootRequest(path, is_back)`.

`ListRootsService` sends each root as its own response and skips roots longer than 255 characters. Every service completes the channel when it is done. `all_services(file_provider)` returns all three services.

## What this package does not do

This package has no command line program and no background service. It does not:

- detach into the background;
- write a PID file;
- set up logging sinks or log levels;
- run a Cyphal node or an event loop;
- accept IPC connections.

Anything that needs those must be built on top of these modules.