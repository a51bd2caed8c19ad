# tlsstream

Building blocks for TLS-aware network code.

## Modules

- **`tlsstream.base_sock`**: `BaseSock` is a plain TCP stream. Its timeouts cover
  whole messages rather than single reads and writes. `recv(size, min_len=1)`
  keeps reading until at least `min_len` bytes have arrived. It returns fewer
  only if the peer closes the connection. `send(data)` keeps writing until all
  of `data` is sent. Both raise `TimeoutError` when their timer runs out.
  - `recv_partial()` and `send_partial()` perform a single transfer.
  - By default each `recv`/`send` call starts its timer. After
    `start_recv_timer()` / `start_send_timer()` you start the timers yourself.
  - `set_recv_timeout_seconds(seconds, automatic=True)` and
    `set_send_timeout_seconds(...)` set the timeouts and choose automatic or
    manual timing. `None` or `-1` means no practical limit.
  - If you set a `threading.Event` passed as `stop_event`, any wait is aborted
    with `InterruptedError`.
  - `BaseSock` works as a context manager. It disconnects on exit.
  - `SocketStream` is the abstract interface it implements.
- **`tlsstream.tls_helper`**: decodes TLS records.
  - `ClientHello(data).is_client_initialize()` tells whether a buffer holds a
    complete ClientHello record.
  - `ClientHello.sni()` returns the host name requested through SNI, or `""`.
  - `trace_packet(data)` writes an analysis of one or more concatenated records
    to the debug output. It returns the length of the first complete record, or
    0. `ClientHello.trace_handshake()` does the same for its own buffer.
  - `tls_version_text(major, minor)` turns a version pair into a label such as
    `"TLS 1.2"`.
  - `tls_version_from_protocol(mask)` turns a `Protocol` bit mask into `10`,
    `11`, `12`, `13`, or `0`.
- **`tlsstream.certificates`**: certificate helpers.
  - `StoredCertificate` holds an `x509.Certificate` with an optional private key,
    friendly name and description. It offers PEM loading and saving, the SHA-1
    `thumbprint`, and checks for self-signing and key usage.
  - `dns_name_matches` and `match_certificate_name` match host names, including
    `*.` wildcards.
  - `hex_to_binary` parses a thumbprint string.
  - `get_cert_subject`, `get_cert_friendly_name` and `get_cert_name` give display
    names.
  - `create_certificate()` makes a self-signed 2048-bit RSA certificate, valid
    for five years, for server or client authentication.
- **`tlsstream.cert_store`**: `CertStore` is an in-memory collection of
  `StoredCertificate` values.
  - `find_server_certificate_by_name` prefers a matching certificate from a
    proper issuer, then a self-signed one. If neither exists it creates and adds
    a new self-signed certificate.
  - `find_client_certificate` returns a client certificate that has a private
    key.
  - `find_from_issuer_list` takes `x509.Name` issuers.
  - `find_by_signature` looks a certificate up by hex SHA-1 thumbprint.
  - `find_by_name` finds a certificate whose subject contains the given text,
    ignoring case. It returns `None` when the name is `None`.
  - `cert_trusted` checks key usage, chain building up to one of the store's
    `trusted_roots`, and validity dates.
  - Failed searches raise `CertificateNotFoundError`.
- **`tlsstream.sec_buffers`**: `SecBufferDescriptor` is a fixed number of typed
  buffers (`BufferType`, `SecBuffer`). It supports `set_buffer`, `clear`,
  `buffer`, `buffer_by_type` and `is_empty`.
- **`tlsstream.handle`**: `Handle` owns a value and releases it with a `closer`
  callable on `close()`. It also provides `attach`, `detach` and `swap`, and
  works as a context manager.
- **`tlsstream.utilities`**: debug tracing to standard error, switched on with
  `set_debug(True)`: `debug_msg`, `debug_begin_msg`, `debug_continue_msg`,
  `debug_end_msg`. It also has hex-dump helpers (`hex_digits`, `hex_dump_lines`,
  `print_hex_dump`, `print_full_hex_dump`) and small helpers (`rtrim`,
  `error_message`, `get_host_name`, `get_current_user_name`,
  `get_version_text`).

## What it does not do

The package has no encrypted stream: it does not perform a TLS handshake or
encrypt traffic itself. Its certificate store lives in memory only. It does not
read or write an operating-system certificate store. It provides no command-line
program.

## Installation

```
pip install tlsstream
```

## Examples

Find the server name in a ClientHello:

```python
from tlsstream.tls_helper import ClientHello

hello = ClientHello(first_bytes_from_client)
if hello.is_client_initialize():
    print("client asked for", hello.sni())
```

Choose a server certificate, creating a self-signed one if none fits:

```python
from tlsstream.cert_store import CertStore

store = CertStore()
stored = store.find_server_certificate_by_name("www.example.com")
pem = stored.to_pem()
```

Trace TLS records to standard error:

```python
from tlsstream.utilities import set_debug
from tlsstream.tls_helper import trace_packet

set_debug(True)
trace_packet(record_bytes)
```

Timed socket I/O:

```python
from tlsstream.base_sock import BaseSock

with BaseSock() as sock:
    sock.set_recv_timeout_seconds(10)
    sock.connect("www.example.com", 443)
    sock.send(b"...")
    reply = sock.recv(4096)
```

## Running the tests

```
pip install -e .[test]
pytest
```