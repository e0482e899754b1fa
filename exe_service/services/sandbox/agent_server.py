"""Persistent execution agent for stateful room sandboxes.

This module runs inside the guest container, so it only uses the standard
library. Its source is passed to the guest interpreter with ``-c``:

    python3 -c <source> serve <socket_path>
    python3 -c <source> request <socket_path> <base64_code>

``serve`` binds a Unix socket and handles one connection at a time. Each
connection carries one request: the client writes UTF-8 code, half-closes
its write side and reads until the agent closes. All requests run against
a single namespace that lives as long as the agent process.

``request`` is the client shim the host runs through ``docker exec``. The
code travels base64-encoded on the command line so it needs no escaping.
"""

import base64
import builtins
import contextlib
import io
import json
import os
import socket
import sys
import traceback

DEFAULT_SOCKET_PATH = "/tmp/exe-agent.sock"
READY_MARKER = "agent-ready"
CHUNK_SIZE = 65536

# Exit status of the shim when the agent cannot be reached
EXIT_UNREACHABLE = 3


def new_namespace():
    return {"__name__": "__main__", "__builtins__": builtins}


def run_code(code, namespace):
    """Execute code in the namespace and build the wire response."""
    stdout = io.StringIO()
    stderr = io.StringIO()
    error = None
    trace = None

    try:
        with contextlib.redirect_stdout(stdout), contextlib.redirect_stderr(stderr):
            exec(compile(code, "<room>", "exec"), namespace)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            error = f"SystemExit: {exc.code}"
            trace = traceback.format_exc()
    except BaseException as exc:
        # KeyboardInterrupt and custom BaseException subclasses are guest errors too
        error = f"{type(exc).__name__}: {exc}"
        trace = traceback.format_exc()

    response = {"ok": error is None, "stdout": stdout.getvalue(), "stderr": stderr.getvalue()}
    if error is not None:
        response["error"] = error
        response["traceback"] = trace
    return response


def recv_all(conn):
    """Read until the peer closes its write side."""
    chunks = []
    while True:
        chunk = conn.recv(CHUNK_SIZE)
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


class AgentServer:
    """Accept loop bound to a Unix socket."""

    def __init__(self, path=DEFAULT_SOCKET_PATH):
        self.path = path
        self.namespace = new_namespace()
        self._sock = None

    def bind(self):
        if os.path.exists(self.path):
            os.unlink(self.path)
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.bind(self.path)
        sock.listen(1)
        self._sock = sock
        return sock

    def handle(self, conn):
        with conn:
            code = recv_all(conn).decode("utf-8", errors="replace")
            response = run_code(code, self.namespace)
            conn.sendall(json.dumps(response).encode("utf-8"))

    def serve_forever(self):
        sock = self._sock if self._sock is not None else self.bind()
        while True:
            try:
                conn, _ = sock.accept()
            except OSError:
                # Socket closed
                break
            try:
                self.handle(conn)
            except OSError as exc:
                sys.stderr.write(f"agent: connection error: {exc}\n")
            except Exception as exc:
                sys.stderr.write(f"agent: request failed: {type(exc).__name__}: {exc}\n")

    def close(self):
        if self._sock is not None:
            try:
                self._sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._sock.close()
            self._sock = None
        if os.path.exists(self.path):
            os.unlink(self.path)


def request(path, code):
    """Send one request to the agent and return the raw reply."""
    with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
        sock.connect(path)
        sock.sendall(code.encode("utf-8"))
        sock.shutdown(socket.SHUT_WR)
        return recv_all(sock)


def main(argv):
    if not argv:
        sys.stderr.write("usage: serve [path] | request <path> <base64_code>\n")
        return 2

    command = argv[0]
    if command == "serve":
        server = AgentServer(argv[1] if len(argv) > 1 else DEFAULT_SOCKET_PATH)
        server.bind()
        print(READY_MARKER, flush=True)
        server.serve_forever()
        return 0

    if command == "request" and len(argv) == 3:
        code = base64.b64decode(argv[2]).decode("utf-8")
        try:
            raw = request(argv[1], code)
        except OSError:
            return EXIT_UNREACHABLE
        sys.stdout.write(raw.decode("utf-8", errors="replace"))
        sys.stdout.flush()
        return 0

    sys.stderr.write(f"unknown command: {command}\n")
    return 2


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
