"""

Debug Link Transport

Streams packages from a debugging agent embedded in a client application to a companion
listener running somewhere on the same network segment.

- Frame codec: each package is written as an 8 byte little-endian length followed by the payload.
- Pending queue: packages sent while no connection is open are held in order. The handshake
  package built from the session Configuration always occupies the head of the queue.
- Service discovery: browses the local network (mDNS/DNS-SD) for the listener's service type and
  resolves the addresses of each instance found. Changes are posted as DiscoveryEvent instances.
- Connection manager: keeps at most one outbound TCP connection. A newly resolved service replaces
  the current connection; the write side of the previous one is closed first.
- Transport facade: NetServiceTransport.start(), send(), stop().


## Threading

Callers may use the facade from any thread. Every change to shared state (service records,
the pending queue, the active connection) happens on a single worker thread, the SerialExecutor.
The zeroconf browser runs on its own thread and address resolution runs on a small pool. Both
post their results to the worker thread as events, so the state is only ever touched by one thread.

Nothing raised inside the transport reaches the caller. Failures are logged and the affected
package or service is dropped.

"""

__version__ = '0.1.0'
