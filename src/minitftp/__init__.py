"""Minimal TFTP client (RFC 1350, octet mode).

- packet: wire codec for RRQ/WRQ/DATA/ACK
- session: GET and PUT state machines, no I/O beyond the local file
- driver: stop-and-wait loop over caller-supplied send/receive callables
- net, cli: UDP plumbing and the command line
"""

__all__ = []
