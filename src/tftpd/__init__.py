"""tftpd: a TFTP server (RFC 1350, octet mode)

Layout mirrors the protocol:
- packet framing (``packet``) is separate from the transfer state machines
  (``sender`` for read requests, ``receiver`` for write requests)
- one ``Session`` per request, each with its own socket, thread and file
- timeouts and retry budgets come from an explicit ``ServerConfig``

Block numbers are 16 bits and wrap from 65535 to 0, so transfers past
65535 blocks depend on the peer accepting the same rollover.
"""

__all__ = []
