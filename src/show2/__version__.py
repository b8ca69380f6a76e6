"""Show2 version information."""

__version__ = "0.1.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Version history:
# 0.1.0 - Device matching, interface claim, bulk endpoint resolution,
#         request/acknowledge handshake up to "ready to send"
