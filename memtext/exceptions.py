"""
memtext Exceptions Module

Defines the exception hierarchy raised by the memcached text protocol client.

Three families are kept apart by type:

- protocol failures (``ProtocolError``, ``NumericFormatError``): the server
  sent something that does not fit the reply expected for the command;
- server-reported failures (``ReplyError``, ``ClientError``,
  ``ServerError``): a well-formed reply saying the command failed;
- cache results (``CacheMiss``, ``NotFound``, ``NotStored``,
  ``CasConflict``): expected, named outcomes of a well-formed exchange.

Transport errors (``OSError``, ``asyncio.IncompleteReadError``) and framing
errors (``asyncio.LimitOverrunError``) are never wrapped.
"""


class MemcacheError(Exception):
    """Base exception for all memtext errors."""

    description = 'error'

    def __init__(self, message=None):
        """
        Initialize the error.

        Args:
            message: str - Detail text (without the ``memcache:`` prefix)
        """
        self.message = message
        if message:
            super().__init__(f'memcache: {self.description}: {message}')
        else:
            super().__init__(f'memcache: {self.description}')


class ProtocolError(MemcacheError):
    """A reply violated the shape expected for the command issued."""

    description = 'protocol error'


class NumericFormatError(MemcacheError):
    """
    A numeric reply field was not an unsigned decimal in range.

    Attributes:
        text: str - The offending field
        bits: int - Width of the unsigned integer that was expected
    """

    description = 'invalid number'

    def __init__(self, text, bits=64):
        self.text = text
        self.bits = bits
        super().__init__(f'{text!r} is not an unsigned {bits}-bit decimal')


class InvalidKeyError(MemcacheError):
    """Key rejected before anything was sent."""

    description = 'invalid key'


# Server-reported failures

class ReplyError(MemcacheError):
    """Server answered ``ERROR``: the client sent a nonexistent command name."""

    description = 'nonexistent command name'


class ClientError(MemcacheError):
    """
    Server answered ``CLIENT_ERROR <message>``.

    The request line did not conform to the protocol; this is a caller bug.
    """

    description = 'client error'


class ServerError(MemcacheError):
    """
    Server answered ``SERVER_ERROR <message>``.

    The server failed to carry out an otherwise valid command.
    """

    description = 'server error'


# Cache results

class CacheResultError(MemcacheError):
    """Base for named, expected outcomes of a well-formed exchange."""


class CacheMiss(CacheResultError):
    """A ``get`` found no item for the key."""

    description = 'cache miss'


class NotFound(CacheResultError):
    """The item addressed by the command was not present."""

    description = 'item not found'


class NotStored(CacheResultError):
    """The condition of an ``add``/``replace``/``append``/``prepend`` was not met."""

    description = 'item not stored'


class CasConflict(CacheResultError):
    """The item was modified since its CAS token was fetched."""

    description = 'compare-and-swap conflict'
