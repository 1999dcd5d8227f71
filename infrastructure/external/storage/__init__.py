"""Direct-to-storage transfer and local file loading."""
from .exceptions import TransferError, TransferTimeoutError
from .local_files import read_local_file
from .signed_transfer import SignedURLTransfer, iter_chunks

__all__ = [
    # Transfer
    "SignedURLTransfer",
    "iter_chunks",

    # Local files
    "read_local_file",

    # Exceptions
    "TransferError",
    "TransferTimeoutError",
]
