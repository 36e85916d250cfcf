"""Source and destination API client implementations."""

from banksync.sync.clients.base import DestinationClient, SourceClient
from banksync.sync.clients.http import HTTPTransport
from banksync.sync.clients.invoice_ninja import InvoiceNinjaClient
from banksync.sync.clients.mercury import MercuryClient

__all__ = [
    "DestinationClient",
    "HTTPTransport",
    "InvoiceNinjaClient",
    "MercuryClient",
    "SourceClient",
]
