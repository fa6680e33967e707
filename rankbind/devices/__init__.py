from .device import BusDescriptor, GpuDevice, ListingRecord
from .discovery import discover
