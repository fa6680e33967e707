import logging

from rankbind.config import Settings
from rankbind.devices import discover

log = logging.getLogger(__name__)


def load_settings(args, env=None):
    """
    Layer the command line flags over the settings file and environment.
    """
    settings = Settings(getattr(args, "config", None), env=env)
    settings.update_from_args(args)
    return settings


def discover_devices(args, settings):
    """
    Build the canonical device table, optionally from a saved listing.
    """
    listing = None
    if getattr(args, "listing", None):
        with open(args.listing, "r") as fd:
            listing = fd.read()
    return discover(
        allow=settings.allow,
        sysfs_root=settings.sysfs_root,
        drivers=settings.drivers,
        rocminfo=settings.rocminfo,
        listing=listing,
    )
