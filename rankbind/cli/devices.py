import rankbind.utils as utils

from .helpers import discover_devices, load_settings


def main(args, extra, **kwargs):
    """
    Print the canonical device table.
    """
    settings = load_settings(args)
    devices = discover_devices(args, settings)
    print(utils.write_yaml({"devices": [device.to_dict() for device in devices]}), end="")
