import rankbind.utils as utils
from rankbind.placement import allocate, summarize

from .helpers import discover_devices, load_settings


def main(args, extra, **kwargs):
    """
    Print the placement every local rank would get on this node.
    """
    settings = load_settings(args)
    devices = discover_devices(args, settings)
    first = settings.rank_context(local_rank=0)

    placements = [allocate(devices, first)]
    for rank in range(1, first.total_local_ranks):
        placements.append(allocate(devices, settings.rank_context(local_rank=rank)))

    result = {"ranks": [placement.to_dict() for placement in placements]}
    warnings = list(placements[0].warnings)
    if warnings:
        result["warnings"] = warnings
    if settings.verbose:
        result["diagnostics"] = summarize(devices, first, placements[0]).to_dict()
    print(utils.write_yaml(result), end="")
