import logging
import sys

import rankbind.launcher as launcher
import rankbind.utils as utils
from rankbind.placement import allocate, summarize

from .helpers import discover_devices, load_settings

log = logging.getLogger(__name__)


def main(args, extra, **kwargs):
    """
    Place this rank and replace ourselves with the command.
    """
    # Nothing to execute is not an error, and nothing is allocated
    if not extra:
        log.info("No command to execute.")
        return 0

    settings = load_settings(args)
    context = settings.rank_context()
    devices = discover_devices(args, settings)
    placement = allocate(devices, context)

    # Only local rank 0 speaks, otherwise every rank repeats the same thing
    if context.local_rank == 0:
        for warning in placement.warnings:
            log.warning(warning)
        if settings.verbose:
            record = summarize(devices, context, placement).to_dict()
            record["placement"] = placement.to_dict()
            sys.stderr.write(utils.write_yaml(record))

    log.debug(
        f"Local rank {context.local_rank} of {context.total_local_ranks}: devices={placement.visible_devices} "
        f"mask={placement.cu_mask} numa={placement.numa_string}"
    )
    launcher.launch(placement, extra, cpu_bind=settings.cpu_bind)
