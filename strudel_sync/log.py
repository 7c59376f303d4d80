import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def configure_logging(verbosity=0):
    """Map the CLI's repeated -v flag onto logger levels.

    0 shows warnings only, -v adds sync results, -vv adds every locator
    and selector attempt, -vvv also turns on watchdog's own debug output.
    """
    if verbosity <= 0:
        level = logging.WARNING
    elif verbosity == 1:
        level = logging.INFO
    else:
        level = logging.DEBUG

    logging.basicConfig(format=LOG_FORMAT, datefmt="%H:%M:%S", stream=sys.stderr)
    logging.getLogger("strudel_sync").setLevel(level)
    logging.getLogger("watchdog").setLevel(
        logging.DEBUG if verbosity >= 3 else logging.WARNING
    )
    return level
