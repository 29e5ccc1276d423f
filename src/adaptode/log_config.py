import logging
import sys


def setup_logging(level=logging.INFO,
                  format_string='%(asctime)s - %(name)s - %(levelname)s - %(message)s'):
    """Configures basic logging to stdout (call from scripts, not libraries)."""
    logging.basicConfig(
        level=level,
        format=format_string,
        stream=sys.stdout,
    )


# package logger; modules use logging.getLogger(__name__) below it
logger = logging.getLogger("adaptode")
