from utils.logger import logger, set_verbose
from utils.screenshot import take_screenshot
from utils.wait_helper import poll_until, wait_for

__all__ = [
    "logger",
    "set_verbose",
    "take_screenshot",
    "wait_for",
    "poll_until",
]
