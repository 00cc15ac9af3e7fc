import logging

import pytest
from loguru import logger

from utils.log import LEVEL_NAMES, resolve_level, setup_logging


@pytest.mark.parametrize("verbosity, level", [
    ("minimal", "NOTICE"),
    ("verbose", "INFO"),
    ("DEBUG", "DEBUG"),
    ("nonsense", "INFO"),
    (None, "INFO"),
])
def test_resolve_level(verbosity, level):
    assert resolve_level(verbosity) == level


def test_level_tags_are_four_chars():
    assert all(len(tag) == 4 for tag in LEVEL_NAMES.values())


def test_setup_registers_notice_and_quiets_libraries():
    assert setup_logging("minimal") == "NOTICE"
    assert logger.level("NOTICE").no == 25
    assert logging.getLogger("discord").level == logging.WARNING

    # Calling again must not re-register NOTICE
    assert setup_logging("debug") == "DEBUG"
    assert logging.getLogger("mafic").level == logging.DEBUG
