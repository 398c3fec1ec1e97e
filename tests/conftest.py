"""Shared test fixtures."""

import logging
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent))

from gpotools import logging as gpotools_logging
from helpers import CHROME_KEY, policy_xml, write_adml, write_admx


@pytest.fixture
def reset_logging():
    """Close logging handles a test opened through init_logging()."""
    yield
    gpotools_logging.close_logging()
    logger = logging.getLogger("gpotools")
    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()


@pytest.fixture
def admx_store(tmp_path):
    """A PolicyDefinitions directory with chrome.admx and an en-US ADML."""
    store = tmp_path / "PolicyDefinitions"
    write_admx(
        store,
        "chrome.admx",
        policy_xml(
            "HomepageLocation",
            key=CHROME_KEY,
            value_name="HomepageLocation",
            policy_class="Both",
            elements='<text id="HomepageLocation" valueName="HomepageLocation"/>',
        ),
        policy_xml(
            "HomepageIsNewTabPage",
            key=CHROME_KEY,
            value_name="HomepageIsNewTabPage",
        ),
    )
    write_adml(
        store,
        "en-US",
        "chrome.adml",
        {
            "HomepageLocation": "Configure the home page URL",
            "HomepageIsNewTabPage": "Use New Tab Page as homepage",
        },
    )
    return store
