import pytest
import warp as wp

from dambreak.utils.config import config_from_dict, default_config

wp.config.quiet = True


@pytest.fixture
def device():
    return "cpu"


@pytest.fixture
def config():
    return default_config()


@pytest.fixture
def coarse_config():
    """Default scenario at deltap = 0.04; the gate plane then falls on the tank lattice."""
    return config_from_dict({"particles": {"deltap": 0.04}})


@pytest.fixture
def wet_config():
    return config_from_dict({"fluid": {"wet_bed": True}})
