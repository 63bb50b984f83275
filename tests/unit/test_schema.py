import copy

import pytest

from gnettrack_ingest.common.config_loader import DEFAULTS
from gnettrack_ingest.common.errors import ConfigError
from gnettrack_ingest.common.schema import validate_ingest_config


def _cfg():
    return copy.deepcopy(DEFAULTS)


def test_defaults_are_valid():
    assert validate_ingest_config(_cfg())["processing"]["batch_size"] == 1000


def test_unknown_top_level_key_rejected():
    cfg = _cfg()
    cfg["extra"] = {}
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)
    assert validate_ingest_config(cfg, allow_unknown=True) is cfg


def test_unknown_section_key_rejected():
    cfg = _cfg()
    cfg["influxdb"]["retention"] = "7d"
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)


@pytest.mark.parametrize("value", [0, -1, "10", 1.5, True])
def test_batch_size_must_be_positive_integer(value):
    cfg = _cfg()
    cfg["processing"]["batch_size"] = value
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)


def test_skip_invalid_must_be_boolean():
    cfg = _cfg()
    cfg["processing"]["skip_invalid"] = "yes"
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)


def test_url_required():
    cfg = _cfg()
    cfg["influxdb"]["url"] = ""
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)


def test_bucket_can_stand_in_for_database():
    cfg = _cfg()
    cfg["influxdb"]["database"] = ""
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)
    cfg["influxdb"]["bucket"] = "drive-tests"
    validate_ingest_config(cfg)


def test_log_level_must_be_known():
    cfg = _cfg()
    cfg["logging"]["level"] = "chatty"
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)


def test_section_must_be_mapping():
    cfg = _cfg()
    cfg["retry"] = [1, 2]
    with pytest.raises(ConfigError):
        validate_ingest_config(cfg)
