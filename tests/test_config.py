from pathlib import Path

import pytest

from mockpix.config import load_config
from mockpix.errors import ConfigError


def test_defaults():
    config = load_config({})

    assert config.gemini_api_key is None
    assert config.enable_image_replacement is True
    assert config.description.style == "professional"
    assert config.description.locale == "italian"
    assert config.generation.max_concurrent_generations == 3
    assert config.generation.batch_delay == 1.0
    assert config.generation.generation_timeout == 120.0
    assert config.generation.warmup_retries == 0
    assert config.replacement.prefer_cdn_urls is True
    assert config.replacement.backup_original is True
    assert config.storage.root_dir == Path("outputs/images")


def test_environment_overrides():
    config = load_config({
        "GEMINI_API_KEY": "key",
        "MOCKPIX_ENABLE_IMAGES": "false",
        "MOCKPIX_MAX_CONCURRENT": "5",
        "MOCKPIX_BATCH_DELAY": "0.25",
        "MOCKPIX_GENERATION_TIMEOUT": "0",
        "MOCKPIX_STYLE": "Artistic",
        "MOCKPIX_LOCALE": "english",
        "MOCKPIX_STORAGE_DIR": "/tmp/images",
        "MOCKPIX_PUBLIC_BASE_URL": "https://bucket.test",
    })

    assert config.gemini_api_key == "key"
    assert config.enable_image_replacement is False
    assert config.generation.max_concurrent_generations == 5
    assert config.generation.batch_delay == 0.25
    assert config.generation.generation_timeout is None
    assert config.description.style == "artistic"
    assert config.description.locale is None
    assert config.storage.root_dir == Path("/tmp/images")
    assert config.storage.public_base_url == "https://bucket.test"


@pytest.mark.parametrize("env", [
    {"MOCKPIX_MAX_CONCURRENT": "many"},
    {"MOCKPIX_MAX_CONCURRENT": "0"},
    {"MOCKPIX_BATCH_DELAY": "-1"},
    {"MOCKPIX_ENABLE_IMAGES": "maybe"},
    {"MOCKPIX_STYLE": "baroque"},
])
def test_invalid_values(env):
    with pytest.raises(ConfigError):
        load_config(env)
