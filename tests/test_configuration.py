import pytest
import yaml

from rangescan.configuration import (
    DEFAULT_CONFIG,
    ConfigError,
    load_config,
    save_config,
    validate_config,
)


def test_defaults_when_no_config_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert load_config() == DEFAULT_CONFIG
    assert not (tmp_path / "rangescan.yaml").exists()


def test_default_file_in_working_directory_is_used(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "rangescan.yaml").write_text("parallelism: 8\n")
    assert load_config()['parallelism'] == 8


def test_user_values_merge_over_defaults(tmp_path):
    path = tmp_path / "scan.yaml"
    path.write_text("parallelism: 16\ntest_identifiers:\n  - example.com\nverify_tls: false\n")
    config = load_config(str(path))
    assert config['parallelism'] == 16
    assert config['test_identifiers'] == ['example.com']
    assert config['verify_tls'] is False
    assert config['timeout_ms'] == DEFAULT_CONFIG['timeout_ms']


def test_single_identifier_string_becomes_list(tmp_path):
    path = tmp_path / "scan.yaml"
    path.write_text("test_identifiers: example.com\n")
    assert load_config(str(path))['test_identifiers'] == ['example.com']


def test_non_mapping_document_is_ignored(tmp_path):
    path = tmp_path / "scan.yaml"
    path.write_text("- just\n- a list\n")
    assert load_config(str(path)) == DEFAULT_CONFIG


def test_explicit_missing_file_is_an_error(tmp_path):
    with pytest.raises(ConfigError):
        load_config(str(tmp_path / "nope.yaml"))


def test_unparseable_file_is_an_error(tmp_path):
    path = tmp_path / "scan.yaml"
    path.write_text("parallelism: [unclosed\n")
    with pytest.raises(ConfigError):
        load_config(str(path))


@pytest.mark.parametrize("key,value", [
    ('parallelism', 0),
    ('parallelism', 'many'),
    ('parallelism', True),
    ('timeout_ms', -5),
    ('port', 0),
    ('port', 70000),
    ('high_water_mark', 0),
    ('test_identifiers', [''])
])
def test_validation_rejects_bad_values(key, value):
    config = DEFAULT_CONFIG.copy()
    config[key] = value
    with pytest.raises(ConfigError):
        validate_config(config)


def test_saved_config_has_header_and_loads_back(tmp_path):
    path = tmp_path / "out.yaml"
    config = dict(DEFAULT_CONFIG, parallelism=12, test_identifiers=['a.example'])
    save_config(config, str(path))
    text = path.read_text()
    assert text.startswith("# rangescan Configuration File\n")
    assert yaml.safe_load(text)['parallelism'] == 12
    assert load_config(str(path))['test_identifiers'] == ['a.example']
