import json

import pytest

from panostitch.config import Settings


def test_defaults():
    settings = Settings()
    assert settings.pano is False
    assert settings.connectivity == "ring"
    assert settings.h_factor_rounds == 3
    assert settings.workers >= 1


def test_round_trip_through_json(tmp_path):
    path = tmp_path / "settings.json"
    settings = Settings()
    settings.pano = True
    settings.ransac = {"ransac_reproj_threshold": 6.0}
    settings.save_to_file(str(path))

    loaded = Settings(str(path))
    assert loaded.get_config_dict() == settings.get_config_dict()


def test_unknown_keys_are_ignored(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"connectivity": "pairwise", "colour": "blue"}))

    settings = Settings(str(path))
    assert settings.connectivity == "pairwise"
    assert not hasattr(settings, "colour")


def test_invalid_values_are_rejected(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"projection": "spherical"}))
    with pytest.raises(ValueError):
        Settings(str(path))


def test_collaborator_sections_merge_over_current_values(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"ransac": {"min_inliers": 20}}))

    settings = Settings()
    settings.ransac = {"ransac_reproj_threshold": 6.0}
    settings.load_from_file(str(path))
    assert settings.ransac == {"ransac_reproj_threshold": 6.0, "min_inliers": 20}


def test_unknown_keys_are_logged(tmp_path, caplog):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"colour": "blue"}))

    with caplog.at_level("WARNING", logger="panostitch.config"):
        Settings(str(path))
    assert "colour" in caplog.text


def test_config_dict_is_a_copy():
    settings = Settings()
    settings.get_config_dict()["matcher"]["ratio_threshold"] = 0.5
    assert settings.matcher == {}
