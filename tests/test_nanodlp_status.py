import pytest

from orion.backends.nanodlp.status import NanoFile, NanoStatus


def test_status_aliases_first_present_wins():
    status = NanoStatus.from_payload(
        {
            "printing": True,
            "paused": False,
            "Status": "Printing layer 5",
            "layer_id": 5,
            "LayersCount": 100,
            "StateCode": 5,
            "plateId": 9,
            "ResinLevelMm": "12.5",
            "temp": "41.2",
            "mcu": 38,
            "curing": True,
        }
    )
    assert status.printing is True
    assert status.status_message == "Printing layer 5"
    assert status.layer_id == 5
    assert status.layers_count == 100
    assert status.state_code == 5
    assert status.plate_id == 9
    assert status.resin_level == 12.5
    assert status.temp == 41.2
    assert status.mcu_temp == 38.0
    assert status.curing is True
    assert status.progress == pytest.approx(0.05)


def test_started_flag_counts_as_printing():
    assert NanoStatus.from_payload({"Started": 1}).printing is True
    assert NanoStatus.from_payload({"Printing": "true"}).printing is False


def test_current_height_ticks_convert_to_mm():
    status = NanoStatus.from_payload({"CurrentHeight": 320, "z": 99})
    assert status.z == pytest.approx(0.05)


def test_raw_z_is_normalized_when_no_height():
    assert NanoStatus.from_payload({"Z": 150_000}).z == pytest.approx(150.0)


def test_file_is_first_mapping_alias():
    status = NanoStatus.from_payload(
        {"file": "ignored", "Plate": {"Path": "folder/benchy.zip", "LayerCount": 250}}
    )
    assert status.file is not None
    assert status.file.path == "folder/benchy.zip"
    assert status.file.name == "benchy.zip"
    assert status.file.parent_path == "folder"
    assert status.file.layer_count == 250


def test_plate_parsing_units_and_flags():
    plate = NanoFile.from_payload(
        {
            "PlateID": 4,
            "Name": "cube",
            "PrintTime": "00:20:00",
            "UpdatedOn": 1700000000,
            "UsedMaterial": "2500",
            "LayerThickness": 50,
            "HasPreview": "yes",
            "Size": "1024",
        }
    )
    assert plate.path == "cube"
    assert plate.name == "cube"
    assert plate.print_time == 1200
    assert plate.last_modified == 1700000000
    assert plate.used_material == pytest.approx(2.5)
    assert plate.layer_height == pytest.approx(0.05)
    assert plate.preview_available is True
    assert plate.plate_id == 4
    assert plate.file_size == 1024


def test_file_entry_shape():
    entry = NanoFile.from_payload({"Path": "a.zip", "PlateID": 2, "PrintTime": 65}).to_file_entry()
    assert entry["file_data"]["path"] == "a.zip"
    assert entry["location_category"] == "Local"
    assert entry["plate_id"] == 2
    assert entry["print_time_formatted"] == "00:01:05"
