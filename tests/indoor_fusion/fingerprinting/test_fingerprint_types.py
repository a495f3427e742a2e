"""Unit tests for fingerprint types and the fingerprint database."""

import json

import pytest

from indoor_fusion.fingerprinting import FingerprintDatabase, WifiFingerprint, average_scans


class TestWifiFingerprint:
    def test_access_points_read_only(self):
        fp = WifiFingerprint("lobby", {"aa": -50, "bb": -62}, 1.0, 2.0)

        assert fp.access_points["aa"] == -50.0
        with pytest.raises(TypeError):
            fp.access_points["cc"] = -70.0

    def test_source_mapping_copied(self):
        aps = {"aa": -50.0}
        fp = WifiFingerprint("lobby", aps, 1.0, 2.0)
        aps["bb"] = -60.0

        assert "bb" not in fp.access_points

    def test_empty_location_id_rejected(self):
        with pytest.raises(ValueError, match="location_id"):
            WifiFingerprint("", {"aa": -50.0}, 0.0, 0.0)

    def test_non_finite_coordinates_rejected(self):
        with pytest.raises(ValueError, match="finite"):
            WifiFingerprint("x", {"aa": -50.0}, float("nan"), 0.0)

    def test_dict_round_trip_is_json_compatible(self):
        fp = WifiFingerprint("room-1", {"aa": -50.0, "bb": -61.5}, 3.0, 4.0, timestamp=12.0)

        restored = WifiFingerprint.from_dict(json.loads(json.dumps(fp.to_dict())))

        assert restored == fp


class TestAverageScans:
    def test_mean_over_presence(self):
        averaged = average_scans([{"a": -50, "b": -70}, {"a": -54}, {"a": -52, "b": -72}])

        assert averaged == {"a": pytest.approx(-52.0), "b": pytest.approx(-71.0)}

    def test_rare_bssid_dropped(self):
        averaged = average_scans([{"a": -50, "b": -70}, {"a": -54}, {"a": -52}])

        assert averaged == {"a": pytest.approx(-52.0)}

    def test_no_scans(self):
        assert average_scans([]) == {}


class TestFingerprintDatabase:
    def test_put_get_remove(self):
        db = FingerprintDatabase()
        fp = WifiFingerprint("a", {"ap1": -50.0}, 0.0, 0.0)

        db.put(fp)
        assert len(db) == 1
        assert "a" in db
        assert db.get("a") is fp

        assert db.remove("a") is fp
        assert len(db) == 0
        assert db.get("a") is None
        assert db.remove("a") is None

    def test_put_replaces(self):
        db = FingerprintDatabase()
        db.put(WifiFingerprint("a", {"ap1": -50.0}, 0.0, 0.0))
        db.put(WifiFingerprint("a", {"ap1": -60.0}, 1.0, 1.0))

        assert len(db) == 1
        assert db.get("a").x == 1.0

    def test_put_rejects_other_types(self):
        with pytest.raises(TypeError):
            FingerprintDatabase().put({"location_id": "a"})

    def test_add_scans(self):
        db = FingerprintDatabase()
        fp = db.add_scans("corner", [{"ap1": -50, "ap2": -60}, {"ap1": -52, "ap2": -62}], 2.0, 3.0)

        assert db.get("corner") is fp
        assert fp.access_points == {"ap1": -51.0, "ap2": -61.0}

    def test_add_scans_without_readings(self):
        with pytest.raises(ValueError, match="corner"):
            FingerprintDatabase().add_scans("corner", [], 0.0, 0.0)

    def test_iteration_tolerates_mutation(self):
        db = FingerprintDatabase.from_fingerprints(
            WifiFingerprint(str(i), {"ap": -50.0 - i}, float(i), 0.0) for i in range(3)
        )

        for fp in db:
            db.remove(fp.location_id)

        assert len(db) == 0

    def test_dict_round_trip(self):
        db = FingerprintDatabase.from_fingerprints(
            [
                WifiFingerprint("a", {"ap1": -50.0}, 0.0, 0.0),
                WifiFingerprint("b", {"ap1": -60.0, "ap2": -70.0}, 5.0, 0.0),
            ]
        )

        restored = FingerprintDatabase.from_dict(db.to_dict())

        assert restored.fingerprints() == db.fingerprints()

    def test_clear(self):
        db = FingerprintDatabase()
        db.put(WifiFingerprint("a", {"ap1": -50.0}, 0.0, 0.0))
        db.clear()

        assert len(db) == 0
