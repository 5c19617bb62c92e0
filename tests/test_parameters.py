"""Tests for game parameter configuration."""

import json

import pytest

from emergency.core.entities import PatientType, RoomTier
from emergency.core.parameters import (
    DEFAULT_HOURLY_WEIGHTS,
    GameParameters,
    load_parameters,
    save_parameters,
    validate_hourly_weights,
)


class TestDefaults:
    """Test classroom baseline values."""

    def test_default_values(self):
        params = GameParameters()
        assert params.daily_arrivals == {PatientType.A: 21, PatientType.B: 38, PatientType.C: 41}
        assert params.total_daily_arrivals == 100
        assert params.revenue_per_patient[PatientType.A] == 2000
        assert params.waiting_cost_per_hour[PatientType.C] == 25
        assert params.risk_event_cost[PatientType.A] == 10000
        assert params.max_waiting_room == 15
        assert params.max_staffing_budget == 42000
        assert params.room_costs[RoomTier.MEDIUM] == 3000
        assert params.time_sensitive_waiting_harms is False
        assert params.currency_symbol == "$"

    def test_default_weights_valid(self):
        assert validate_hourly_weights(DEFAULT_HOURLY_WEIGHTS)

    def test_instances_do_not_share_dicts(self):
        a = GameParameters()
        b = GameParameters()
        a.daily_arrivals[PatientType.A] = 99
        assert b.daily_arrivals[PatientType.A] == 21


class TestNormalisation:
    """Test key normalisation and coercion."""

    def test_string_keys(self):
        """String keys become enums."""
        params = GameParameters(room_costs={"high": 1, "medium": 2, "low": 3})
        assert params.room_costs[RoomTier.HIGH] == 1
        assert all(isinstance(k, RoomTier) for k in params.room_costs)

    def test_whole_floats_become_ints(self):
        params = GameParameters(revenue_per_patient={"A": 2000.0, "B": 1200, "C": 500})
        assert params.revenue_per_patient[PatientType.A] == 2000
        assert isinstance(params.revenue_per_patient[PatientType.A], int)

    def test_risk_rolls_become_sorted_tuples(self):
        params = GameParameters(risk_event_rolls={"A": [20, 19], "B": [20], "C": [20, 18, 19]})
        assert params.risk_event_rolls[PatientType.C] == (18, 19, 20)


class TestValidation:
    """Test invalid configuration raises ValueError."""

    def test_fractional_money(self):
        with pytest.raises(ValueError):
            GameParameters(revenue_per_patient={"A": 10.5, "B": 1, "C": 1})

    def test_negative_cost(self):
        with pytest.raises(ValueError):
            GameParameters(waiting_cost_per_hour={"A": -1, "B": 1, "C": 1})

    def test_missing_type(self):
        with pytest.raises(ValueError):
            GameParameters(daily_arrivals={"A": 1, "B": 1})

    def test_bad_roll(self):
        with pytest.raises(ValueError):
            GameParameters(risk_event_rolls={"A": [21], "B": [20], "C": [20]})

    def test_zero_treatment_time(self):
        with pytest.raises(ValueError):
            GameParameters(treatment_times={"A": 0, "B": 1, "C": 1})

    def test_wrong_weight_length(self):
        with pytest.raises(ValueError):
            GameParameters(hourly_weights=[1.0] * 23)

    def test_bad_per_type_curve(self):
        curve = [1 / 24] * 24
        with pytest.raises(ValueError):
            GameParameters(hourly_weights_by_type={"A": curve, "B": curve, "C": curve[:10]})

    def test_unknown_key(self):
        with pytest.raises(ValueError, match="Unknown parameter keys"):
            GameParameters.from_dict({"daily_arrivals": {"A": 1, "B": 1, "C": 1}, "bogus": 1})

    def test_validate_hourly_weights(self):
        assert not validate_hourly_weights([0.5] * 24)
        assert not validate_hourly_weights([1 / 23] * 23)


class TestSerialisation:
    """Test dict and file round trips."""

    def test_dict_round_trip(self):
        params = GameParameters(max_waiting_room=5, time_sensitive_waiting_harms=True)
        restored = GameParameters.from_dict(params.to_dict())
        assert restored == params

    def test_to_dict_is_json_compatible(self):
        data = GameParameters().to_dict()
        assert json.loads(json.dumps(data)) == data

    def test_json_file(self, tmp_path):
        params = GameParameters(max_staffing_budget=30000)
        path = tmp_path / "params.json"
        save_parameters(params, path)
        assert load_parameters(path) == params

    def test_yaml_file(self, tmp_path):
        pytest.importorskip("yaml")
        params = GameParameters(currency_symbol="£")
        path = tmp_path / "presets" / "params.yaml"
        save_parameters(params, path)
        assert load_parameters(path) == params

    def test_partial_file_uses_defaults(self, tmp_path):
        path = tmp_path / "partial.json"
        path.write_text(json.dumps({"max_waiting_room": 3}))
        params = load_parameters(path)
        assert params.max_waiting_room == 3
        assert params.total_daily_arrivals == 100

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_parameters(tmp_path / "nope.json")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "params.toml"
        path.write_text("")
        with pytest.raises(ValueError):
            load_parameters(path)
