"""
Tests for Dose Keys
Tests parsing of persisted ids and "{planId}_{epochMs}" keys
"""

import pytest
from datetime import datetime

from tools.dose_keys import (
    InvalidDoseKey,
    PersistedDoseKey,
    VirtualDoseKey,
    parse_dose_key,
    pending_medicine_id,
    to_epoch_ms,
    virtual_dose_id,
)


SCHEDULED = datetime(2026, 10, 21, 20, 0)


class TestParseDoseKey:
    """Tests for dose id parsing"""

    @pytest.mark.unit
    def test_numeric_id_is_persisted_key(self):
        assert parse_dose_key("42") == PersistedDoseKey(42)

    @pytest.mark.unit
    def test_composite_id_is_virtual_key(self):
        key = parse_dose_key(f"7_{to_epoch_ms(SCHEDULED)}")

        assert isinstance(key, VirtualDoseKey)
        assert key.plan_id == 7
        assert key.scheduled_at == SCHEDULED

    @pytest.mark.unit
    def test_virtual_id_matches_parser(self):
        raw = virtual_dose_id(3, SCHEDULED)

        assert parse_dose_key(raw) == VirtualDoseKey(3, SCHEDULED)
        assert str(parse_dose_key(raw)) == raw

    @pytest.mark.unit
    @pytest.mark.parametrize("raw", ["", "abc", "7_", "_123", "7_abc", "x_123", "1_2_3", "-5"])
    def test_malformed_ids_raise(self, raw):
        with pytest.raises(InvalidDoseKey):
            parse_dose_key(raw)

    @pytest.mark.unit
    def test_out_of_range_epoch_is_invalid_time(self):
        with pytest.raises(InvalidDoseKey, match="Invalid scheduled time"):
            parse_dose_key("7_" + "9" * 30)

    @pytest.mark.unit
    def test_pending_prefix_is_not_a_dose_key(self):
        with pytest.raises(InvalidDoseKey):
            parse_dose_key(pending_medicine_id(5))
