"""
test_normalize.py - Unit tests for the snapshot normalizer.

Covers hashrate unit conversion (float and exact integer forms), float-like
counters, share difficulties, device identifiers, worker naming and the full
snapshot conversion.
"""

import json

import pytest

from factories import ADDRESS, make_snapshot, make_worker

from tracker.models import RawSnapshot
from tracker.normalize import (
    big_int_from_float_like,
    convert_hashrate_float,
    convert_hashrate_int,
    derive_worker_name,
    normalize_snapshot,
    normalize_user_agent,
    to_float,
)


# ── Hashrate conversion ───────────────────────────────────────────────────

class TestConvertHashrateFloat:

    @pytest.mark.parametrize("raw,expected", [
        ("2.5M", 2.5e6),
        ("1.5T", 1.5e12),
        ("1e3", 1000.0),
        ("42", 42.0),
        (12, 12.0),
        ("3k", 3000.0),
        ("3K", 3000.0),
    ])
    def test_units(self, raw, expected):
        assert convert_hashrate_float(raw) == pytest.approx(expected)

    def test_micro_suffix(self):
        assert convert_hashrate_float("370u") == pytest.approx(370e-6)

    @pytest.mark.parametrize("raw", ["", "abc", None, "1.5X", "inf", float("nan")])
    def test_unparsable_is_zero(self, raw):
        assert convert_hashrate_float(raw) == 0.0

    def test_integer_beyond_double_range_is_zero(self):
        assert convert_hashrate_float(10 ** 400) == 0.0
        assert convert_hashrate_float(-(10 ** 400)) == 0.0


class TestConvertHashrateInt:

    def test_exact_suffix_scaling(self):
        assert convert_hashrate_int("2.5M") == 2_500_000
        assert convert_hashrate_int("1.5T") == 1_500_000_000_000

    def test_below_one_is_zero(self):
        assert convert_hashrate_int("370u") == 0
        assert convert_hashrate_int("0.5") == 0
        assert convert_hashrate_int(-3) == 0

    def test_fraction_floored(self):
        assert convert_hashrate_int("1.9") == 1

    def test_large_integer_string_is_exact(self):
        assert convert_hashrate_int("12345678901234567890") == 12345678901234567890

    def test_garbage_is_zero(self):
        assert convert_hashrate_int("abc") == 0
        assert convert_hashrate_int(None) == 0


# ── Counters and difficulties ─────────────────────────────────────────────

class TestBigIntFromFloatLike:

    def test_float_truncated(self):
        assert big_int_from_float_like(190827.81) == "190827"

    def test_string_beyond_float_precision(self):
        assert big_int_from_float_like("9007199254740993.5") == "9007199254740993"

    def test_integer_inputs(self):
        assert big_int_from_float_like("123") == "123"
        assert big_int_from_float_like(123) == "123"

    def test_exponent_notation(self):
        assert big_int_from_float_like("1e3") == "1000"

    @pytest.mark.parametrize("raw", ["", "abc", None, True])
    def test_bad_input_is_zero(self, raw):
        assert big_int_from_float_like(raw) == "0"


class TestToFloat:

    def test_plain(self):
        assert to_float("52301.2") == pytest.approx(52301.2)
        assert to_float(3) == 3.0

    def test_leading_number(self):
        assert to_float("12abc") == 12.0

    def test_garbage(self):
        assert to_float("abc") == 0.0
        assert to_float(None) == 0.0

    def test_integer_beyond_double_range_is_zero(self):
        assert to_float(10 ** 400) == 0.0


# ── Device identifiers and worker names ───────────────────────────────────

class TestNormalizeUserAgent:

    @pytest.mark.parametrize("raw,expected", [
        ("cgminer/4.11.1", "cgminer"),
        ("NerdMiner V2", "NerdMiner"),
        ("  bitaxe/2.0 extra", "bitaxe"),
        ("ab\x07c", "abc"),
        ("", ""),
        (None, ""),
    ])
    def test_tokens(self, raw, expected):
        assert normalize_user_agent(raw) == expected

    def test_non_ascii_dropped(self):
        assert normalize_user_agent("mínér") == "mnr"

    def test_capped_length(self):
        assert len(normalize_user_agent("x" * 300)) == 256


class TestDeriveWorkerName:

    def test_bare_address(self):
        assert derive_worker_name(ADDRESS, ADDRESS) == ""

    def test_dot_and_underscore_separators(self):
        assert derive_worker_name(f"{ADDRESS}.rig1", ADDRESS) == "rig1"
        assert derive_worker_name(f"{ADDRESS}_rig1", ADDRESS) == "rig1"

    def test_only_first_separator_consumed(self):
        assert derive_worker_name("abc.rig.1", "abc") == "rig.1"

    def test_foreign_name_verbatim(self):
        assert derive_worker_name("other.rig", ADDRESS) == "other.rig"


# ── Full snapshot ─────────────────────────────────────────────────────────

class TestNormalizeSnapshot:

    def test_fields(self):
        payload = make_snapshot(
            workers=[make_worker("rig1", shares=190827.81, started=1699990000),
                     make_worker("", useragent="")],
            lastshare=1700000123,
            authorised=1700000000.0,
        )
        snap = normalize_snapshot(ADDRESS, RawSnapshot.model_validate(payload))

        assert snap.authorised == "1700000000"
        assert snap.last_share_epoch == "1700000123"
        assert snap.last_share_seconds == 1700000123
        assert snap.worker_count == 2
        assert snap.hashrates.hashrate_1m == pytest.approx(3e12)
        assert snap.shares == pytest.approx(2000.0)

        rig1, bare = snap.workers
        assert rig1.name == "rig1"
        assert rig1.shares == "190827"
        assert rig1.started == "1699990000"
        assert rig1.user_agent == "cgminer"
        assert rig1.user_agent_raw == "cgminer/4.11.1"
        assert rig1.hashrates.hashrate_1m == pytest.approx(1.5e12)
        assert bare.name == ""
        assert bare.user_agent == ""
        assert bare.user_agent_raw is None

    def test_unknown_fields_ignored(self):
        payload = make_snapshot()
        payload["extra"] = {"nested": True}
        snap = normalize_snapshot(ADDRESS, RawSnapshot.model_validate(payload))
        assert snap.address == ADDRESS

    def test_deterministic(self):
        raw = RawSnapshot.model_validate(make_snapshot())
        assert normalize_snapshot(ADDRESS, raw) == normalize_snapshot(ADDRESS, raw)

    def test_oversized_json_integers(self):
        # JSON has no integer size limit; such values must not abort the cycle
        huge = "1" + "0" * 400
        body = json.loads(
            json.dumps(make_snapshot(workers=[make_worker("rig1")]))
            .replace('"1.5T"', huge)
            .replace('"bestshare": 52301.2', f'"bestshare": {huge}', 1)
        )
        snap = normalize_snapshot(ADDRESS, RawSnapshot.model_validate(body))
        assert snap.workers[0].hashrates.hashrate_1m == 0.0
        assert snap.best_share == 0.0
