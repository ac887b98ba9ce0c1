"""Tests for chat_loyalty.cheers module."""

from __future__ import annotations

import pytest

from chat_loyalty.cheers import CHEER_PREFIXES, scan_cheers


class TestScanCheers:
    def test_single_cheer(self):
        assert scan_cheers("Kappa100") >= 100

    def test_multiple_cheers_sum(self):
        assert scan_cheers("Kappa100 PogChamp50") == 150

    def test_cheer_inside_sentence(self):
        assert scan_cheers("great stream Cheer25 keep going") == 25

    def test_no_cheers(self):
        assert scan_cheers("hello everyone") == 0

    def test_prefix_without_amount_ignored(self):
        assert scan_cheers("Kappa Kappa") == 0

    def test_malformed_suffix_ignored(self):
        assert scan_cheers("Cheer1x Cheer 5 Cheer10") == 10

    def test_out_of_range_suffix_ignored(self):
        assert scan_cheers("Kappa99999999999999999999 Kappa100") == 100

    def test_very_long_suffix_ignored(self):
        assert scan_cheers("Cheer" + "9" * 5000 + " Cheer25") == 25

    def test_case_sensitive(self):
        assert scan_cheers("kappa100 CHEER100") == 0

    def test_command_is_not_a_cheer(self):
        assert scan_cheers("!cheer 100") == 0

    def test_negative_suffix_counts(self):
        """Signed suffixes parse; only a positive total counts as a cheer."""
        assert scan_cheers("Cheer100 Cheer-40") == 60
        assert scan_cheers("Cheer-40") == -40

    @pytest.mark.parametrize("prefix", ["BleedPurple", "RIPCheer", "Shamrock", "4Head", "bday"])
    def test_known_prefixes(self, prefix: str):
        assert prefix in CHEER_PREFIXES
        assert scan_cheers(f"{prefix}7") == 7

    def test_custom_prefixes(self):
        assert scan_cheers("Foo3 Kappa3", prefixes=("Foo",)) == 3
