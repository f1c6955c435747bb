"""Tests for discovery/vendor.py"""
import pytest

from discovery.vendor import BUNDLED_OUI_PATH, VendorResolver, get_vendor_resolver, normalize_mac, oui_key


class TestNormalizeMac:
    """Tests for MAC address normalisation."""

    def test_already_normalized(self):
        assert normalize_mac("AA:BB:CC:DD:EE:FF") == "AA:BB:CC:DD:EE:FF"

    def test_lowercase(self):
        assert normalize_mac("aa:bb:cc:dd:ee:ff") == "AA:BB:CC:DD:EE:FF"

    def test_dash_separator(self):
        assert normalize_mac("AA-BB-CC-DD-EE-FF") == "AA:BB:CC:DD:EE:FF"

    def test_no_leading_zeros(self):
        """macOS arp prints single digit octets."""
        assert normalize_mac("a:b:c:d:e:f") == "0A:0B:0C:0D:0E:0F"

    def test_bare_hex(self):
        assert normalize_mac("aabbccddeeff") == "AA:BB:CC:DD:EE:FF"


class TestOuiKey:
    """Tests for OUI prefix extraction."""

    @pytest.mark.parametrize("mac", [
        "b8:27:eb:11:22:33",
        "B8-27-EB-11-22-33",
        "b827.eb11.2233",
        "B827EB112233",
        "B8:27:EB",
    ])
    def test_separators_and_case(self, mac):
        assert oui_key(mac) == "B8:27:EB"

    @pytest.mark.parametrize("mac", ["", "zz:zz:zz:00:00:00", "12:34", "abc"])
    def test_invalid(self, mac):
        assert oui_key(mac) is None


class TestVendorResolver:
    """Tests for OUI vendor lookup."""

    def test_lookup_known_prefix(self, vendor_resolver):
        assert vendor_resolver.lookup("00:03:93:aa:bb:cc") == "Apple, Inc."

    def test_lookup_normalizes_mac(self, vendor_resolver):
        """Lookup matches regardless of separator or case."""
        assert vendor_resolver.lookup("b8-27-eb-11-22-33") == "Raspberry Pi Foundation"
        assert vendor_resolver.lookup("B827.EB11.2233") == "Raspberry Pi Foundation"

    def test_vendor_with_commas(self, vendor_resolver):
        assert vendor_resolver.lookup("00:1D:0F:01:02:03") == "TP-LINK TECHNOLOGIES CO.,LTD."

    def test_lookup_unknown(self, vendor_resolver):
        assert vendor_resolver.lookup("02:00:00:11:22:33") is None

    def test_lookup_empty(self, vendor_resolver):
        assert vendor_resolver.lookup(None) is None
        assert vendor_resolver.lookup("") is None

    def test_malformed_rows_skipped(self, vendor_resolver):
        assert len(vendor_resolver) == 3

    def test_loads_lazily(self, sample_oui_csv):
        resolver = VendorResolver(bundled_path=sample_oui_csv, extra_paths=[])
        assert resolver._loaded is False
        resolver.lookup("00:03:93:00:00:01")
        assert resolver._loaded is True

    def test_missing_table_is_empty(self, temp_data_dir):
        resolver = VendorResolver(bundled_path=temp_data_dir / "missing.csv", extra_paths=[])
        assert resolver.lookup("00:03:93:00:00:01") is None
        assert len(resolver) == 0

    def test_ieee_table_merged(self, sample_oui_csv, temp_data_dir):
        """arp-scan tables add prefixes but never override the bundled names."""
        ieee = temp_data_dir / "ieee-oui.txt"
        ieee.write_text(
            "000393\tApple Computer\n"
            "ACDE48\tPrivate\n"
            "#comment\n",
            encoding="utf-8",
        )
        resolver = VendorResolver(bundled_path=sample_oui_csv, extra_paths=[str(ieee)])
        assert resolver.lookup("00:03:93:00:00:01") == "Apple, Inc."
        assert resolver.lookup("AC:DE:48:00:11:22") == "Private"

    def test_bundled_table_ships_with_package(self):
        resolver = VendorResolver(bundled_path=BUNDLED_OUI_PATH, extra_paths=[])
        assert BUNDLED_OUI_PATH.exists()
        assert resolver.lookup("B8:27:EB:00:00:00") == "Raspberry Pi Foundation"

    def test_global_resolver_is_shared(self):
        assert get_vendor_resolver() is get_vendor_resolver()
