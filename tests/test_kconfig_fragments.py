"""Tests for kconfig/fragments.py module."""

from kernelgen.kconfig.fragments import (
    ConfigFragment,
    apply_layer,
    fold_layers,
    parse_config,
    read_config,
    render_config,
    write_config,
)

SAMPLE_CONFIG = """\
#
# Automatically generated file; DO NOT EDIT.
#
CONFIG_64BIT=y
CONFIG_LOCALVERSION="-garnet"
# CONFIG_WERROR is not set
CONFIG_NR_CPUS=8
"""


class TestParseConfig:
    """Tests for parse_config."""

    def test_values(self):
        """Assignments and not-set markers are parsed in order."""
        values = parse_config(SAMPLE_CONFIG)
        assert list(values) == [
            "CONFIG_64BIT",
            "CONFIG_LOCALVERSION",
            "CONFIG_WERROR",
            "CONFIG_NR_CPUS",
        ]
        assert values["CONFIG_LOCALVERSION"] == '"-garnet"'
        assert values["CONFIG_WERROR"] is None
        assert values["CONFIG_NR_CPUS"] == "8"

    def test_ignores_noise(self):
        """Comments and junk lines are ignored."""
        assert parse_config("# comment\n\nnot a config line\n") == {}

    def test_repeated_symbol_last_wins(self):
        """A symbol assigned twice keeps its last value."""
        assert parse_config("CONFIG_A=y\nCONFIG_A=m\n") == {"CONFIG_A": "m"}


class TestRenderConfig:
    """Tests for render_config."""

    def test_render(self):
        """Values render back to .config syntax."""
        text = render_config({"CONFIG_A": "y", "CONFIG_B": None})
        assert text == "CONFIG_A=y\n# CONFIG_B is not set\n"

    def test_empty(self):
        """No values render to an empty file."""
        assert render_config({}) == ""


class TestFoldLayers:
    """Tests for fold_layers."""

    def test_last_layer_wins(self):
        """A later layer overrides an earlier assignment."""
        base = ConfigFragment("base", {"CONFIG_X": "A", "CONFIG_Y": "y"})
        feature = ConfigFragment("feature", {"CONFIG_X": "B"})
        folded = fold_layers([base, feature])
        assert folded["CONFIG_X"] == "B"
        assert folded["CONFIG_Y"] == "y"

    def test_override_keeps_position_and_appends(self):
        """Overrides stay in place; new symbols are appended."""
        base = ConfigFragment("base", {"CONFIG_A": "y", "CONFIG_B": "y"})
        layer = ConfigFragment("layer", {"CONFIG_C": "y", "CONFIG_A": None})
        assert list(fold_layers([base, layer]).items()) == [
            ("CONFIG_A", None),
            ("CONFIG_B", "y"),
            ("CONFIG_C", "y"),
        ]

    def test_no_layers(self):
        """Folding nothing gives nothing."""
        assert fold_layers([]) == {}


class TestFiles:
    """Tests for reading, writing and applying layers to files."""

    def test_missing_file_reads_empty(self, tmp_path):
        """A missing .config reads as empty."""
        assert read_config(tmp_path / ".config") == {}

    def test_write_then_read(self, tmp_path):
        """Written configs can be read back."""
        path = tmp_path / "out" / ".config"
        write_config(path, {"CONFIG_A": "y", "CONFIG_B": None})
        assert read_config(path) == {"CONFIG_A": "y", "CONFIG_B": None}

    def test_apply_layer(self, tmp_path):
        """apply_layer folds onto the existing file."""
        path = tmp_path / ".config"
        path.write_text("CONFIG_FORTIFY_SOURCE=y\nCONFIG_A=y\n")
        values = apply_layer(
            path, ConfigFragment.from_mapping("compat", {"CONFIG_FORTIFY_SOURCE": None})
        )
        assert values["CONFIG_FORTIFY_SOURCE"] is None
        assert "# CONFIG_FORTIFY_SOURCE is not set" in path.read_text()
        assert "CONFIG_A=y" in path.read_text()

    def test_fragment_from_file(self, tmp_path):
        """Fragments load from files."""
        path = tmp_path / "device.config"
        path.write_text(SAMPLE_CONFIG)
        fragment = ConfigFragment.from_file("device", path)
        assert len(fragment) == 4
        assert fragment.name == "device"
