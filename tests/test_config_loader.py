from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from core.config_loader import find_config_file, load_config_file, merge_mappings, normalize_string_list


class ConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_load_toml(self) -> None:
        path = self.root / "nightly.toml"
        path.write_text(
            textwrap.dedent(
                """
                [app]
                id = "org.example.Demo"
                """
            )
        )
        self.assertEqual(load_config_file(path), {"app": {"id": "org.example.Demo"}})

    def test_load_json(self) -> None:
        path = self.root / "nightly.json"
        path.write_text('{"builder": {"repo": "out"}}', encoding="utf-8")
        self.assertEqual(load_config_file(path), {"builder": {"repo": "out"}})

    def test_load_yaml(self) -> None:
        path = self.root / "nightly.yaml"
        path.write_text("app:\n  module: demo\n", encoding="utf-8")
        self.assertEqual(load_config_file(path), {"app": {"module": "demo"}})

    def test_empty_yaml_is_empty_mapping(self) -> None:
        path = self.root / "nightly.yml"
        path.write_text("", encoding="utf-8")
        self.assertEqual(load_config_file(path), {})

    def test_invalid_yaml_raises_value_error(self) -> None:
        path = self.root / "nightly.yaml"
        path.write_text("app: [unclosed\n", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_config_file(path)

    def test_unsupported_suffix(self) -> None:
        path = self.root / "nightly.ini"
        path.write_text("[app]\n")
        with self.assertRaises(ValueError):
            load_config_file(path)

    def test_non_mapping_root(self) -> None:
        path = self.root / "nightly.json"
        path.write_text("[1, 2]")
        with self.assertRaises(TypeError):
            load_config_file(path)

    def test_find_config_file(self) -> None:
        self.assertIsNone(find_config_file(self.root, "nightly"))
        path = self.root / "nightly.toml"
        path.write_text("")
        self.assertEqual(find_config_file(self.root, "nightly"), path)

    def test_find_config_file_rejects_duplicates(self) -> None:
        (self.root / "nightly.toml").write_text("")
        (self.root / "nightly.json").write_text("{}")
        with self.assertRaises(ValueError) as ctx:
            find_config_file(self.root, "nightly")
        self.assertIn("Multiple configuration files", str(ctx.exception))

    def test_merge_mappings_is_deep(self) -> None:
        base = {"app": {"id": "a", "module": "m"}, "builder": {"repo": "repo"}}
        overlay = {"app": {"id": "b"}}
        merged = merge_mappings(base, overlay)
        self.assertEqual(merged["app"], {"id": "b", "module": "m"})
        self.assertEqual(merged["builder"], {"repo": "repo"})
        self.assertEqual(base["app"]["id"], "a")

    def test_normalize_string_list(self) -> None:
        self.assertEqual(normalize_string_list(None), [])
        self.assertEqual(normalize_string_list(" sudo "), ["sudo"])
        self.assertEqual(normalize_string_list(["sudo", "", " -n "]), ["sudo", "-n"])
        with self.assertRaises(TypeError):
            normalize_string_list([1], field_name="builder.elevate")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
