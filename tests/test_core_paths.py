import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest import mock

from core import paths as core_paths


class CorePathsTests(unittest.TestCase):
    def test_layout_helpers_share_working_dir(self) -> None:
        base = Path("/srv/medialib")
        self.assertEqual(core_paths.get_library_db_path(base), base / "data" / "library.db")
        self.assertEqual(core_paths.get_images_dir(base), base / "cache" / "images")
        self.assertEqual(core_paths.get_catalog_cache_dir(base), base / "cache" / "catalog")
        self.assertEqual(core_paths.get_logs_dir(base), base / "logs")

    def test_ensure_working_dir_structure_creates_tree(self) -> None:
        with TemporaryDirectory() as tmp:
            base = Path(tmp) / "home"
            core_paths.ensure_working_dir_structure(base)
            self.assertTrue((base / "data").is_dir())
            self.assertTrue((base / "cache" / "images").is_dir())
            self.assertTrue((base / "cache" / "catalog").is_dir())

    def test_resolve_working_dir_honours_env(self) -> None:
        with TemporaryDirectory() as tmp:
            target = Path(tmp) / "custom"
            with mock.patch.dict(os.environ, {"MEDIALIB_HOME": str(target)}):
                resolved = core_paths.resolve_working_dir()
            self.assertEqual(resolved, target.resolve())
            self.assertTrue((resolved / "data").is_dir())


if __name__ == "__main__":
    unittest.main()
