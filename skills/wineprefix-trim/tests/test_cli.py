import io
import json
import os
import sys
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from typing import List, Tuple
from unittest.mock import patch

sys.path.append(os.path.join(os.path.dirname(__file__), "../scripts"))

import closure
from cli.config import load_config, resolve_out_dir, resolve_setting
from cli.main import main, transform_file
from sections import EmitContractError, RewriteError

WINE_INF = (
    "[DefaultInstall]\n"
    "AddReg=Classes\n"
    "HKLM,Software\\Wine\\winemenubuilder,,2\n"
    "[Tapi]\n"
    "HKLM,Software\\Tapi\n"
)


class CliTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp = tempfile.TemporaryDirectory()
        self.root = Path(self._temp.name)
        self._cwd = os.getcwd()
        os.chdir(self.root)

    def tearDown(self) -> None:
        os.chdir(self._cwd)
        self._temp.cleanup()

    def run_main(self, argv: List[str]) -> Tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        with redirect_stdout(stdout), redirect_stderr(stderr):
            code = main(["--out", str(self.root / "out")] + argv)
        return code, stdout.getvalue(), stderr.getvalue()


class TestRewriteCommand(CliTestCase):
    def test_rewrite_in_place(self):
        path = self.root / "wine.inf"
        path.write_text(WINE_INF, encoding="utf-8")
        code, stdout, stderr = self.run_main(["rewrite", "--file", str(path)])
        self.assertEqual(code, 0)
        self.assertEqual(
            path.read_text(encoding="utf-8"),
            "[DefaultInstall]\nAddReg=Classes\n[Tapi]\nHKLM,Software\\Tapi\n",
        )
        self.assertIn("-HKLM,Software\\Wine\\winemenubuilder,,2", stdout)
        self.assertTrue((self.root / "out" / "wine.inf.diff").exists())
        self.assertIn("[done] patched wine.inf", stderr)

    def test_dry_run_leaves_file(self):
        path = self.root / "wine.inf"
        path.write_text(WINE_INF, encoding="utf-8")
        code, stdout, _ = self.run_main(["rewrite", "--file", str(path), "--dry-run", "--no-diff"])
        self.assertEqual(code, 0)
        self.assertEqual(stdout, "")
        self.assertEqual(path.read_text(encoding="utf-8"), WINE_INF)

    def test_config_file_enables_optimize(self):
        (self.root / ".wineprefix-trim.json").write_text(json.dumps({"optimize": True}), encoding="utf-8")
        path = self.root / "wine.inf"
        path.write_text(WINE_INF, encoding="utf-8")
        code, _, _ = self.run_main(["rewrite", "--file", str(path), "--no-diff"])
        self.assertEqual(code, 0)
        self.assertEqual(path.read_text(encoding="utf-8"), "[DefaultInstall]\nAddReg=Classes\n[Tapi]\n")

    def test_flag_overrides_config(self):
        (self.root / ".wineprefix-trim.json").write_text(json.dumps({"optimize": True}), encoding="utf-8")
        path = self.root / "wine.inf"
        path.write_text(WINE_INF, encoding="utf-8")
        code, _, _ = self.run_main(["rewrite", "--file", str(path), "--no-optimize", "--no-diff"])
        self.assertEqual(code, 0)
        self.assertIn("HKLM,Software\\Tapi\n", path.read_text(encoding="utf-8"))

    def test_crlf_file_is_rejected(self):
        path = self.root / "wine.inf"
        original = WINE_INF.replace("\n", "\r\n").encode("utf-8")
        path.write_bytes(original)
        code, _, stderr = self.run_main(["rewrite", "--file", str(path)])
        self.assertEqual(code, 1)
        self.assertIn("linux-style newlines", stderr)
        self.assertEqual(path.read_bytes(), original)

    def test_missing_command(self):
        code, stdout, _ = self.run_main([])
        self.assertEqual(code, 1)
        self.assertIn("usage", stdout)


class TestTransformFile(CliTestCase):
    def test_failure_leaves_file_untouched(self):
        path = self.root / "x.inf"
        path.write_bytes(b"[A]\nx\n")

        def failing(buffer: bytes) -> bytes:
            raise ValueError("marker not found")

        with self.assertRaises(RewriteError) as ctx:
            transform_file(path, failing)
        self.assertIn("x.inf", str(ctx.exception))
        self.assertEqual(path.read_bytes(), b"[A]\nx\n")

    def test_contract_error_propagates(self):
        path = self.root / "x.inf"
        path.write_bytes(b"[A]\nx\n")

        def broken(buffer: bytes) -> bytes:
            raise EmitContractError("emitted empty section/line")

        with self.assertRaises(EmitContractError):
            transform_file(path, broken)

    def test_writes_result(self):
        path = self.root / "x.inf"
        path.write_bytes(b"[A]\nx\n")
        before, after = transform_file(path, lambda buffer: buffer + b"y\n")
        self.assertEqual(before, b"[A]\nx\n")
        self.assertEqual(after, b"[A]\nx\ny\n")
        self.assertEqual(path.read_bytes(), after)


class TestPruneCommand(CliTestCase):
    def test_prune_from_json(self):
        deps = self.root / "deps.json"
        deps.write_text(json.dumps({"P": ["Q"], "Q": ["X"], "R": []}), encoding="utf-8")
        code, stdout, _ = self.run_main(["prune", "--deps", str(deps)])
        self.assertEqual(code, 0)
        self.assertIn("round 1: removed Q (missing: X)", stdout)
        self.assertIn("round 2: removed P (missing: Q)", stdout)
        self.assertIn("retained: 1 modules, removed: 2 in 2 rounds", stdout)
        report = json.loads((self.root / "out" / "prune-report.json").read_text(encoding="utf-8"))
        self.assertEqual(report["retained"], ["R"])
        self.assertEqual(report["rounds"], 2)
        self.assertEqual(report["removals"][0], {"name": "Q", "round": 1, "missing": ["X"]})

    def test_prune_json_format(self):
        deps = self.root / "deps.json"
        deps.write_text(json.dumps({"a": ["a"]}), encoding="utf-8")
        code, stdout, _ = self.run_main(["--verbose", "prune", "--deps", str(deps), "--format", "json"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(stdout), {"retained": ["a"], "removals": [], "rounds": 0})

    def test_prune_apply_deletes_canonical_files(self):
        lib = self.root / "lib"
        lib.mkdir()
        imports = {"Foo.DLL": ["missing.dll"], "bar.dll": ["FOO.dll"], "kernel32.dll": []}
        for name in imports:
            (lib / name).write_bytes(b"MZ")
        real_scan = closure.scan_module_dir

        def fake_scan(directory, **kwargs):
            return real_scan(
                directory,
                extractor=lambda path: imports[path.name],
                **kwargs,
            )

        with patch("cli.main.scan_module_dir", side_effect=fake_scan):
            code, stdout, stderr = self.run_main(["--verbose", "prune", "--dir", str(lib), "--apply"])
        self.assertEqual(code, 0)
        self.assertEqual(sorted(path.name for path in lib.iterdir()), ["kernel32.dll"])
        self.assertIn("removing iteration=1 name=Foo.DLL broken_deps=missing.dll", stderr)

    def test_apply_requires_dir(self):
        deps = self.root / "deps.json"
        deps.write_text("{}", encoding="utf-8")
        with redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                main(["prune", "--deps", str(deps), "--apply"])
        self.assertEqual(ctx.exception.code, 2)

    def test_bad_json_is_reported(self):
        deps = self.root / "deps.json"
        deps.write_text("[]", encoding="utf-8")
        code, _, stderr = self.run_main(["prune", "--deps", str(deps)])
        self.assertEqual(code, 1)
        self.assertIn("expected a JSON object", stderr)

    def test_config_extensions_without_dot_scan_modules(self):
        lib = self.root / "lib"
        lib.mkdir()
        (lib / "a.dll").write_bytes(b"MZ")
        (lib / "b.exe").write_bytes(b"MZ")
        (self.root / ".wineprefix-trim.json").write_text(json.dumps({"extensions": ["dll"]}), encoding="utf-8")
        scanned = []
        real_scan = closure.scan_module_dir

        def fake_scan(directory, **kwargs):
            return real_scan(directory, extractor=lambda path: scanned.append(path.name) or [], **kwargs)

        with patch("cli.main.scan_module_dir", side_effect=fake_scan):
            code, _, _ = self.run_main(["prune", "--dir", str(lib)])
        self.assertEqual(code, 0)
        self.assertEqual(scanned, ["a.dll"])


class TestConfig(unittest.TestCase):
    def test_load_config(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.json"
            path.write_text(
                json.dumps({"optimize": True, "arch": " arm64 ", "exclude": "x.exe", "other": 1}),
                encoding="utf-8",
            )
            warnings: List[str] = []
            config = load_config(path, warnings)
        self.assertEqual(config, {"optimize": True, "arch": "arm64", "exclude": ["x.exe"]})
        self.assertEqual(warnings, [])

    def test_extensions_are_dot_prefixed(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.json"
            path.write_text(json.dumps({"extensions": ["dll", ".EXE", " Drv "]}), encoding="utf-8")
            config = load_config(path, [])
        self.assertEqual(config["extensions"], [".dll", ".exe", ".drv"])

    def test_invalid_config_warns(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "config.json"
            path.write_text("{not json", encoding="utf-8")
            warnings: List[str] = []
            self.assertEqual(load_config(path, warnings), {})
            self.assertEqual(len(warnings), 1)
            path.write_text("[1]", encoding="utf-8")
            warnings = []
            self.assertEqual(load_config(path, warnings), {})
            self.assertIn("expected a JSON object", warnings[0])
        self.assertEqual(load_config(None, []), {})

    def test_resolve_setting(self):
        self.assertEqual(resolve_setting(False, {"optimize": True}, "optimize"), False)
        self.assertEqual(resolve_setting(None, {"optimize": True}, "optimize"), True)
        self.assertEqual(resolve_setting(None, {}, "arch"), "amd64")

    def test_resolve_out_dir(self):
        root = Path("/tmp/ws")
        self.assertEqual(resolve_out_dir("/abs/out", workspace_root=root), Path("/abs/out"))
        self.assertEqual(
            resolve_out_dir("workspace/reports", workspace_root=root),
            (root / "reports").resolve(),
        )
        self.assertEqual(resolve_out_dir(None, workspace_root=root), (root / "wineprefix-trim").resolve())


if __name__ == "__main__":
    unittest.main()
