"""Tests for repository scanning and feature detection."""

from pathlib import Path

import pytest

from reposcope.scanner import (
    categorize_file,
    detect_features,
    iter_source_files,
    language_stats,
    scan_repository,
)


@pytest.mark.parametrize("path,bucket", [
    ("src/features/users/routes.ts", "api"),
    ("src/users/users.controller.ts", "api"),
    ("app/views.py", "api"),
    ("src/users/user.routes.test.ts", "tests"),
    ("src/__tests__/helpers.ts", "tests"),
    ("tests/test_models.py", "tests"),
    ("pkg/handler_test.go", "tests"),
    ("src/users/user.entity.ts", "schema"),
    ("db/001_init.sql", "schema"),
    ("prisma/schema.prisma", "schema"),
    ("src/mocks/users.ts", "fixtures"),
    ("src/settings.py", "config"),
    ("src/utils/format.ts", "other"),
])
def test_categorize_file(path, bucket):
    assert categorize_file(path) == bucket


class TestDetectFeatures:
    """Feature discovery from directory layouts."""

    def test_sample_repository(self, sample_repo_path: Path):
        features = detect_features(sample_repo_path)

        assert [f.name for f in features] == ["orders", "users"]
        orders = features[0]
        assert orders.base_path == "src/features/orders"
        assert orders.files.api == ["src/features/orders/handlers.ts"]
        assert orders.files.schema == ["src/features/orders/migration.sql"]
        assert orders.files.tests == ["src/features/orders/orders.test.ts"]
        assert orders.files.other == ["src/features/orders/utils.ts"]
        assert orders.contract_score == 2.1

    def test_root_fallback(self, write_file, temp_dir):
        write_file("app.py", "print('hi')\n")
        write_file("lib/util.py", "X = 1\n")

        features = detect_features(temp_dir)

        assert len(features) == 1
        assert features[0].name == temp_dir.name
        assert features[0].base_path == "."
        assert features[0].files.other == ["app.py", "lib/util.py"]

    def test_directories_without_contract_files_are_ignored(self, write_file, temp_dir):
        write_file("src/features/users/routes.ts", "export {};\n")
        write_file("src/features/docs/readme.test.ts", "test('x', () => {});\n")

        assert [f.name for f in detect_features(temp_dir)] == ["users"]

    def test_nested_patterns_fold_into_parent(self, write_file, temp_dir):
        write_file("packages/web/src/routes.ts", "export {};\n")
        write_file("packages/web/index.ts", "export {};\n")

        features = detect_features(temp_dir)

        assert [(f.name, f.base_path) for f in features] == [("web", "packages/web")]
        assert features[0].files.api == ["packages/web/src/routes.ts"]

    def test_empty_repository(self, temp_dir):
        assert detect_features(temp_dir) == []


class TestScan:
    """Source walking, language statistics and the full scan."""

    def test_skipped_directories(self, write_file, temp_dir):
        write_file("src/app.ts", "")
        write_file("node_modules/pkg/index.js", "")
        write_file(".cache/x.py", "")
        write_file("README.md", "")

        names = [p.relative_to(temp_dir).as_posix() for p in iter_source_files(temp_dir)]

        assert names == ["src/app.ts"]

    def test_language_stats(self, write_file):
        python = write_file("a.py", "a\nb\nc")
        typescript = write_file("b.ts", "x")

        stats, total = language_stats([python, typescript])

        assert total == 4
        assert [(s.language, s.files, s.lines, s.percentage) for s in stats] == [
            ("python", 1, 3, 75.0),
            ("typescript", 1, 1, 25.0),
        ]

    def test_scan_repository(self, sample_repo_path: Path):
        result = scan_repository(sample_repo_path)

        assert result.total_files == 5
        assert [s.language for s in result.languages] == ["typescript"]
        assert result.languages[0].percentage == 100.0
        assert [f.name for f in result.features] == ["orders", "users"]

    def test_missing_repository(self, temp_dir):
        with pytest.raises(FileNotFoundError):
            scan_repository(temp_dir / "missing")
