from pathlib import Path

import pytest

import tscodemap.project as project_mod
from tscodemap import (
    ConfigurationInvalid,
    ConfigurationMissing,
    ProjectConfig,
    load_project,
)


def _write(root: Path, rel: str, text: str = "export const a = 1;\n") -> None:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _paths(project):
    return [f.path.as_posix() for f in project.files]


def test_missing_config_raises(tmp_path: Path) -> None:
    _write(tmp_path, "index.ts")
    with pytest.raises(ConfigurationMissing, match="tsconfig.json"):
        load_project(tmp_path)


def test_missing_config_is_a_file_not_found_error(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_project(tmp_path / "does-not-exist")


def test_invalid_config_raises(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", "[1, 2")
    with pytest.raises(ConfigurationInvalid):
        load_project(tmp_path)


def test_non_object_config_raises(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", "[]")
    with pytest.raises(ConfigurationInvalid, match="JSON object"):
        load_project(tmp_path)


def test_jsonc_comments_and_trailing_commas(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "tsconfig.json",
        """
        {
            // compiler settings
            "compilerOptions": {
                "outDir": "dist", /* build output */
            },
            "include": ["src",],
        }
        """,
    )
    _write(tmp_path, "src/index.ts")
    project = load_project(tmp_path)
    assert project.compiler_options == {"outDir": "dist"}
    assert _paths(project) == ["src/index.ts"]


def test_strip_jsonc_keeps_comment_markers_inside_strings() -> None:
    text = '{"url": "http://x/*y*/", "a": [1,]}'
    assert project_mod._strip_jsonc(text) == '{"url": "http://x/*y*/", "a": [1]}'


def test_default_include_takes_every_typescript_file_sorted(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", "{}")
    _write(tmp_path, "z.ts")
    _write(tmp_path, "a/b.ts")
    _write(tmp_path, "a/c.tsx", "export const C = () => <div />;\n")
    _write(tmp_path, "notes.md", "# notes\n")
    _write(tmp_path, "legacy.js", "var x = 1;\n")

    assert _paths(load_project(tmp_path)) == ["a/b.ts", "a/c.tsx", "z.ts"]


def test_allow_js_adds_javascript_files(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", '{"compilerOptions": {"allowJs": true}}')
    _write(tmp_path, "index.ts")
    _write(tmp_path, "legacy.js", "var x = 1;\n")

    assert _paths(load_project(tmp_path)) == ["index.ts", "legacy.js"]


def test_include_and_exclude_patterns(tmp_path: Path) -> None:
    _write(
        tmp_path,
        "tsconfig.json",
        '{"include": ["src/**/*"], "exclude": ["**/*.spec.ts", "src/generated"]}',
    )
    _write(tmp_path, "src/app.ts")
    _write(tmp_path, "src/app.spec.ts")
    _write(tmp_path, "src/nested/util.spec.ts")
    _write(tmp_path, "src/generated/api.ts")
    _write(tmp_path, "scripts/build.ts")

    assert _paths(load_project(tmp_path)) == ["src/app.ts"]


def test_files_list_without_include(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", '{"files": ["main.ts", "missing.ts"]}')
    _write(tmp_path, "main.ts")
    _write(tmp_path, "other.ts")

    assert _paths(load_project(tmp_path)) == ["main.ts"]


def test_node_modules_and_out_dir_are_excluded(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", '{"compilerOptions": {"outDir": "build"}}')
    _write(tmp_path, "index.ts")
    _write(tmp_path, "node_modules/pkg/index.d.ts", "export declare const x: number;\n")
    _write(tmp_path, "build/index.ts")

    assert _paths(load_project(tmp_path)) == ["index.ts"]


def test_extra_exclude_from_loader_config(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", "{}")
    _write(tmp_path, "index.ts")
    _write(tmp_path, "vendor/lib.ts")

    project = load_project(tmp_path, ProjectConfig(extra_exclude=("vendor",)))
    assert _paths(project) == ["index.ts"]


def test_symlinked_files_are_skipped_by_default(tmp_path: Path, monkeypatch) -> None:
    _write(tmp_path, "tsconfig.json", "{}")
    _write(tmp_path, "keep.ts")
    _write(tmp_path, "skip.ts")

    monkeypatch.setattr(Path, "is_symlink", lambda self: self.name == "skip.ts")

    assert _paths(load_project(tmp_path)) == ["keep.ts"]
    assert _paths(load_project(tmp_path, ProjectConfig(follow_symlinks=True))) == ["keep.ts", "skip.ts"]


def test_tsx_files_parse_with_jsx_grammar(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", "{}")
    _write(tmp_path, "view.tsx", "export function View() {\n    return <div>hi</div>;\n}\n")

    project = load_project(tmp_path)
    assert not project.files[0].root_node.has_error


def test_syntax_errors_are_logged_not_raised(tmp_path: Path, caplog) -> None:
    _write(tmp_path, "tsconfig.json", "{}")
    _write(tmp_path, "broken.ts", "function (\n")

    with caplog.at_level("WARNING", logger="tscodemap.project"):
        project = load_project(tmp_path)

    assert _paths(project) == ["broken.ts"]
    assert "Syntax errors in broken.ts" in caplog.text


def test_project_title_is_root_directory_name(tmp_path: Path) -> None:
    root = tmp_path / "my-app"
    _write(root, "tsconfig.json", "{}")
    project = load_project(root)
    assert project.title == "my-app"
    assert project.root == root.resolve()
    assert project.files == []


@pytest.mark.parametrize(
    "text, field",
    [
        ('{"compilerOptions": ["allowJs"]}', "compilerOptions"),
        ('{"compilerOptions": {"outDir": 3}}', "outDir"),
        ('{"files": "main.ts"}', "files"),
        ('{"include": ["src", 1]}', "include"),
        ('{"exclude": {"dist": true}}', "exclude"),
    ],
)
def test_wrongly_typed_fields_are_rejected(tmp_path: Path, text: str, field: str) -> None:
    _write(tmp_path, "tsconfig.json", text)
    with pytest.raises(ConfigurationInvalid, match=field):
        load_project(tmp_path)


def test_wildcard_exclude_naming_a_directory(tmp_path: Path) -> None:
    _write(tmp_path, "tsconfig.json", '{"exclude": ["src/**/fixtures", "**/mocks"]}')
    _write(tmp_path, "src/app.ts")
    _write(tmp_path, "src/a/fixtures/data.ts")
    _write(tmp_path, "src/a/fixtures/deep/more.ts")
    _write(tmp_path, "mocks/api.ts")
    _write(tmp_path, "src/b/mocks/db.ts")

    assert _paths(load_project(tmp_path)) == ["src/app.ts"]
