from scriptindex.analysis.languages import (filter_eligible, is_eligible_path,
                                           list_repository_files)


def test_eligible_extensions():
    assert is_eligible_path("a/b/script.js")
    assert is_eligible_path("mod.MJS")
    assert is_eligible_path("legacy.cjs")
    assert not is_eligible_path("README.md")
    assert is_eligible_path("/r/a.ts")
    assert is_eligible_path("/r/view.TSX")
    assert not is_eligible_path("types.d.ts")
    assert not is_eligible_path("/r/index.d.ts")
    assert not is_eligible_path("package.json")


def test_filter_with_custom_extensions():
    paths = ["a.js", "b.ts", "c.mjs"]
    assert filter_eligible(paths) == ["a.js", "b.ts", "c.mjs"]
    assert filter_eligible(paths, [".ts"]) == ["b.ts"]
    assert filter_eligible(paths, [".js"]) == ["a.js"]


def test_listing_skips_git_metadata(tmp_path):
    (tmp_path / ".git").mkdir()
    (tmp_path / ".git" / "HEAD").write_text("ref: refs/heads/main\n")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "b.js").write_text("")
    (tmp_path / "a.md").write_text("")

    assert list_repository_files(tmp_path, relative=True) == ["a.md", "src/b.js"]
    absolute = list_repository_files(tmp_path)
    assert absolute == [
        str((tmp_path / "a.md").resolve()),
        str((tmp_path / "src" / "b.js").resolve()),
    ]
