"""名称校验测试

测试场景：
1. 文件名中的路径分隔符和 .. （含百分号编码）被拒绝
2. 文件夹解析的三种结果：根目录、名称、无效
3. 活动 ID 规范化与保留名称
4. MIME 类型匹配
"""
import pytest

from eventdrop.services.validation import (
    INVALID_FOLDER,
    ROOT_FOLDER,
    is_safe_filename,
    is_valid_folder_name,
    matches_mime_type,
    normalize_event_id,
    parse_folder,
    upload_basename,
)


class TestIsSafeFilename:
    @pytest.mark.parametrize("name", [
        "../secret.txt",
        "a/b.jpg",
        "a\\b.jpg",
        "..",
        "photo..jpg",
        "%2e%2e",
        "..%2Fetc",
        "dir%2fname",
        "dir%5Cname",
        "%2E%2E%2Fpasswd",
    ])
    def test_rejects_traversal(self, name):
        assert not is_safe_filename(name)

    @pytest.mark.parametrize("name", ["photo.jpg", "IMG 0001.JPG", "report-final_v2.pdf", ".hidden"])
    def test_accepts_plain_names(self, name):
        assert is_safe_filename(name)

    def test_rejects_empty(self):
        assert not is_safe_filename("")
        assert not is_safe_filename(None)


class TestParseFolder:
    def test_empty_is_root(self):
        assert parse_folder("") == ROOT_FOLDER
        assert parse_folder(None) == ROOT_FOLDER
        assert parse_folder("   ") == ROOT_FOLDER

    def test_valid_name_is_trimmed(self):
        assert parse_folder("  Party 2024 ") == "Party 2024"
        assert parse_folder("day-1") == "day-1"

    @pytest.mark.parametrize("raw", ["..", "a/b", "a\\b", "ümlaut", "x" * 33, "under_score", "dot.name"])
    def test_invalid_is_sentinel(self, raw):
        assert parse_folder(raw) is INVALID_FOLDER

    def test_sentinel_is_not_root(self):
        assert INVALID_FOLDER != ROOT_FOLDER
        assert INVALID_FOLDER is not None

    def test_valid_folder_name_excludes_root(self):
        assert is_valid_folder_name("party")
        assert not is_valid_folder_name("")
        assert not is_valid_folder_name("../x")


class TestNormalizeEventId:
    def test_lowercases_and_trims(self):
        assert normalize_event_id("  Summer-2024 ") == "summer-2024"

    @pytest.mark.parametrize("raw", ["ab", "x" * 33, "with space", "under_score", "", None])
    def test_rejects_bad_shape(self, raw):
        assert normalize_event_id(raw) is None

    @pytest.mark.parametrize("raw", ["admin", "API", "uploads", "static"])
    def test_rejects_reserved(self, raw):
        assert normalize_event_id(raw) is None


class TestMatchesMimeType:
    def test_empty_allow_list_accepts_everything(self):
        assert matches_mime_type("application/x-anything", [])

    def test_exact_match(self):
        assert matches_mime_type("image/png", ["image/png"])
        assert not matches_mime_type("image/jpeg", ["image/png"])

    def test_wildcard_matches_main_type(self):
        assert matches_mime_type("image/jpeg", ["image/*"])
        assert matches_mime_type("video/mp4", ["image/*", "video/*"])
        assert not matches_mime_type("application/pdf", ["image/*"])

    def test_missing_type_only_passes_open_list(self):
        assert matches_mime_type(None, [])
        assert not matches_mime_type(None, ["image/*"])


def test_upload_basename_strips_client_paths():
    assert upload_basename("photo.jpg") == "photo.jpg"
    assert upload_basename("C:\\Users\\me\\photo.jpg") == "photo.jpg"
    assert upload_basename("dir/sub/photo.jpg") == "photo.jpg"
    assert upload_basename("../..") == ".."
