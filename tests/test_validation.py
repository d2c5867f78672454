from textera.errors import FileTooLarge, InvalidFileType, NoFileSelected
from textera.schemas import TextUpload
from textera.validation import (
    threshold_options,
    validate_file,
    validate_model_key,
    validate_threshold,
)

LIMIT = 5 * 1024 * 1024


def _upload(size: int, content_type: str = "text/plain") -> TextUpload:
    return TextUpload(filename="sample.txt", content=b"a" * size, content_type=content_type)


def test_missing_file_is_reported_first():
    assert isinstance(validate_file(None, max_file_size=LIMIT), NoFileSelected)


def test_file_at_exact_limit_is_accepted():
    assert validate_file(_upload(LIMIT), max_file_size=LIMIT) is None


def test_file_over_limit_is_rejected():
    assert isinstance(validate_file(_upload(LIMIT + 1), max_file_size=LIMIT), FileTooLarge)


def test_size_is_checked_before_type():
    err = validate_file(_upload(11, "application/pdf"), max_file_size=10)
    assert isinstance(err, FileTooLarge)


def test_wrong_mime_type_is_rejected():
    err = validate_file(_upload(10, "text/html"), max_file_size=LIMIT)
    assert isinstance(err, InvalidFileType)
    assert err.message == "Only .txt files are allowed"


def test_from_path_guesses_text_plain(tmp_path):
    p = tmp_path / "essay.txt"
    p.write_text("It was the best of times.")
    up = TextUpload.from_path(p)
    assert up.content_type == "text/plain"
    assert up.size == len("It was the best of times.")
    assert validate_file(up, max_file_size=LIMIT) is None


def test_model_key_membership():
    assert validate_model_key("decade")
    assert validate_model_key("century")
    assert not validate_model_key("Decade")
    assert not validate_model_key("")
    assert not validate_model_key(None)


def test_threshold_options_match_selectors():
    decades = threshold_options("decade")
    assert len(decades) == 41
    assert decades[0] == "1610" and decades[-1] == "2010"
    assert threshold_options("century") == ("18", "19", "20")
    assert threshold_options("millennium") == ()


def test_threshold_must_belong_to_model_key():
    assert validate_threshold("decade", "1920")
    assert validate_threshold("century", "19")
    assert not validate_threshold("century", "1920")
    assert not validate_threshold("decade", "1925")
    assert not validate_threshold("decade", "")
    assert not validate_threshold("bogus", "19")
