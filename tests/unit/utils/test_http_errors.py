from storage_lite.utils.http_errors import extract_error_detail
from tests.unit.helpers import make_response


def test_extracts_storage_error_message():
    response = make_response(
        404, json_body={"error": {"code": 404, "message": "Not Found."}}
    )

    assert extract_error_detail(response) == "Not Found."


def test_falls_back_to_body_text():
    assert extract_error_detail(make_response(500, text="boom")) == "boom"


def test_non_dict_json():
    assert extract_error_detail(make_response(400, json_body=["bad"])) == "['bad']"
