from storage_lite.utils.query import GS_PATTERN, HTTP_PATTERN, object_to_query


def test_empty_mapping_gives_empty_string():
    assert object_to_query({}) == ""
    assert object_to_query() == ""


def test_single_and_multiple_params():
    assert object_to_query({"name": "Samuel"}) == "?name=Samuel"
    assert (
        object_to_query({"name": "Samuel", "address": "somewhere", "color": "green"})
        == "?name=Samuel&address=somewhere&color=green"
    )


def test_none_values_are_skipped():
    assert object_to_query({"name": "Samuel", "address": None}) == "?name=Samuel"
    assert object_to_query({"address": None}) == ""


def test_values_are_percent_encoded():
    assert (
        object_to_query({"path": "such/path/much/escape?"})
        == "?path=such%2Fpath%2Fmuch%2Fescape%3F"
    )


def test_gs_pattern_groups():
    assert GS_PATTERN.match("gs://sandbox").groups() == ("sandbox", None)
    assert GS_PATTERN.match("gs://sandbox/a/b/").groups() == ("sandbox", "a/b/")


def test_http_pattern_ignores_query_and_fragment():
    match = HTTP_PATTERN.match(
        "https://firebasestorage.googleapis.com/v0/b/sandbox/o/a%2Fb?alt=media"
    )
    assert match.groups() == ("sandbox", "a%2Fb")
