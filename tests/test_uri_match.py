import pytest

from dapbridge.uri_match import uri_match


def upto(uri):
    return len(uri.split("?", 1)[0])


def test_ws_matches_itself():
    assert uri_match("/ws", "/ws", upto("/ws"))


def test_ws_with_query_does_not_match():
    assert not uri_match("/ws", "/ws?x=1", upto("/ws?x=1"))


def test_exact_entry():
    assert uri_match("/api", "/api", upto("/api"))


def test_entry_with_query_matches():
    assert uri_match("/api", "/api?x=1", upto("/api?x=1"))


def test_entry_does_not_match_longer_path():
    assert not uri_match("/api", "/apix", upto("/apix"))


def test_reference_longer_than_target():
    assert not uri_match("/entry", "/e", upto("/e"))


@pytest.mark.parametrize("uri", ["/dir/", "/dir/file", "/dir/sub/page.html"])
def test_directory_matches_children(uri):
    assert uri_match("/dir/", uri, upto(uri))


def test_directory_rejects_other_paths():
    assert not uri_match("/dir/", "/other/x", upto("/other/x"))


@pytest.mark.parametrize("uri", ["/", "/index.html", "/ws.js", "/ws"])
def test_root_matches_everything(uri):
    assert uri_match("/", uri, upto(uri))


def test_empty_reference_never_matches():
    assert not uri_match("", "/x", upto("/x"))