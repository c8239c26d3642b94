import hashlib
import json

import pytest

from iotaweb.paths import AuthLevel
from iotaweb.sdfiles import FileStore
from iotaweb.server import Request, Response, WebServer


@pytest.fixture
def store(tmp_path):
    sd = tmp_path / "sd"
    sd.mkdir()
    (sd / "index.htm").write_text("<html>home</html>")
    (sd / "config.txt").write_text('{"device":{}}')
    (sd / "notes.txt").write_text("first\nsecond\nthird\n")
    (sd / "graphs").mkdir()
    (sd / "graphs" / "index.htm").write_text("graphs page")
    (sd / "sub").mkdir()
    (sd / "sub" / "secret.txt").write_text("admin only")
    (sd / "iotawatt").mkdir()
    (sd / "iotawatt" / "iotalog.log").write_text("log")
    flash = tmp_path / "flash"
    flash.mkdir()
    (flash / "cfg.js").write_text("var a;")
    return FileStore(sd, flash)


@pytest.fixture
def server(store):
    return WebServer(store)


def user_only(request, level):
    return level == AuthLevel.USER


def test_nullreq_returns_empty_ok(server):
    response = server.handle(Request("GET", "/nullreq"))
    assert (response.status, response.body) == (200, b"")


def test_missing_file_not_found_message(server):
    response = server.handle(Request("GET", "/nope.htm"))
    assert response.status == 404
    assert response.text == "Not found: GET, URI: /nope.htm"


def test_not_found_reports_post_for_other_methods(server):
    response = server.handle(Request("put", "/nope.htm"))
    assert response.text.startswith("Not found: POST")


def test_root_serves_index(server):
    response = server.handle(Request("GET", "/"))
    assert response.status == 200
    assert response.content_type == "text/html"
    assert response.text == "<html>home</html>"


def test_directory_serves_its_index(server):
    response = server.handle(Request("GET", "/graphs"))
    assert response.content_type == "text/html"
    assert response.text == "graphs page"


def test_src_suffix_serves_plain_text(server):
    response = server.handle(Request("GET", "/index.htm.src"))
    assert response.content_type == "text/plain"
    assert response.text == "<html>home</html>"


def test_auth_file_is_protected(server):
    response = server.handle(Request("GET", "/iotawatt/auth.txt"))
    assert (response.status, response.text) == (403, "Protected\r\n")


def test_admin_file_denied_to_user(store):
    server = WebServer(store, user_only)
    assert server.handle(Request("GET", "/sub/secret.txt")).status == 401
    assert server.handle(Request("GET", "/notes.txt")).status == 200


def test_download_true_sends_octet_stream(server):
    response = server.handle(Request("GET", "/notes.txt", {"download": "true"}))
    assert response.content_type == "application/octet-stream"
    assert response.text == "first\nsecond\nthird\n"


def test_download_yes_runs_query_route(server):
    server.route(AuthLevel.USER, "/query", "GET", lambda r: Response(200, "text/plain", b"q"))
    response = server.handle(Request("GET", "/notes.txt", {"download": "yes"}))
    assert response.body == b"q"


def test_textpos_skips_partial_line(server):
    response = server.handle(Request("GET", "/notes.txt", {"textpos": "2"}))
    assert response.text == "second\nthird\n"
    tail = server.handle(Request("GET", "/notes.txt", {"textpos": "-8"}))
    assert tail.text == "third\n"


def test_config_carries_hash_header(server, store):
    response = server.handle(Request("GET", "/config.txt"))
    assert response.headers["X-configSHA256"] == store.config_hash


def test_spiffs_file_served_and_missing(server):
    response = server.handle(Request("GET", "/esp_spiffs/cfg.js"))
    assert (response.status, response.content_type) == (200, "application/javascript")
    assert response.text == "var a;"
    assert server.handle(Request("GET", "/esp_spiffs/none.js")).status == 404


def test_edit_put_and_delete(server, store):
    created = server.handle(Request("PUT", "/edit", {"path": "/newdir"}))
    assert created.status == 200
    assert (store.root / "newdir").is_dir()
    deleted = server.handle(Request("DELETE", "/edit", {"path": "/newdir"}))
    assert deleted.status == 200
    assert not (store.root / "newdir").exists()


def test_delete_restricted_file(server):
    response = server.handle(Request("DELETE", "/edit", {"path": "/config.txt"}))
    assert (response.status, response.text) == (403, "Restricted File\r\n")


def test_delete_without_args(server):
    response = server.handle(Request("DELETE", "/edit"))
    assert (response.status, response.text) == (500, "BAD ARGS\r\n")


def test_edit_requires_admin(store):
    server = WebServer(store, user_only)
    response = server.handle(Request("PUT", "/edit", {"path": "/x"}))
    assert response.status == 401
    assert not (store.root / "x").exists()


def test_list_root(server):
    response = server.handle(Request("GET", "/list", {"dir": "/"}))
    listing = json.loads(response.text)
    assert response.content_type == "application/json"
    assert listing[0] == {"type": "dir", "name": "esp_spiffs"}
    assert {"type": "file", "name": "notes.txt"} in listing


def test_list_without_dir(server):
    response = server.handle(Request("GET", "/list"))
    assert response.text == "BAD ARGS\r\n"


def test_custom_route_and_auth(store):
    calls = []

    def handler(request):
        calls.append(request.uri)
        return Response(200, "text/plain", b"done")

    server = WebServer(store, user_only)
    server.route(AuthLevel.ADMIN, "/command", "GET", handler)
    server.route(AuthLevel.USER, "/status", "GET", handler)
    assert server.handle(Request("GET", "/command")).status == 401
    assert server.handle(Request("GET", "/status")).body == b"done"
    assert calls == ["/status"]


def test_upload_writes_file(server, store):
    response = server.upload(Request("POST", "/edit"), "Page.HTM", b"data")
    assert response.status == 200
    assert (store.root / "page.htm").read_bytes() == b"data"


def test_upload_ignored_outside_edit(server, store):
    assert server.upload(Request("POST", "/other"), "/a.txt", b"x") is None
    assert not (store.root / "a.txt").exists()


def test_upload_protected(server):
    response = server.upload(Request("POST", "/edit"), "/config.txt", b"x")
    assert response.status == 403


def test_upload_new_config_hash(server, store):
    stale = Request("POST", "/edit", headers={"x-configsha256": "stale"})
    conflict = server.upload(stale, "/config+1.txt", b"{}")
    assert (conflict.status, conflict.text) == (409, "Config not current")

    current = Request("POST", "/edit", headers={"X-configSHA256": store.config_hash})
    response = server.upload(current, "/config+1.txt", b"{}")
    assert response.status == 200
    assert store.config_sha256 == hashlib.sha256(b"{}").digest()
    assert response.headers["X-configSHA256"] == store.config_hash


def test_spiffs_upload(server, store):
    response = server.upload(Request("POST", "/edit"), "/esp_spiffs/New.js", b"js")
    assert response.status == 200
    assert (store.spiffs_root / "new.js").read_bytes() == b"js"