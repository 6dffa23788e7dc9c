import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from streamgate.configs import settings

from conftest import failing_worker_handler, make_token_client, token_worker_handler


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}


def test_episode_session_with_public_cdn_end_to_end(client):
    response = client.get("/playback-session", params={"contentId": "abc", "kind": "EPISODE", "mode": "public-cdn"})

    assert response.status_code == 200
    session = response.json()
    assert session["kind"] == "hls"
    assert session["protected"] is False
    assert session["expiresAt"] is None
    entry = urlparse(session["playbackUrl"])
    assert entry.path == "/manifest/abc"
    assert parse_qs(entry.query) == {"kind": ["EPISODE"], "mode": ["public-cdn"]}

    master = client.get(session["playbackUrl"])
    assert master.status_code == 200
    assert master.headers["content-type"].startswith("application/vnd.apple.mpegurl")
    assert master.headers["cache-control"].startswith("public")
    variant_lines = [line for line in master.text.splitlines() if "/manifest/abc?" in line]
    assert len(variant_lines) == 1
    assert "variant=720p.m3u8&mode=public-cdn" in variant_lines[0]

    media = client.get(variant_lines[0])
    assert media.status_code == 200
    segment_lines = [line for line in media.text.splitlines() if line.endswith(".ts")]
    assert segment_lines == [
        "https://cdn.example/episodes/abc/seg-000.ts",
        "https://cdn.example/episodes/abc/seg-001.ts",
    ]


def test_session_includes_subtitles_and_summary(client):
    session = client.get("/playback-session", params={"contentId": "abc", "kind": "episode", "mode": "public-cdn"}).json()

    assert session["subtitles"] == [
        {
            "label": "Português (Brasil)",
            "language": "pt-BR",
            "url": "https://cdn.example/episodes/abc/subs.pt-br.vtt",
        }
    ]
    summary = session["contentSummary"]
    assert summary["name"] == "The Show"
    assert summary["posterUrl"] == "https://img.example/poster.jpg"
    assert summary["episodeName"] == "Pilot"
    assert summary["seasonNumber"] == 1
    assert summary["episodeNumber"] == 1


def test_default_mode_is_protected_token(client):
    session = client.get("/playback-session", params={"contentId": "abc", "kind": "EPISODE"}).json()

    assert session["protected"] is True
    assert session["playbackUrl"] == "https://worker.example/stream/episodes/abc?token=tok"
    # Subtitles are never tokenised
    assert session["subtitles"][0]["url"].startswith("https://signed.example/episodes/abc/subs.pt-br.vtt")


def test_protected_entry_is_minted_for_the_content_path(make_client):
    requests = []

    def recording_worker(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return token_worker_handler(request)

    client = make_client(token_client=make_token_client(recording_worker))

    session = client.get("/playback-session", params={"contentId": "abc", "kind": "EPISODE"}).json()

    assert requests == [{"contentId": "episodes/abc", "storage": "wasabi"}]
    assert session["playbackUrl"] == "https://worker.example/stream/episodes/abc?token=tok"


def test_token_failure_falls_back_to_gateway_manifest(make_client):
    client = make_client(token_client=make_token_client(failing_worker_handler))

    session = client.get("/playback-session", params={"contentId": "abc", "kind": "EPISODE"}).json()

    assert session["protected"] is False
    assert isinstance(session["expiresAt"], int)
    assert parse_qs(urlparse(session["playbackUrl"]).query)["mode"] == ["signed-direct"]

    master = client.get(session["playbackUrl"])
    assert master.headers["cache-control"] == "private, max-age=0, no-store"
    assert "protected-token" not in master.text
    assert "mode=signed-direct" in master.text


def test_protected_manifest_request_degrades_consistently(make_client):
    client = make_client(token_client=make_token_client(failing_worker_handler))

    response = client.get(
        "/manifest/abc", params={"kind": "EPISODE", "variant": "720p.m3u8", "mode": "protected-token"}
    )

    assert response.status_code == 200
    segment_lines = [line for line in response.text.splitlines() if "seg-00" in line]
    assert all(line.startswith("https://signed.example/") for line in segment_lines)


def test_progressive_movie_session(client):
    session = client.get("/playback-session", params={"contentId": "xyz", "mode": "signed-direct"}).json()

    assert session["kind"] == "mp4"
    assert session["playbackUrl"] == "https://signed.example/movies/xyz/movie.mp4?X-Amz-Expires=300"
    assert isinstance(session["expiresAt"], int)
    assert session["subtitles"] == []
    assert session["contentSummary"]["name"] == "A Movie"


def test_unknown_content(client):
    response = client.get("/playback-session", params={"contentId": "missing"})
    assert response.status_code == 404
    assert response.json() == {"error": "Content not found"}


def test_content_without_prefix(client):
    assert client.get("/playback-session", params={"contentId": "nowhere"}).status_code == 400


def test_invalid_mode_is_rejected(client):
    response = client.get("/playback-session", params={"contentId": "abc", "mode": "cloudflare"})
    assert response.status_code == 422


def test_storage_failure_is_generic_500(client):
    client.services.stores.get().unreachable = True
    response = client.get("/playback-session", params={"contentId": "abc", "kind": "EPISODE"})
    assert response.status_code == 500
    assert "signed.example" not in response.text
    assert response.json() == {"error": "Storage temporarily unavailable"}


@pytest.mark.parametrize("variant", ["../other/master.m3u8", "/etc/passwd.m3u8", "https://evil.example/a.m3u8", "seg-000.ts"])
def test_variant_outside_prefix_is_rejected(client, variant):
    response = client.get("/manifest/abc", params={"kind": "EPISODE", "variant": variant})
    assert response.status_code == 400


def test_missing_variant_manifest(client):
    response = client.get("/manifest/abc", params={"kind": "EPISODE", "variant": "1080p.m3u8", "mode": "public-cdn"})
    assert response.status_code == 404


def test_manifest_for_progressive_content(client):
    assert client.get("/manifest/xyz", params={"mode": "public-cdn"}).status_code == 404


def test_head_manifest(client):
    response = client.head("/manifest/abc", params={"kind": "EPISODE", "mode": "public-cdn"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/vnd.apple.mpegurl")


def test_forwarded_proto_is_honoured(client):
    session = client.get(
        "/playback-session",
        params={"contentId": "abc", "kind": "EPISODE", "mode": "edge-proxy"},
        headers={"X-Forwarded-Proto": "https"},
    ).json()
    assert session["playbackUrl"].startswith("https://testserver/manifest/abc?")


def test_api_password_is_required_and_forwarded(client, monkeypatch):
    monkeypatch.setattr(settings, "api_password", "pw")

    assert client.get("/playback-session", params={"contentId": "abc", "kind": "EPISODE"}).status_code == 403

    session = client.get(
        "/playback-session",
        params={"contentId": "abc", "kind": "EPISODE", "mode": "public-cdn", "api_password": "pw"},
    ).json()
    assert parse_qs(urlparse(session["playbackUrl"]).query)["api_password"] == ["pw"]

    master = client.get(session["playbackUrl"])
    assert master.status_code == 200
    variant_link = next(line for line in master.text.splitlines() if "variant=" in line)
    assert "api_password=pw" in variant_link
    assert client.get(variant_link).status_code == 200


def test_storage_status(client):
    response = client.get("/status/storage")
    assert response.status_code == 200
    body = response.json()
    assert body["online"] is True
    assert body["backends"] == [{"backend": "wasabi", "bucket": "media", "online": True, "objectCount": 1}]


def test_storage_status_reports_outage(client):
    client.services.stores.get().unreachable = True
    response = client.get("/status/storage")
    assert response.status_code == 503
    backend = response.json()["backends"][0]
    assert backend["online"] is False
    assert backend["error"] == "TimeoutError"
