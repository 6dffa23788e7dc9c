import json

import pytest

from streamgate.catalog import CatalogError, JsonContentCatalog
from streamgate.schemas import ContentKind


@pytest.mark.asyncio
async def test_json_catalog_reads_titles_and_episodes(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text(
        json.dumps(
            {
                "titles": [{"id": "t1", "name": "Show", "posterUrl": "https://img.example/p.jpg"}],
                "episodes": [
                    {
                        "id": "e1",
                        "titleId": "t1",
                        "hlsPath": "/episodes/e1",
                        "storageBackend": "b2",
                        "seasonNumber": 2,
                        "episodeNumber": 5,
                    }
                ],
            }
        ),
        encoding="utf-8",
    )

    catalog = JsonContentCatalog.from_path(str(path))

    episode = await catalog.find_content("e1", ContentKind.EPISODE)
    assert episode.kind is ContentKind.EPISODE
    assert episode.storage_prefix == "/episodes/e1"
    assert episode.storage_backend == "b2"
    assert episode.season_number == 2
    title = await catalog.find_title("t1")
    assert title.poster_url == "https://img.example/p.jpg"
    assert await catalog.find_content("e1", ContentKind.MOVIE) is None


@pytest.mark.asyncio
async def test_missing_catalog_file_is_empty(tmp_path):
    catalog = JsonContentCatalog.from_path(str(tmp_path / "absent.json"))
    assert await catalog.find_title("anything") is None


def test_invalid_catalog_raises(tmp_path):
    path = tmp_path / "catalog.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(CatalogError):
        JsonContentCatalog.from_path(str(path))
