import httpx

from app.schemas.plant import PlantRecord
from app.services.normalizer import normalize
from app.services.perenual import PerenualClient, flatten_species
from app.services.sources import SOURCE_CHAIN_ORDER, build_source_chain, split_binomial
from app.services.trefle import TrefleClient
from app.services.wikipedia import WikipediaSearchClient, WikipediaSummaryClient

PERENUAL_LIST = {
    "data": [{
        "id": 42,
        "common_name": "Dog rose",
        "scientific_name": ["Rosa canina"],
        "cycle": "Perennial",
        "default_image": {"original_url": "http://img.test/rose.jpg"},
    }],
    "current_page": 1,
    "last_page": 1,
}

PERENUAL_DETAIL = {
    "id": 42,
    "family": "Rosaceae",
    "hardiness": {"min": "3", "max": "7"},
    "soil": ["Loamy", "Sandy"],
    "attracts": ["bees"],
    "edible_fruit": True,
    "edible_leaf": False,
    "medicinal": True,
    "origin": ["Europe", "Western Asia"],
    "description": "A climbing wild rose.",
}


def test_split_binomial():
    assert split_binomial("Rosa canina L.") == ("Rosa", "canina")
    assert split_binomial(["Mentha"]) == ("Mentha", None)
    assert split_binomial(None) == (None, None)


def test_flatten_species_drops_paywalled_images():
    flat = flatten_species({
        "common_name": "Mint",
        "default_image": {"original_url": "https://perenual.com/upgrade_access.jpg"},
    })
    assert "images" not in flat


async def test_perenual_search_merges_list_and_detail():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["key"] == "k"
        if request.url.path.endswith("/species-list"):
            assert request.url.params["q"] == "Rosa canina"
            return httpx.Response(200, json=PERENUAL_LIST)
        if request.url.path.endswith("/species/details/42"):
            return httpx.Response(200, json=PERENUAL_DETAIL)
        return httpx.Response(404)

    client = PerenualClient(api_key="k", base_url="http://perenual.test/api", transport=httpx.MockTransport(handler))
    payload = await client.search("Rosa canina")

    record = normalize(payload, source=client.record_source)
    assert record.genus == "Rosa"
    assert record.species == "canina"
    assert record.family == "Rosaceae"
    assert record.hardiness_zones == "3-7"
    assert record.soils == ["Loamy", "Sandy"]
    assert record.edibility is True
    assert record.medicinal is True
    assert record.habitat_range == "Europe, Western Asia"
    assert record.image_url == "http://img.test/rose.jpg"
    assert record.source == "perenual"


async def test_perenual_without_key_contributes_nothing():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    client = PerenualClient(api_key="", transport=httpx.MockTransport(handler))
    assert await client.search("Rosa canina") is None


async def test_rate_limited_source_returns_none():
    client = PerenualClient(
        api_key="k",
        base_url="http://perenual.test/api",
        transport=httpx.MockTransport(lambda request: httpx.Response(429)),
    )
    assert await client.search("Rosa canina") is None


async def test_timeout_returns_none():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    client = TrefleClient(token="t", base_url="http://trefle.test/api/v1", transport=httpx.MockTransport(handler))
    assert await client.search("Rosa canina") is None


async def test_trefle_search_uses_first_hit():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/plants/search"
        return httpx.Response(200, json={"data": [
            {"common_name": "Dog rose", "scientific_name": "Rosa canina", "genus": "Rosa", "family": "Rosaceae",
             "image_url": "http://img.test/trefle.jpg"},
            {"common_name": "Other", "scientific_name": "Rosa other"},
        ]})

    client = TrefleClient(token="t", base_url="http://trefle.test/api/v1", transport=httpx.MockTransport(handler))
    payload = await client.search("Rosa canina")

    assert payload["species"] == "canina"
    assert payload["family"] == "Rosaceae"
    assert payload["source"] == "trefle"


async def test_wikipedia_summary_and_missing_page():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/Rosa_canina"):
            return httpx.Response(200, json={
                "type": "standard",
                "extract": "Rosa canina is a climbing wild rose.",
                "thumbnail": {"source": "http://img.test/thumb.jpg"},
            })
        return httpx.Response(404, json={"title": "Not found."})

    client = WikipediaSummaryClient(base_url="http://wiki.test", transport=httpx.MockTransport(handler))

    payload = await client.search("Rosa canina")
    assert payload["description"].startswith("Rosa canina")
    assert payload["images"] == ["http://img.test/thumb.jpg"]
    assert await client.search("Nonexistent plant") is None


async def test_wikipedia_disambiguation_is_ignored():
    client = WikipediaSummaryClient(
        base_url="http://wiki.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"type": "disambiguation"})),
    )
    assert await client.search("Rose") is None


async def test_wikipedia_search_falls_back_on_common_name():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/w/api.php":
            assert request.url.params["srsearch"] == "Dog rose"
            return httpx.Response(200, json={"query": {"search": [{"title": "Rosa canina"}]}})
        return httpx.Response(200, json={"type": "standard", "extract": "Wild rose."})

    client = WikipediaSearchClient(base_url="http://wiki.test", transport=httpx.MockTransport(handler))
    record = PlantRecord(common_name="Dog rose", scientific_name="Rosa canina")

    assert client.query_for(record) == "Dog rose"
    payload = await client.search(client.query_for(record))
    assert payload["description"] == "Wild rose."


def test_chain_order():
    names = [client.name for client in build_source_chain()]
    assert names == list(SOURCE_CHAIN_ORDER) == ["perenual", "trefle", "wikipedia", "wikipedia_search"]
