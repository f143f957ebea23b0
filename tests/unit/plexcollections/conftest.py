"""Fixtures for Plex collections tests.

FakePlexServer is an in-memory stand-in for the Plex endpoints the
collections client uses, served through httpx.MockTransport.
"""

import re
from typing import Dict, List, Optional

import httpx
import pytest

from src.plexcollections.client import CollectionsClient
from src.plexcollections.models import PlexConfig

BASE_URL = "https://plex.test:32400"
MACHINE_ID = "abc123"

_ITEM_URI_IDS = re.compile(r"/library/metadata/(.+)$")


class FakePlexServer:
    """Minimal Plex collections API backed by dictionaries.

    Attributes:
        requests: Every request received, as (method, path, params)
        location_mode: "location" (Location header), "body" (MediaContainer
            body) or "none" (empty 201) for create responses
        expose_content: Whether smart collection detail includes ``content``
        item_delete_status: Forced status for DELETE of specific item IDs
    """

    def __init__(self):
        self.sections: Dict[int, List[dict]] = {
            1: [
                {"ratingKey": "1234", "title": "Die Hard", "genre": "action"},
                {"ratingKey": "5678", "title": "Amelie", "genre": "drama"},
                {"ratingKey": "9012", "title": "Speed", "genre": "action"},
            ],
            2: [
                {"ratingKey": "1111", "title": "Airplane!", "genre": "comedy"},
            ],
        }
        self.collections: Dict[str, dict] = {}
        self.visibility: Dict[str, Dict[str, str]] = {}
        self.requests: List[tuple] = []
        self.location_mode = "location"
        self.expose_content = True
        self.item_delete_status: Dict[str, int] = {}
        self._next_id = 100

    # Helpers for tests

    def add_collection(
        self,
        title: str,
        items: Optional[List[str]] = None,
        section_id: int = 1,
        smart=0,
        content: Optional[str] = None,
        collection_id: Optional[str] = None,
    ) -> str:
        if collection_id is None:
            collection_id = str(self._next_id)
            self._next_id += 1
        self.collections[collection_id] = {
            "title": title,
            "section": section_id,
            "smart": smart,
            "content": content,
            "items": list(items or []),
            "mode": -1,
            "sort": 0,
        }
        return collection_id

    @property
    def mutations(self) -> List[tuple]:
        return [r for r in self.requests if r[0] in ("POST", "PUT", "DELETE")]

    def clear_requests(self):
        self.requests.clear()

    # Request handling

    def _record(self, collection_id: str, data: dict) -> dict:
        record = {
            "ratingKey": collection_id,
            "key": f"/library/collections/{collection_id}/children",
            "type": "collection",
            "subtype": "movie",
            "title": data["title"],
            "smart": data["smart"],
            "childCount": len(data["items"]),
            "collectionMode": str(data["mode"]),
            "collectionSort": str(data["sort"]),
            "librarySectionID": data["section"],
            "librarySectionTitle": "Movies",
        }
        return record

    def _items_for(self, section_id: int, item_ids: List[str]) -> List[dict]:
        by_id = {item["ratingKey"]: item for item in self.sections.get(section_id, [])}
        return [dict(by_id.get(item_id, {"ratingKey": item_id}), type="movie") for item_id in item_ids]

    def _filter(self, section_id: int, params: Dict[str, str]) -> List[dict]:
        predicates = {k: v for k, v in params.items() if not k.startswith("X-Plex") and k != "type"}
        matches = [
            item for item in self.sections.get(section_id, [])
            if all(item.get(k) == v for k, v in predicates.items())
        ]
        size = params.get("X-Plex-Container-Size")
        return matches[: int(size)] if size else matches

    @staticmethod
    def _container(metadata=None, **extra) -> httpx.Response:
        container = {"size": len(metadata or []), "allowSync": False}
        container.update(extra)
        if metadata is not None:
            container["Metadata"] = metadata
        return httpx.Response(200, json={"MediaContainer": container})

    def handler(self, request: httpx.Request) -> httpx.Response:
        method = request.method
        path = request.url.path
        params = dict(request.url.params)
        self.requests.append((method, path, params))

        if path == "/identity":
            return httpx.Response(
                200, json={"MediaContainer": {"size": 0, "machineIdentifier": MACHINE_ID, "version": "1.40.0"}}
            )

        match = re.fullmatch(r"/library/sections/(\d+)/collections", path)
        if match and method == "GET":
            section_id = int(match.group(1))
            records = [
                self._record(cid, data) for cid, data in self.collections.items() if data["section"] == section_id
            ]
            return self._container(records)

        match = re.fullmatch(r"/library/sections/(\d+)/all", path)
        if match and method == "GET":
            return self._container(self._filter(int(match.group(1)), params))

        if path == "/library/collections" and method == "POST":
            return self._create(params)

        match = re.fullmatch(r"/library/collections/([^/]+)(/.*)?", path)
        if match:
            collection_id, rest = match.group(1), match.group(2) or ""
            data = self.collections.get(collection_id)
            if data is None:
                return httpx.Response(404, text="Not Found")
            return self._collection_route(method, collection_id, data, rest, params)

        match = re.fullmatch(r"/hubs/sections/(\d+)/manage", path)
        if match:
            collection_id = params.get("metadataItemId")
            if method == "GET":
                flags = self.visibility.get(collection_id)
                directory = [flags] if flags else []
                return httpx.Response(200, json={"MediaContainer": {"size": len(directory), "Directory": directory}})
            self.visibility[collection_id] = {
                k: params[k] for k in ("promotedToRecommended", "promotedToOwnHome", "promotedToSharedHome")
            }
            return httpx.Response(200)

        return httpx.Response(404, text="Not Found")

    def _create(self, params: Dict[str, str]) -> httpx.Response:
        smart = params.get("smart") == "1"
        uri = params.get("uri", "")
        items = []
        if not smart:
            match = _ITEM_URI_IDS.search(uri)
            items = match.group(1).split(",") if match else []
        collection_id = self.add_collection(
            params["title"],
            items=items,
            section_id=int(params["sectionId"]),
            smart=1 if smart else 0,
            content=uri if smart else None,
        )

        if self.location_mode == "location":
            return httpx.Response(201, headers={"Location": f"/library/collections/{collection_id}"})
        if self.location_mode == "body":
            record = self._record(collection_id, self.collections[collection_id])
            return httpx.Response(200, json={"MediaContainer": {"size": 1, "Metadata": [record]}})
        return httpx.Response(201)

    def _collection_route(self, method, collection_id, data, rest, params) -> httpx.Response:
        if rest == "" and method == "GET":
            extra = {}
            if data["smart"] and self.expose_content and data["content"]:
                extra["content"] = data["content"]
            return self._container([self._record(collection_id, data)], **extra)

        if rest == "" and method == "DELETE":
            del self.collections[collection_id]
            return httpx.Response(200)

        if rest == "/children" and method == "GET":
            return self._container(self._items_for(data["section"], data["items"]))

        if rest == "/items" and method == "PUT":
            uri = params["uri"]
            if data["smart"]:
                data["content"] = uri
            else:
                match = _ITEM_URI_IDS.search(uri)
                for item_id in match.group(1).split(",") if match else []:
                    if item_id not in data["items"]:
                        data["items"].append(item_id)
            return httpx.Response(200)

        if rest == "/prefs" and method == "PUT":
            if "collectionMode" in params:
                data["mode"] = int(params["collectionMode"])
            if "collectionSort" in params:
                data["sort"] = int(params["collectionSort"])
            return httpx.Response(200)

        match = re.fullmatch(r"/items/([^/]+)", rest)
        if match and method == "DELETE":
            item_id = match.group(1)
            forced = self.item_delete_status.get(item_id)
            if forced:
                return httpx.Response(forced, text="forced")
            if item_id not in data["items"]:
                return httpx.Response(404, text="Not Found")
            data["items"].remove(item_id)
            return httpx.Response(200)

        match = re.fullmatch(r"/items/([^/]+)/move", rest)
        if match and method == "PUT":
            item_id = match.group(1)
            after = params.get("after")
            data["items"].remove(item_id)
            position = data["items"].index(after) + 1 if after else 0
            data["items"].insert(position, item_id)
            return httpx.Response(200)

        return httpx.Response(404, text="Not Found")


@pytest.fixture
def plex_config():
    """Return a PlexConfig with no settle delay."""
    return PlexConfig(
        url=BASE_URL,
        token="test-token",
        machine_identifier=MACHINE_ID,
        settle_delay=0,
    )


@pytest.fixture
def fake_server():
    return FakePlexServer()


@pytest.fixture
def client(plex_config, fake_server):
    """CollectionsClient wired to the fake server."""
    client = CollectionsClient(plex_config, transport=httpx.MockTransport(fake_server.handler))
    yield client
    client.close()


@pytest.fixture
def recreate_client(fake_server):
    """CollectionsClient for a server without per-item endpoints."""
    config = PlexConfig(
        url=BASE_URL,
        token="test-token",
        machine_identifier=MACHINE_ID,
        settle_delay=0,
        native_item_endpoints=False,
    )
    client = CollectionsClient(config, transport=httpx.MockTransport(fake_server.handler))
    yield client
    client.close()
