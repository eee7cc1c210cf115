"""Tests for the collections admin API."""

import pytest
from fastapi.testclient import TestClient

from curation.core.errors import StoreError
from curation.store.record_store import SQLRecordStore

BASE = "/admin/collections"

SICHUAN_AUTO = {"mode": "auto", "field": "cuisineId", "value": "sichuan"}


def create(client: TestClient, **overrides) -> dict:
    payload = {
        "name": "Sichuan Classics",
        "slug": "sichuan-classics",
        "type": "cuisine",
        "rules": SICHUAN_AUTO,
        "cuisineId": "sichuan",
        "minRequired": 5,
        "targetCount": 10,
    }
    payload.update(overrides)
    response = client.post(BASE, json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestApp:
    def test_root(self, client: TestClient):
        """Test root endpoint."""
        data = client.get("/").json()
        assert "collections" in data["endpoints"]

    def test_health(self, client: TestClient):
        """Test health check endpoint."""
        assert client.get("/health").json() == {"status": "healthy"}


class TestCollectionCrud:
    def test_create(self, client: TestClient):
        """Test creating a collection."""
        data = create(client)
        assert data["slug"] == "sichuan-classics"
        assert data["path"] == "/recipe/cuisine/sichuan-classics"
        assert data["status"] == "draft"
        assert data["rules"] == SICHUAN_AUTO
        assert data["pinnedRecipeIds"] == []

    def test_create_defaults(self, client: TestClient):
        """Test defaults applied on create."""
        response = client.post(BASE, json={"name": "Weeknight", "slug": "weeknight"})
        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "theme"
        assert data["minRequired"] == 10
        assert data["targetCount"] == 20
        assert data["rules"] == {"mode": "custom", "groups": [], "exclude": []}

    def test_create_invalid_rules(self, client: TestClient):
        """Test creating with invalid rules returns every violation."""
        response = client.post(
            BASE,
            json={
                "name": "Broken",
                "slug": "broken",
                "rules": {
                    "mode": "custom",
                    "groups": [{"logic": "XOR", "conditions": [{"field": "tag", "operator": "eq", "value": "x"}]}],
                },
            },
        )
        assert response.status_code == 422
        detail = response.json()["detail"]
        assert {e["field"] for e in detail["errors"]} == {"logic", "tagType"}

    def test_create_duplicate_slug(self, client: TestClient):
        """Test a duplicate slug is a conflict."""
        create(client)
        response = client.post(BASE, json={"name": "Again", "slug": "sichuan-classics"})
        assert response.status_code == 409

    def test_get_not_found(self, client: TestClient):
        """Test fetching an unknown collection."""
        assert client.get(f"{BASE}/missing").status_code == 404

    def test_update(self, client: TestClient):
        """Test updating a collection."""
        created = create(client)
        response = client.put(f"{BASE}/{created['id']}", json={"name": "Renamed", "status": "published"})
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Renamed"
        assert data["status"] == "published"
        assert data["rules"] == SICHUAN_AUTO

    def test_update_invalid_rules(self, client: TestClient):
        """Test updating with invalid rules is rejected."""
        created = create(client)
        response = client.put(f"{BASE}/{created['id']}", json={"rules": {"mode": "auto"}})
        assert response.status_code == 422

    def test_update_to_taken_slug(self, client: TestClient):
        """Test renaming to a taken slug is a conflict."""
        create(client)
        other = create(client, slug="other")
        response = client.put(f"{BASE}/{other['id']}", json={"slug": "sichuan-classics"})
        assert response.status_code == 409

    def test_delete(self, client: TestClient):
        """Test deleting a collection."""
        created = create(client)
        response = client.delete(f"{BASE}/{created['id']}")
        assert response.status_code == 200
        assert response.json()["slug"] == "sichuan-classics"
        assert client.get(f"{BASE}/{created['id']}").status_code == 404


class TestDetail:
    def test_counts_and_progress(self, client: TestClient):
        """Test the detail view computes counts and progress live."""
        created = create(client)
        data = client.get(f"{BASE}/{created['id']}").json()
        assert data["matchedCount"] == 8
        assert data["publishedCount"] == 5
        assert data["pendingCount"] == 2
        assert data["draftCount"] == 1
        assert data["progress"] == 50.0
        assert data["qualifiedStatus"] == "qualified"
        assert data["near"] is False
        assert data["ruleDescription"] == "Auto match cuisine"
        assert len(data["recipes"]) == 8

    def test_add_method(self, client: TestClient):
        """Test pinned recipes are marked as manually added."""
        created = create(client, pinnedRecipeIds=["c1"])
        recipes = client.get(f"{BASE}/{created['id']}").json()["recipes"]
        assert recipes[0] == {"id": "c1", "title": "Recipe c1", "status": "published", "addMethod": "manual"}
        assert {r["addMethod"] for r in recipes[1:]} == {"rule"}

    def test_warnings_for_unknown_references(self, client: TestClient):
        """Test the detail view reports unknown references."""
        created = create(client, slug="ghost", rules={"mode": "auto", "field": "cuisineId", "value": "x"}, cuisineId=None)
        data = client.get(f"{BASE}/{created['id']}").json()
        assert data["matchedCount"] == 0
        assert data["warnings"][0]["code"] == "unresolved_reference"

    def test_store_failure_is_explicit(self, client: TestClient, monkeypatch):
        """Test a store failure is a 503, not zero counts."""
        created = create(client)

        def broken(*args, **kwargs):
            raise StoreError("connection lost", operation="list_matches")

        monkeypatch.setattr(SQLRecordStore, "list_matches", broken)
        response = client.get(f"{BASE}/{created['id']}")
        assert response.status_code == 503
        assert response.json()["detail"]["operation"] == "list_matches"


class TestListAndCache:
    def test_list_reads_snapshot(self, client: TestClient):
        """Test the list view reads the stored snapshot."""
        create(client)
        item = client.get(BASE).json()["items"][0]
        assert item["isStale"] is True
        assert item["cachedAt"] is None
        assert item["matchedCount"] == 0

        client.post(f"{BASE}/refresh-counts")
        item = client.get(BASE).json()["items"][0]
        assert item["isStale"] is False
        assert item["cachedAt"] is not None
        assert item["matchedCount"] == 8
        assert item["qualifiedStatus"] == "qualified"

    def test_override_change_marks_stale_but_keeps_counts(self, client: TestClient):
        """Test an override change marks the snapshot stale."""
        created = create(client)
        client.post(f"{BASE}/refresh-counts")
        client.post(f"{BASE}/{created['id']}/exclude", json={"recipeIds": ["s1"]})
        item = client.get(BASE).json()["items"][0]
        assert item["isStale"] is True
        assert item["matchedCount"] == 8

    def test_unrelated_update_keeps_snapshot_fresh(self, client: TestClient):
        """Test an update that changes no rule input keeps the snapshot fresh."""
        created = create(client)
        client.post(f"{BASE}/refresh-counts")
        client.put(f"{BASE}/{created['id']}", json={"name": "New name", "rules": SICHUAN_AUTO})
        assert client.get(BASE).json()["items"][0]["isStale"] is False

    def test_rule_change_marks_stale(self, client: TestClient):
        """Test a rule change marks the snapshot stale."""
        created = create(client)
        client.post(f"{BASE}/refresh-counts")
        client.put(f"{BASE}/{created['id']}", json={"rules": {"mode": "custom"}})
        assert client.get(BASE).json()["items"][0]["isStale"] is True

    def test_filters_and_pagination(self, client: TestClient):
        """Test list filters and pagination."""
        create(client)
        create(client, slug="quick", name="Quick Meals", type="theme", rules={"mode": "custom"}, cuisineId=None, minRequired=50)
        create(client, slug="empty", name="Empty", type="theme", rules={"mode": "custom", "groups": [
            {"logic": "AND", "conditions": [{"field": "cuisineId", "operator": "eq", "value": "none"}]}
        ]}, cuisineId=None)
        client.post(f"{BASE}/refresh-counts")

        assert client.get(BASE, params={"type": "theme"}).json()["total"] == 2
        assert [i["slug"] for i in client.get(BASE, params={"search": "quick"}).json()["items"]] == ["quick"]

        qualified = client.get(BASE, params={"qualified": "true"}).json()
        assert {i["slug"] for i in qualified["items"]} == {"sichuan-classics"}
        assert qualified["total"] == 1

        page = client.get(BASE, params={"pageSize": 2, "page": 2}).json()
        assert page["total"] == 3
        assert page["totalPages"] == 2
        assert len(page["items"]) == 1

    def test_page_size_capped(self, client: TestClient):
        """Test the page size limit."""
        assert client.get(BASE, params={"pageSize": 101}).status_code == 422

    def test_refresh_selected_collections(self, client: TestClient):
        """Test refreshing only the given collections."""
        first = create(client)
        create(client, slug="other")
        data = client.post(f"{BASE}/refresh-counts", json={"collectionIds": [first["id"]]}).json()
        assert data["refreshed"] == 1
        assert data["failed"] == 0
        assert data["details"][0]["counts"]["matched"] == 8

    def test_refresh_failure_reported(self, client: TestClient, monkeypatch):
        """Test refresh failures are reported per collection."""
        create(client)

        def broken(*args, **kwargs):
            raise StoreError("timeout", operation="list_matches")

        monkeypatch.setattr(SQLRecordStore, "list_matches", broken)
        data = client.post(f"{BASE}/refresh-counts").json()
        assert data["refreshed"] == 0
        assert data["failed"] == 1
        assert "timeout" in data["details"][0]["error"]


class TestRuleTooling:
    def test_test_rules(self, client: TestClient, custom_rules):
        """Test dry-running a candidate rule."""
        created = create(client)
        data = client.post(
            f"{BASE}/{created['id']}/test-rules",
            json={"rules": custom_rules, "excludedRecipeIds": ["s2"], "limit": 10},
        ).json()
        assert data["counts"] == {"matched": 2, "published": 1, "pending": 1, "draft": 0}
        assert data["validation"]["valid"] is True
        assert [s["id"] for s in data["samples"]] == ["s6", "s1"]
        assert data["samples"][0]["cuisineName"] == "Sichuan"
        assert data["samples"][0]["tags"] == ["Spicy"]
        assert data["description"].startswith("(cuisine = sichuan)")

    def test_test_rules_ignores_saved_overrides(self, client: TestClient):
        """Test a dry run ignores the saved pins and excludes."""
        created = create(client, pinnedRecipeIds=["c1"], excludedRecipeIds=["s1"])
        data = client.post(f"{BASE}/{created['id']}/test-rules", json={"rules": SICHUAN_AUTO}).json()
        assert data["counts"]["matched"] == 8

    def test_test_rules_invalid(self, client: TestClient):
        """Test a dry run of an invalid rule returns errors without querying."""
        created = create(client)
        data = client.post(
            f"{BASE}/{created['id']}/test-rules",
            json={"rules": {"mode": "custom", "groups": [{"logic": "AND", "conditions": [{"field": "cookTime"}]}]}},
        ).json()
        assert data["validation"]["valid"] is False
        assert data["counts"]["matched"] == 0
        assert data["samples"] == []
        assert data["description"] == "Invalid rule configuration"
        assert "Group 1 condition 1: operator is required" in data["validation"]["errors"]

    def test_test_rules_sample_limit(self, client: TestClient):
        """Test the sample limit."""
        created = create(client)
        data = client.post(f"{BASE}/{created['id']}/test-rules", json={"rules": SICHUAN_AUTO, "limit": 3}).json()
        assert len(data["samples"]) == 3
        assert data["counts"]["matched"] == 8

    def test_preview(self, client: TestClient):
        """Test previewing the published count of a rule."""
        data = client.post(f"{BASE}/preview", json={"rules": SICHUAN_AUTO, "cuisineId": "sichuan"}).json()
        assert data == {"count": 5, "hasRules": True}

    def test_preview_empty_rule(self, client: TestClient):
        """Test previewing an empty rule."""
        data = client.post(f"{BASE}/preview", json={"rules": {"mode": "custom"}}).json()
        assert data == {"count": 8, "hasRules": False}

    def test_preview_invalid(self, client: TestClient):
        """Test previewing an invalid rule."""
        assert client.post(f"{BASE}/preview", json={"rules": {"mode": "nope"}}).status_code == 422


class TestOverrides:
    def test_pin_end_and_start(self, client: TestClient):
        """Test pinning at the end and at the start."""
        created = create(client, pinnedRecipeIds=["s1"])
        url = f"{BASE}/{created['id']}/pin"
        assert client.post(url, json={"recipeIds": ["c1", "s1"]}).json()["pinnedRecipeIds"] == ["s1", "c1"]
        data = client.post(url, json={"recipeIds": ["c2"], "position": "start"}).json()
        assert data["pinnedRecipeIds"] == ["c2", "s1", "c1"]

    def test_pin_unknown_recipe(self, client: TestClient):
        """Test pinning an unknown recipe is rejected."""
        created = create(client)
        response = client.post(f"{BASE}/{created['id']}/pin", json={"recipeIds": ["s1", "ghost"]})
        assert response.status_code == 400
        assert response.json()["detail"]["recipeIds"] == ["ghost"]

    def test_pin_requires_ids(self, client: TestClient):
        """Test pinning needs at least one id."""
        created = create(client)
        assert client.post(f"{BASE}/{created['id']}/pin", json={"recipeIds": []}).status_code == 422

    def test_unpin(self, client: TestClient):
        """Test unpinning a recipe."""
        created = create(client, pinnedRecipeIds=["s1", "c1"])
        response = client.request("DELETE", f"{BASE}/{created['id']}/pin", json={"recipeIds": ["s1"]})
        assert response.json()["pinnedRecipeIds"] == ["c1"]

    def test_reorder(self, client: TestClient):
        """Test reordering pins must keep the same set."""
        created = create(client, pinnedRecipeIds=["s1", "c1", "c2"])
        url = f"{BASE}/{created['id']}/pin"
        assert client.put(url, json={"recipeIds": ["c2", "s1", "c1"]}).json()["pinnedRecipeIds"] == ["c2", "s1", "c1"]
        assert client.put(url, json={"recipeIds": ["c2", "s1"]}).status_code == 400
        assert client.put(url, json={"recipeIds": ["c2", "s1", "c1", "s4"]}).status_code == 400

    def test_exclude_removes_pin(self, client: TestClient):
        """Test excluding a pinned recipe also unpins it."""
        created = create(client, pinnedRecipeIds=["c1", "s1"])
        data = client.post(f"{BASE}/{created['id']}/exclude", json={"recipeIds": ["c1", "c1"]}).json()
        assert data["excludedRecipeIds"] == ["c1"]
        assert data["pinnedRecipeIds"] == ["s1"]

        detail = client.get(f"{BASE}/{created['id']}").json()
        assert "c1" not in [r["id"] for r in detail["recipes"]]

    def test_unexclude(self, client: TestClient):
        """Test restoring an excluded recipe."""
        created = create(client, excludedRecipeIds=["s1", "s2"])
        response = client.request("DELETE", f"{BASE}/{created['id']}/exclude", json={"recipeIds": ["s2"]})
        assert response.json()["excludedRecipeIds"] == ["s1"]
        assert client.get(f"{BASE}/{created['id']}").json()["matchedCount"] == 7

    def test_overrides_on_missing_collection(self, client: TestClient):
        """Test overrides on an unknown collection."""
        assert client.post(f"{BASE}/missing/pin", json={"recipeIds": ["s1"]}).status_code == 404


class TestLinkedAndQualified:
    def test_sync_linked(self, client: TestClient):
        """Test creating collections for linked entities."""
        create(client, slug="sichuan", cuisineId=None, rules={"mode": "custom"})
        data = client.post(f"{BASE}/sync-linked").json()
        assert len(data["created"]) == 9
        assert "cuisine-sichuan" in data["created"]
        assert "cantonese" in data["created"]
        assert "spicy" in data["created"]

        again = client.post(f"{BASE}/sync-linked").json()
        assert again["created"] == []

    def test_synced_collections_match(self, client: TestClient):
        """Test a synced tag collection matches its tag."""
        client.post(f"{BASE}/sync-linked")
        items = client.get(BASE, params={"search": "steam"}).json()["items"]
        assert items[0]["type"] == "method"
        detail = client.get(f"{BASE}/{items[0]['id']}").json()
        assert detail["matchedCount"] == 4
        assert detail["path"] == "/recipe/method/steam"

    def test_qualified(self, client: TestClient):
        """Test listing qualified published collections."""
        create(client, status="published", sortOrder=2)
        create(client, slug="cantonese", cuisineId="cantonese", rules={"mode": "auto", "field": "cuisineId", "value": "cantonese"},
               status="published", minRequired=2, sortOrder=1)
        create(client, slug="draft-one", status="draft", minRequired=0)
        create(client, slug="too-few", status="published", minRequired=50)
        client.post(f"{BASE}/refresh-counts")

        cards = client.get(f"{BASE}/qualified").json()
        assert [c["slug"] for c in cards] == ["cantonese", "sichuan-classics"]
        assert cards[1]["publishedCount"] == 5
        assert cards[1]["progress"] == 50.0

        assert client.get(f"{BASE}/qualified", params={"type": "region"}).json() == []


class TestPublishing:
    def test_publish_qualified(self, client: TestClient):
        """Test publishing a collection that meets its minimum."""
        created = create(client)
        data = client.post(f"{BASE}/{created['id']}/publish").json()
        assert data["published"] is True
        assert data["status"] == "published"
        assert data["qualifiedStatus"] == "qualified"
        assert data["publishedCount"] == 5
        assert data["minRequired"] == 5
        assert data["warning"] is None

        stored = client.get(f"{BASE}/{created['id']}").json()
        assert stored["status"] == "published"
        assert stored["publishedAt"] is not None

    def test_publish_unqualified_warns(self, client: TestClient):
        """Test an unqualified collection is published with a warning."""
        created = create(client, minRequired=50)
        data = client.post(f"{BASE}/{created['id']}/publish", json={}).json()
        assert data["status"] == "published"
        assert data["qualifiedStatus"] == "unqualified"
        assert data["publishedCount"] == 5
        assert "minimum of 50" in data["warning"]

    def test_force_publish_suppresses_warning(self, client: TestClient):
        """Test force publishes an unqualified collection without a warning."""
        created = create(client, minRequired=50)
        data = client.post(f"{BASE}/{created['id']}/publish", json={"force": True}).json()
        assert data["status"] == "published"
        assert data["qualifiedStatus"] == "unqualified"
        assert data["warning"] is None

    def test_publish_counts_live_and_writes_snapshot(self, client: TestClient):
        """Test the published count ignores a stale snapshot and is stored."""
        created = create(client)
        client.post(f"{BASE}/refresh-counts")
        client.post(f"{BASE}/{created['id']}/exclude", json={"recipeIds": ["s1", "s2"]})

        data = client.post(f"{BASE}/{created['id']}/publish").json()
        assert data["publishedCount"] == 3
        assert data["qualifiedStatus"] == "unqualified"

        item = client.get(BASE).json()["items"][0]
        assert item["isStale"] is False
        assert item["publishedCount"] == 3

    def test_publish_already_published(self, client: TestClient):
        """Test publishing twice keeps the first publication time."""
        created = create(client)
        client.post(f"{BASE}/{created['id']}/publish")
        first = client.get(f"{BASE}/{created['id']}").json()["publishedAt"]

        data = client.post(f"{BASE}/{created['id']}/publish").json()
        assert data["message"] == "Collection is already published"
        assert client.get(f"{BASE}/{created['id']}").json()["publishedAt"] == first

    def test_publish_missing_collection(self, client: TestClient):
        """Test publishing an unknown collection is a 404."""
        assert client.post(f"{BASE}/missing/publish").status_code == 404

    def test_publish_store_failure_changes_nothing(self, client: TestClient, monkeypatch):
        """Test a store failure during the live count leaves the status alone."""
        created = create(client)

        def broken(*args, **kwargs):
            raise StoreError("connection lost", operation="list_matches")

        monkeypatch.setattr(SQLRecordStore, "list_matches", broken)
        response = client.post(f"{BASE}/{created['id']}/publish")
        assert response.status_code == 503

        monkeypatch.undo()
        assert client.get(f"{BASE}/{created['id']}").json()["status"] == "draft"

    def test_unpublish(self, client: TestClient):
        """Test unpublishing moves a collection back to draft."""
        created = create(client)
        client.post(f"{BASE}/{created['id']}/publish")

        data = client.delete(f"{BASE}/{created['id']}/publish").json()
        assert data["published"] is False
        assert data["status"] == "draft"
        assert data["message"] == "Collection unpublished"

        again = client.delete(f"{BASE}/{created['id']}/publish").json()
        assert again["message"] == "Collection is not published"
