"""Integration tests for the inventory service: containers, categories, items
and the item history trail."""

import uuid

import pytest
from libs.auth.models import ClubRole
from services.inventory_service.app.main import app
from services.inventory_service.models import ItemHistory, ItemHistoryAction
from sqlalchemy import select
from tests.factories import CategoryFactory, ContainerFactory, ItemFactory
from tests.helpers import make_member_user, make_user, override_auth


def _quartermaster():
    return make_user(roles=[ClubRole.QUARTERMASTER])


async def _container_tree(db_session):
    """armoury > locker > bag"""
    armoury = ContainerFactory.create(name="Armoury")
    db_session.add(armoury)
    await db_session.flush()
    locker = ContainerFactory.create(name="Locker", parent_container_id=armoury.id)
    db_session.add(locker)
    await db_session.flush()
    bag = ContainerFactory.create(name="Bag", parent_container_id=locker.id)
    db_session.add(bag)
    await db_session.commit()
    return armoury, locker, bag


async def _item_setup(db_session):
    container = ContainerFactory.create()
    category = CategoryFactory.create()
    db_session.add_all([container, category])
    await db_session.commit()
    return container, category


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_members_read_but_cannot_write(inventory_client, db_session):
    with override_auth(app, make_member_user()):
        listed = await inventory_client.get("/inventory/containers")
        created = await inventory_client.post(
            "/inventory/containers", json={"name": "Shelf"}
        )

    assert listed.status_code == 200
    assert created.status_code == 403


@pytest.mark.asyncio
@pytest.mark.integration
async def test_outsiders_cannot_read(inventory_client, db_session):
    with override_auth(app, make_user()):
        response = await inventory_client.get("/inventory/items")

    assert response.status_code == 403


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_nested_container(inventory_client, db_session):
    with override_auth(app, _quartermaster()) as user:
        parent = await inventory_client.post("/inventory/containers", json={"name": "Armoury"})
        child = await inventory_client.post(
            "/inventory/containers",
            json={"name": "Locker 1", "parent_container_id": parent.json()["id"]},
        )
        detail = await inventory_client.get(f"/inventory/containers/{parent.json()['id']}")

    assert child.status_code == 201, child.text
    assert child.json()["created_by"] == user.user_id
    assert [c["name"] for c in detail.json()["children"]] == ["Locker 1"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unknown_parent_is_404(inventory_client, db_session):
    with override_auth(app, _quartermaster()):
        response = await inventory_client.post(
            "/inventory/containers",
            json={"name": "Orphan", "parent_container_id": str(uuid.uuid4())},
        )

    assert response.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_reparenting_under_descendant_is_rejected(inventory_client, db_session):
    armoury, _locker, bag = await _container_tree(db_session)

    with override_auth(app, _quartermaster()):
        response = await inventory_client.patch(
            f"/inventory/containers/{armoury.id}",
            json={"parent_container_id": str(bag.id)},
        )
        itself = await inventory_client.patch(
            f"/inventory/containers/{armoury.id}",
            json={"parent_container_id": str(armoury.id)},
        )

    assert response.status_code == 400
    assert "Circular reference" in response.json()["detail"]
    assert itself.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_available_parents_exclude_subtree(inventory_client, db_session):
    armoury, locker, bag = await _container_tree(db_session)
    other = ContainerFactory.create(name="Car boot")
    db_session.add(other)
    await db_session.commit()

    with override_auth(app, make_member_user()):
        response = await inventory_client.get(
            "/inventory/containers/available-parents", params={"exclude_id": str(locker.id)}
        )

    names = {c["name"] for c in response.json()}
    assert "Armoury" in names and "Car boot" in names
    assert "Locker" not in names and "Bag" not in names


@pytest.mark.asyncio
@pytest.mark.integration
async def test_container_with_items_below_cannot_be_deleted(inventory_client, db_session):
    armoury, _locker, bag = await _container_tree(db_session)
    category = CategoryFactory.create()
    db_session.add(category)
    await db_session.flush()
    db_session.add(ItemFactory.create(container_id=bag.id, category_id=category.id))
    await db_session.commit()

    with override_auth(app, _quartermaster()):
        response = await inventory_client.delete(f"/inventory/containers/{armoury.id}")

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_container_list_reports_item_counts(inventory_client, db_session):
    container, category = await _item_setup(db_session)
    db_session.add_all(
        [
            ItemFactory.create(container_id=container.id, category_id=category.id),
            ItemFactory.create(container_id=container.id, category_id=category.id),
        ]
    )
    await db_session.commit()

    with override_auth(app, make_member_user()):
        response = await inventory_client.get("/inventory/containers")

    row = next(c for c in response.json() if c["id"] == str(container.id))
    assert row["item_count"] == 2


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_category_names_are_unique(inventory_client, db_session):
    payload = {
        "name": "Jackets",
        "available_attributes": [
            {"name": "size", "type": "select", "label": "Size",
             "required": True, "options": ["S", "M", "L"]}
        ],
    }
    with override_auth(app, _quartermaster()):
        first = await inventory_client.post("/inventory/categories", json=payload)
        second = await inventory_client.post(
            "/inventory/categories", json={**payload, "name": "jackets"}
        )

    assert first.status_code == 201, first.text
    assert first.json()["available_attributes"][0]["options"] == ["S", "M", "L"]
    assert second.status_code == 409


@pytest.mark.asyncio
@pytest.mark.integration
async def test_category_in_use_cannot_be_deleted(inventory_client, db_session):
    container, category = await _item_setup(db_session)
    db_session.add(ItemFactory.create(container_id=container.id, category_id=category.id))
    await db_session.commit()

    with override_auth(app, _quartermaster()):
        response = await inventory_client.delete(f"/inventory/categories/{category.id}")

    assert response.status_code == 400


# ---------------------------------------------------------------------------
# Items and history
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_create_item_validates_attributes(inventory_client, db_session):
    container, category = await _item_setup(db_session)

    with override_auth(app, _quartermaster()):
        bad = await inventory_client.post(
            "/inventory/items",
            json={
                "container_id": str(container.id),
                "category_id": str(category.id),
                "attributes": {"size": "XXL"},
            },
        )
        good = await inventory_client.post(
            "/inventory/items",
            json={
                "container_id": str(container.id),
                "category_id": str(category.id),
                "attributes": {"size": "L", "brand": "SPES"},
                "quantity": 2,
            },
        )

    assert bad.status_code == 422
    assert good.status_code == 201, good.text
    data = good.json()
    assert data["attributes"] == {"size": "L", "brand": "SPES"}
    assert data["container"]["name"] == container.name
    assert data["category"]["id"] == str(category.id)

    history = await db_session.execute(
        select(ItemHistory).where(ItemHistory.item_id == uuid.UUID(data["id"]))
    )
    assert [h.action for h in history.scalars().all()] == [ItemHistoryAction.CREATED]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_move_and_maintenance_are_recorded(inventory_client, db_session):
    container, category = await _item_setup(db_session)
    target = ContainerFactory.create(name="Repair box")
    item = ItemFactory.create(container_id=container.id, category_id=category.id)
    db_session.add(target)
    db_session.add(item)
    await db_session.commit()

    with override_auth(app, _quartermaster()):
        moved = await inventory_client.post(
            f"/inventory/items/{item.id}/move",
            json={"container_id": str(target.id), "notes": "Strap broken"},
        )
        out = await inventory_client.post(
            f"/inventory/items/{item.id}/maintenance", json={"out_for_maintenance": True}
        )
        history = await inventory_client.get(f"/inventory/items/{item.id}/history")

    assert moved.status_code == 200, moved.text
    assert moved.json()["container"]["name"] == "Repair box"
    assert out.json()["out_for_maintenance"] is True

    entries = history.json()
    actions = {e["action"] for e in entries}
    assert actions == {"moved", "maintenance_out"}
    move_entry = next(e for e in entries if e["action"] == "moved")
    assert move_entry["old_container_id"] == str(container.id)
    assert move_entry["notes"] == "Strap broken"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_detail_update_records_field_changes(inventory_client, db_session):
    container, category = await _item_setup(db_session)
    item = ItemFactory.create(container_id=container.id, category_id=category.id, quantity=1)
    db_session.add(item)
    await db_session.commit()

    with override_auth(app, _quartermaster()):
        response = await inventory_client.patch(
            f"/inventory/items/{item.id}", json={"quantity": 3, "attributes": {"size": "S"}}
        )
        history = await inventory_client.get(f"/inventory/items/{item.id}/history")

    assert response.status_code == 200, response.text
    (entry,) = history.json()
    assert entry["action"] == "updated"
    assert entry["changes"]["quantity"] == {"old": 1, "new": 3}
    assert entry["changes"]["attributes"] == {"old": {"size": "M"}, "new": {"size": "S"}}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_search_matches_category_and_container_names(inventory_client, db_session):
    container = ContainerFactory.create(name="Blue Bag")
    category = CategoryFactory.create(name="Gauntlets")
    db_session.add_all([container, category])
    await db_session.flush()
    db_session.add(ItemFactory.create(container_id=container.id, category_id=category.id))
    await db_session.commit()

    with override_auth(app, make_member_user()):
        by_category = await inventory_client.get("/inventory/items", params={"search": "gaunt"})
        by_container = await inventory_client.get("/inventory/items", params={"search": "blue"})
        nothing = await inventory_client.get("/inventory/items", params={"search": "zzz"})

    assert by_category.json()["total"] == 1
    assert by_container.json()["total"] == 1
    assert nothing.json()["total"] == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_missing_item_is_404(inventory_client, db_session):
    with override_auth(app, make_member_user()):
        response = await inventory_client.get(f"/inventory/items/{uuid.uuid4()}")

    assert response.status_code == 404
