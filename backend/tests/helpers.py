"""Shared fixtures: seed users and a small project tree into an InMemoryStore."""
from datetime import datetime, timezone

from store import BUILDING_TYPES, ELEMENTS, PROJECTS, SPACES, USERS


def add_user(store, name, role="user", active=True):
    return store.insert_one(USERS, {
        "name": name,
        "email": f"{name.lower()}@example.com",
        "role": role,
        "active": active,
    })


def add_project(store, owner, shared_with=(), name="Tower", image=None):
    doc = {
        "name": name,
        "address": "1 Main St",
        "location": "Haifa",
        "area": "A",
        "permissionDate": datetime(2021, 1, 1, tzinfo=timezone.utc),
        "creationDate": datetime.now(timezone.utc),
        "buildingVersion": "version2019",
        "owner": owner["_id"],
        "sharedWith": [{"user": user["_id"], "role": role} for user, role in shared_with],
        "spaces": [],
    }
    if image:
        doc["image"] = image
    return store.insert_one(PROJECTS, doc)


def add_tree(store, project, spaces=2, elements_per_space=3):
    """BuildingType with `spaces` spaces of `elements_per_space` floors each."""
    building_type = store.insert_one(BUILDING_TYPES, {
        "name": "Residential", "type": "Residential", "project": project["_id"],
    })
    space_ids, element_ids = [], []
    for i in range(spaces):
        space = store.insert_one(SPACES, {
            "name": f"Room {i}", "type": "Bedroom", "buildingType": building_type["_id"],
        })
        space_ids.append(space["_id"])
        for j in range(elements_per_space):
            element = store.insert_one(ELEMENTS, {
                "name": f"Floor {j}", "type": "Floor", "space": space["_id"], "layers": [], "parameters": {},
            })
            element_ids.append(element["_id"])
    store.update_by_id(PROJECTS, project["_id"], {"spaces": space_ids})
    return building_type, space_ids, element_ids
