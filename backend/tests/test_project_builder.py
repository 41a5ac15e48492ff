import unittest

from access_control import AccessResolver
from cascade import CascadeDeleter
from cities import CityDirectory
from errors import Forbidden, NotFound, QuotaExceeded, ValidationError
from models import ElementInput, ProjectCreate, ProjectUpdate, ShareRequest, SpaceInput
from project_builder import ProjectBuilder
from storage import InMemoryImageStorage
from store import BUILDING_TYPES, ELEMENTS, PROJECTS, SPACES, InMemoryStore

from helpers import add_project, add_tree, add_user

CITIES = [{"city": "Haifa", "area": "A"}, {"city": "Jerusalem", "area": "C"}]


def project_payload(**overrides):
    payload = {
        "name": "Tower",
        "address": "1 Main St",
        "location": "Haifa",
        "permissionDate": "2021-03-01",
        "spaces": [
            {
                "name": "Master bedroom",
                "type": "Bedroom",
                "buildingType": "Residential",
                "elements": [
                    {"name": "Slab", "type": "Floor", "subType": "Upper Close Room",
                     "layers": [{"name": "concrete", "thickness": 20}, {"name": "tiles", "thickness": 2}]},
                ],
            },
            {"name": "Shelter", "type": "Protect Space", "buildingType": "Residential"},
            {"name": "Lobby", "type": "Wet Room", "buildingType": "Offices"},
        ],
    }
    payload.update(overrides)
    return ProjectCreate.model_validate(payload)


class ProjectBuilderTestCase(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.images = InMemoryImageStorage()
        resolver = AccessResolver(self.store)
        cascade = CascadeDeleter(self.store, self.images)
        self.builder = ProjectBuilder(self.store, resolver, cascade, cities=CityDirectory(cities=CITIES),
                                      images=self.images)
        self.owner = add_user(self.store, "Owner")
        self.editor = add_user(self.store, "Editor")
        self.viewer = add_user(self.store, "Viewer")


class CreateProjectTests(ProjectBuilderTestCase):
    def test_creates_whole_tree(self):
        project = self.builder.create_project(self.owner["_id"], project_payload())

        self.assertEqual(project["area"], "A")
        self.assertEqual(project["buildingVersion"], "version2019")
        self.assertEqual(len(project["spaces"]), 3)
        building_types = self.store.find(BUILDING_TYPES, {"project": project["_id"]})
        self.assertEqual(sorted(bt["type"] for bt in building_types), ["Offices", "Residential"])
        self.assertEqual(self.store.count(SPACES, {"_id": {"$in": project["spaces"]}}), 3)
        [element] = self.store.find(ELEMENTS, {})
        self.assertEqual([layer["group"] for layer in element["layers"]], [1, 2])

    def test_explicit_area_and_version_win(self):
        project = self.builder.create_project(
            self.owner["_id"], project_payload(area="D", buildingVersion="fixSheet2", spaces=[])
        )
        self.assertEqual((project["area"], project["buildingVersion"]), ("D", "fixSheet2"))

    def test_unknown_location_without_area(self):
        with self.assertRaises(ValidationError) as ctx:
            self.builder.create_project(self.owner["_id"], project_payload(location="Atlantis", spaces=[]))
        self.assertEqual(ctx.exception.message, "Area is required")

    def test_bad_permission_date(self):
        with self.assertRaises(ValidationError):
            self.builder.create_project(self.owner["_id"], project_payload(permissionDate="03/01/2021"))
        self.assertEqual(self.store.count(PROJECTS, {}), 0)

    def test_invalid_element_rolls_back_everything(self):
        payload = project_payload()
        payload.spaces[2].elements = [ElementInput(name="Bad", type="Floor", sub_type="Upper Roof")]

        with self.assertRaises(ValidationError):
            self.builder.create_project(self.owner["_id"], payload)

        for collection in (PROJECTS, BUILDING_TYPES, SPACES, ELEMENTS):
            self.assertEqual(self.store.count(collection, {}), 0, collection)

    def test_fiftieth_project_allowed_fifty_first_rejected(self):
        for i in range(49):
            add_project(self.store, self.owner, name=f"P{i}")
        self.builder.create_project(self.owner["_id"], project_payload(spaces=[]))
        self.assertEqual(self.store.count(PROJECTS, {"owner": self.owner["_id"]}), 50)

        with self.assertRaises(QuotaExceeded) as ctx:
            self.builder.create_project(self.owner["_id"], project_payload(spaces=[]))
        self.assertEqual(ctx.exception.message, "You have reached the maximum number of projects (50)")
        self.assertEqual(self.store.count(PROJECTS, {}), 50)

    def test_quota_is_per_owner(self):
        for i in range(50):
            add_project(self.store, self.editor, name=f"P{i}")
        self.builder.create_project(self.owner["_id"], project_payload(spaces=[]))


class UpdateAndShareTests(ProjectBuilderTestCase):
    def setUp(self):
        super().setUp()
        self.project = add_project(self.store, self.owner,
                                   shared_with=[(self.editor, "editor"), (self.viewer, "viewer")])

    def test_editor_updates_whitelisted_fields(self):
        updated = self.builder.update_project(
            self.editor["_id"], str(self.project["_id"]), ProjectUpdate(name=" New name ", permission_date="2023-01-01")
        )
        self.assertEqual(updated["name"], "New name")
        self.assertEqual(updated["buildingVersion"], "fixSheet2")
        self.assertEqual(updated["owner"], self.owner["_id"])

    def test_viewer_cannot_update(self):
        with self.assertRaises(Forbidden):
            self.builder.update_project(self.viewer["_id"], self.project["_id"], ProjectUpdate(name="x"))

    def test_share_updates_existing_role(self):
        project = self.builder.share_project(
            self.owner["_id"], self.project["_id"], ShareRequest(email="VIEWER@example.com", role="editor")
        )
        roles = {s["user"]: s["role"] for s in project["sharedWith"]}
        self.assertEqual(len(project["sharedWith"]), 2)
        self.assertEqual(roles[self.viewer["_id"]], "editor")

    def test_share_rules(self):
        with self.assertRaises(ValidationError):
            self.builder.share_project(self.owner["_id"], self.project["_id"],
                                       ShareRequest(email="owner@example.com", role="viewer"))
        with self.assertRaises(ValidationError):
            self.builder.share_project(self.owner["_id"], self.project["_id"],
                                       ShareRequest(email="viewer@example.com", role="admin"))
        with self.assertRaises(NotFound):
            self.builder.share_project(self.owner["_id"], self.project["_id"],
                                       ShareRequest(email="nobody@example.com", role="viewer"))
        with self.assertRaises(Forbidden):
            self.builder.share_project(self.editor["_id"], self.project["_id"],
                                       ShareRequest(email="viewer@example.com", role="editor"))

    def test_remove_share(self):
        project = self.builder.remove_share(self.owner["_id"], self.project["_id"], str(self.viewer["_id"]))
        self.assertEqual([s["user"] for s in project["sharedWith"]], [self.editor["_id"]])

    def test_remove_share_for_unknown_user(self):
        stranger = add_user(self.store, "Stranger")
        for user_id in ("not-an-id", str(stranger["_id"])):
            with self.subTest(user_id=user_id):
                with self.assertRaises(NotFound) as ctx:
                    self.builder.remove_share(self.owner["_id"], self.project["_id"], user_id)
                self.assertEqual(ctx.exception.message, "User not found")
        self.assertEqual(len(self.store.find_by_id(PROJECTS, self.project["_id"])["sharedWith"]), 2)

    def test_replacing_image_deletes_previous(self):
        first = self.builder.set_project_image(self.owner["_id"], self.project["_id"], b"a", "a.png")["image"]
        second = self.builder.set_project_image(self.owner["_id"], self.project["_id"], b"b", "b.jpg")["image"]
        self.assertNotEqual(first, second)
        self.assertFalse(self.images.exists(first))
        self.assertTrue(self.images.exists(second))


class SpaceAndElementTests(ProjectBuilderTestCase):
    def setUp(self):
        super().setUp()
        self.project = add_project(self.store, self.owner, shared_with=[(self.viewer, "viewer")])
        self.building_type, self.space_ids, _ = add_tree(self.store, self.project)

    def test_create_space_with_elements(self):
        space, elements = self.builder.create_space(
            self.owner["_id"], self.building_type["_id"],
            SpaceInput(name="Bath", type="Wet Room", elements=[ElementInput(name="Tiles", type="Floor")]),
        )
        self.assertEqual(len(elements), 1)
        self.assertEqual(elements[0]["space"], space["_id"])
        project = self.store.find_by_id(PROJECTS, self.project["_id"])
        self.assertIn(space["_id"], project["spaces"])

    def test_update_space_with_empty_elements_clears_them(self):
        space, elements = self.builder.update_space(
            self.owner["_id"], self.space_ids[0], SpaceInput(name="Renamed", elements=[])
        )
        self.assertEqual(space["name"], "Renamed")
        self.assertEqual(elements, [])
        self.assertEqual(self.store.count(ELEMENTS, {"space": self.space_ids[0]}), 0)

    def test_update_space_without_elements_keeps_them(self):
        _, elements = self.builder.update_space(self.owner["_id"], self.space_ids[0], SpaceInput(type="Balcony"))
        self.assertEqual(len(elements), 3)

    def test_invalid_replacement_keeps_old_elements(self):
        with self.assertRaises(ValidationError):
            self.builder.update_space(
                self.owner["_id"], self.space_ids[0],
                SpaceInput(elements=[ElementInput(name="Bridge", type="Thermal Bridge", sub_type="Under Roof")]),
            )
        self.assertEqual(self.store.count(ELEMENTS, {"space": self.space_ids[0]}), 3)

    def test_viewer_cannot_create_elements(self):
        with self.assertRaises(Forbidden):
            self.builder.create_element(self.viewer["_id"], self.space_ids[0], ElementInput(name="x", type="Floor"))

    def test_update_element_switching_type_drops_wall_fields(self):
        element = self.builder.create_element(self.owner["_id"], self.space_ids[0], ElementInput(
            name="Facade", type="Wall", sub_type="Outside Wall", outside_cover="tiah",
            build_method="light build", isolation_coverage="bright color",
        ))
        updated = self.builder.update_element(
            self.owner["_id"], element["_id"], ElementInput(type="Floor", sub_type="Upper Open Space")
        )
        self.assertEqual(updated["type"], "Floor")
        self.assertEqual(updated["name"], "Facade")
        self.assertIsNone(updated["outsideCover"])

    def test_update_element_type_without_subtype_drops_stored_subtype(self):
        element = self.builder.create_element(self.owner["_id"], self.space_ids[0], ElementInput(
            name="Partition", type="Wall", sub_type="Isolation Wall",
        ))
        updated = self.builder.update_element(self.owner["_id"], element["_id"], ElementInput(type="Thermal Bridge"))
        self.assertEqual(updated["type"], "Thermal Bridge")
        self.assertIsNone(updated["subType"])

    def test_update_element_keeps_subtype_when_type_unchanged(self):
        element = self.builder.create_element(self.owner["_id"], self.space_ids[0], ElementInput(
            name="Partition", type="Wall", sub_type="Isolation Wall",
        ))
        updated = self.builder.update_element(self.owner["_id"], element["_id"], ElementInput(name="Inner wall"))
        self.assertEqual(updated["subType"], "Isolation Wall")

    def test_clear_elements(self):
        self.assertEqual(self.builder.clear_elements(self.owner["_id"], self.space_ids[1]), 3)


if __name__ == "__main__":
    unittest.main()
