import unittest

from bson.objectid import ObjectId

from access_control import AccessResolver, EntityKind, project_permissions
from errors import Forbidden, NotFound
from store import ELEMENTS, SPACES, InMemoryStore

from helpers import add_project, add_tree, add_user


class ProjectPermissionTests(unittest.TestCase):
    def test_permission_table(self):
        owner, editor, viewer, stranger = ObjectId(), ObjectId(), ObjectId(), ObjectId()
        project = {
            "owner": owner,
            "sharedWith": [{"user": editor, "role": "editor"}, {"user": viewer, "role": "viewer"}],
        }
        self.assertEqual(project_permissions(project, owner), (True, True))
        self.assertEqual(project_permissions(project, editor), (True, True))
        self.assertEqual(project_permissions(project, viewer), (True, False))
        self.assertEqual(project_permissions(project, stranger), (False, False))

    def test_string_ids_compare_equal(self):
        owner = ObjectId()
        self.assertEqual(project_permissions({"owner": owner}, str(owner)), (True, True))


class AccessResolverTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryStore()
        self.resolver = AccessResolver(self.store)
        self.owner = add_user(self.store, "Owner")
        self.viewer = add_user(self.store, "Viewer")
        self.stranger = add_user(self.store, "Stranger")
        self.project = add_project(self.store, self.owner, shared_with=[(self.viewer, "viewer")])
        self.building_type, self.space_ids, self.element_ids = add_tree(self.store, self.project)

    def test_element_walks_to_project(self):
        access = self.resolver.resolve(EntityKind.ELEMENT, str(self.element_ids[0]), self.owner["_id"])
        self.assertTrue(access.allowed)
        self.assertTrue(access.write_allowed)
        self.assertEqual(access.project["_id"], self.project["_id"])
        self.assertEqual(access.entity(EntityKind.BUILDING_TYPE)["_id"], self.building_type["_id"])

    def test_viewer_can_read_but_not_write(self):
        access = self.resolver.resolve(EntityKind.SPACE, self.space_ids[0], self.viewer["_id"])
        access.require_read()
        with self.assertRaises(Forbidden) as ctx:
            access.require_write("Not authorized to update this space")
        self.assertEqual(ctx.exception.message, "Not authorized to update this space")

    def test_stranger_is_denied(self):
        access = self.resolver.resolve(EntityKind.BUILDING_TYPE, self.building_type["_id"], self.stranger["_id"])
        self.assertFalse(access.allowed)
        with self.assertRaises(Forbidden) as ctx:
            access.require_read()
        self.assertEqual(ctx.exception.message, "Not authorized to access this building type")

    def test_missing_ancestor_names_its_level(self):
        self.store.delete_many(SPACES, {"_id": self.space_ids[0]})
        with self.assertRaises(NotFound) as ctx:
            self.resolver.resolve(EntityKind.ELEMENT, self.element_ids[0], self.owner["_id"])
        self.assertEqual(ctx.exception.message, "Space not found")

    def test_missing_entity(self):
        self.store.delete_many(ELEMENTS, {})
        with self.assertRaises(NotFound) as ctx:
            self.resolver.resolve(EntityKind.ELEMENT, self.element_ids[0], self.owner["_id"])
        self.assertEqual(ctx.exception.message, "Element not found")

    def test_malformed_id_is_not_found(self):
        with self.assertRaises(NotFound) as ctx:
            self.resolver.resolve(EntityKind.PROJECT, "not-an-id", self.owner["_id"])
        self.assertEqual(ctx.exception.message, "Project not found")


if __name__ == "__main__":
    unittest.main()
