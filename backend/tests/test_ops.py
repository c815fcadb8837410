import copy
import unittest

from erd_fixtures import blog_graph
from pydantic import ValidationError

from erdstudio.erd.ops import (
    OpsError,
    add_field,
    apply_ops,
    delete_field,
    parse_ops,
    rename_label,
    reorder_fields,
    update_field,
)


def schema_of(graph, node_id):
    node = next(n for n in graph["nodes"] if n["id"] == node_id)
    return node["data"]["schema"]


class ApplyOpsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.graph = blog_graph()
        self.snapshot = copy.deepcopy(self.graph)

    def test_add_field_appends_with_defaults(self) -> None:
        result = apply_ops(
            self.graph,
            [{"op": "add_field", "tableId": "users", "id": "users-name", "title": "name", "type": "VARCHAR(80)"}],
        )
        added = schema_of(result, "users")[-1]
        self.assertEqual(added["id"], "users-name")
        self.assertEqual(added["key"], "NONE")
        self.assertTrue(added["nullable"])
        self.assertIsNone(added["default"])
        self.assertEqual(self.graph, self.snapshot)

    def test_key_mapping(self) -> None:
        cases = {"PRIMARY": "PK", "FOREIGN": "FK", "unique": "UNIQUE", "weird": "NONE", None: "NONE"}
        for raw, expected in cases.items():
            with self.subTest(key=raw):
                result = apply_ops(
                    self.graph,
                    [{"op": "add_field", "tableId": "posts", "id": "posts-x", "title": "x", "type": "INT", "key": raw}],
                )
                self.assertEqual(schema_of(result, "posts")[-1]["key"], expected)

    def test_batch_is_atomic(self) -> None:
        ops = [
            {"op": "add_field", "tableId": "users", "id": "users-name", "title": "name", "type": "TEXT"},
            {"op": "delete_field", "tableId": "comments", "fieldId": "comments-id"},
        ]
        with self.assertRaises(OpsError) as context:
            apply_ops(self.graph, ops)
        self.assertEqual(context.exception.code, "TABLE_NOT_FOUND")
        self.assertEqual(self.graph, self.snapshot)

    def test_duplicate_field_id_is_rejected(self) -> None:
        with self.assertRaises(OpsError) as context:
            apply_ops(
                self.graph,
                [{"op": "add_field", "tableId": "users", "id": "users-email", "title": "email", "type": "TEXT"}],
            )
        self.assertEqual(context.exception.code, "FIELD_ID_EXISTS")

    def test_rename_table_rewrites_edges(self) -> None:
        result = apply_ops(
            self.graph,
            [{"op": "rename_table", "oldId": "users", "newId": "accounts", "newLabel": "accounts"}],
        )
        self.assertIn("accounts", [n["id"] for n in result["nodes"]])
        for edge in result["edges"]:
            self.assertNotEqual(edge["source"], "users")
            self.assertNotEqual(edge["target"], "users")
        accounts = next(n for n in result["nodes"] if n["id"] == "accounts")
        self.assertEqual(accounts["data"]["label"], "accounts")

    def test_rename_table_without_label_keeps_label(self) -> None:
        result = apply_ops(self.graph, [{"op": "rename_table", "oldId": "posts", "newId": "articles"}])
        articles = next(n for n in result["nodes"] if n["id"] == "articles")
        self.assertEqual(articles["data"]["label"], "posts")

    def test_rename_table_onto_existing_id(self) -> None:
        with self.assertRaises(OpsError) as context:
            apply_ops(self.graph, [{"op": "rename_table", "oldId": "users", "newId": "posts"}])
        self.assertEqual(context.exception.code, "TABLE_ID_EXISTS")

    def test_delete_field_drops_touching_edges(self) -> None:
        result = apply_ops(self.graph, [{"op": "delete_field", "tableId": "posts", "fieldId": "posts-user_id"}])
        self.assertEqual(result["edges"], [])
        self.assertNotIn("posts-user_id", [f["id"] for f in schema_of(result, "posts")])

    def test_delete_unrelated_field_keeps_edges(self) -> None:
        result = apply_ops(self.graph, [{"op": "delete_field", "tableId": "posts", "fieldId": "posts-title"}])
        self.assertEqual(len(result["edges"]), 1)

    def test_unknown_op_fails_to_parse(self) -> None:
        with self.assertRaises(ValidationError):
            parse_ops([{"op": "drop_database"}])
        with self.assertRaises(ValidationError):
            parse_ops([{"op": "add_field", "tableId": "users"}])


class FieldPrimitiveTests(unittest.TestCase):
    def setUp(self) -> None:
        self.graph = blog_graph()

    def test_add_field(self) -> None:
        result = add_field(self.graph, "users", {"id": "users-name", "title": "name", "type": "TEXT"})
        self.assertEqual(schema_of(result, "users")[-1]["title"], "name")
        with self.assertRaises(OpsError):
            add_field(self.graph, "users", {"id": "users-id", "title": "id", "type": "INT"})

    def test_update_field_id_rewrites_handles(self) -> None:
        result = update_field(self.graph, "posts", "posts-user_id", {"id": "posts-author_id", "title": "author_id"})
        self.assertEqual(result["edges"][0]["targetHandle"], "posts-author_id-left")
        self.assertEqual(schema_of(result, "posts")[1]["title"], "author_id")
        self.assertEqual(schema_of(result, "posts")[1]["key"], "FK")

    def test_update_missing_field(self) -> None:
        with self.assertRaises(OpsError) as context:
            update_field(self.graph, "posts", "posts-nope", {"title": "x"})
        self.assertEqual(context.exception.code, "FIELD_NOT_FOUND")

    def test_delete_last_field_is_rejected(self) -> None:
        graph = delete_field(self.graph, "users", "users-email")
        with self.assertRaises(OpsError) as context:
            delete_field(graph, "users", "users-id")
        self.assertEqual(context.exception.code, "LAST_FIELD")

    def test_reorder_fields(self) -> None:
        result = reorder_fields(self.graph, "posts", ["posts-title", "posts-id"])
        self.assertEqual(
            [f["id"] for f in schema_of(result, "posts")],
            ["posts-title", "posts-id", "posts-user_id", "posts-created_at"],
        )

    def test_reorder_rejects_duplicates_and_unknown_ids(self) -> None:
        with self.assertRaises(OpsError) as context:
            reorder_fields(self.graph, "posts", ["posts-id", "posts-id"])
        self.assertEqual(context.exception.code, "INVALID_ORDER")
        with self.assertRaises(OpsError) as context:
            reorder_fields(self.graph, "posts", ["posts-nope"])
        self.assertEqual(context.exception.code, "FIELD_NOT_FOUND")

    def test_rename_label(self) -> None:
        result = rename_label(self.graph, "users", "members")
        self.assertEqual(result["nodes"][0]["data"]["label"], "members")
        self.assertEqual(self.graph["nodes"][0]["data"]["label"], "users")


if __name__ == "__main__":
    unittest.main()
