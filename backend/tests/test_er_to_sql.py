import unittest

from erd_fixtures import blog_graph, field, table

from erdstudio.erd.normalize import normalize_erd
from erdstudio.utils.dialects import MYSQL, POSTGRES, SQLITE, pick_dialect
from erdstudio.utils.er_to_sql import to_sql
from erdstudio.utils.files import content_disposition, sanitize_filename


class PostgresExportTests(unittest.TestCase):
    def setUp(self) -> None:
        self.erd = normalize_erd(blog_graph())

    def test_foreign_key_and_index(self) -> None:
        sql = to_sql(self.erd, POSTGRES)
        self.assertIn('CREATE TABLE IF NOT EXISTS "posts" (', sql)
        self.assertIn(
            'CONSTRAINT "fk_posts_user_id_to_users_id" FOREIGN KEY ("user_id") REFERENCES "users" ("id")',
            sql,
        )
        self.assertIn('CREATE INDEX IF NOT EXISTS "posts_user_id_idx" ON "posts" ("user_id");', sql)
        self.assertIn('"user_id" INTEGER NOT NULL', sql)
        self.assertIn('"id" INTEGER GENERATED BY DEFAULT AS IDENTITY NOT NULL', sql)
        self.assertIn('PRIMARY KEY ("id")', sql)

    def test_parallel_edges_emit_one_constraint_and_index(self) -> None:
        graph = blog_graph()
        graph["edges"].append(dict(graph["edges"][0], id="dup"))
        sql = to_sql(normalize_erd(graph), POSTGRES)
        self.assertEqual(sql.count('CONSTRAINT "fk_posts_user_id_to_users_id"'), 1)
        self.assertEqual(sql.count('CREATE INDEX IF NOT EXISTS "posts_user_id_idx"'), 1)

    def test_tables_are_sorted_and_columns_keep_order(self) -> None:
        sql = to_sql(self.erd, POSTGRES)
        self.assertLess(sql.index('"posts" ('), sql.index('EXISTS "users" ('))
        posts = sql[sql.index('"posts" ('):sql.index('EXISTS "users" (')]
        self.assertLess(posts.index('"user_id"'), posts.index('"title"'))

    def test_timestamp_default(self) -> None:
        sql = to_sql(self.erd, POSTGRES)
        self.assertIn('"created_at" TIMESTAMP DEFAULT CURRENT_TIMESTAMP', sql)
        self.assertNotIn("DEFAULT CURRENT_TIMESTAMP", to_sql(self.erd, POSTGRES, add_timestamps_default=False))

    def test_options_switch_clauses_off(self) -> None:
        sql = to_sql(self.erd, POSTGRES, add_identity=False, add_not_null=False, add_fk_indexes=False)
        self.assertNotIn("IDENTITY", sql)
        self.assertNotIn("NOT NULL", sql)
        self.assertNotIn("CREATE INDEX", sql)

    def test_schema_qualification(self) -> None:
        sql = to_sql(self.erd, POSTGRES, schema="app")
        self.assertTrue(sql.startswith('CREATE SCHEMA IF NOT EXISTS "app";'))
        self.assertIn('CREATE TABLE IF NOT EXISTS "app"."users"', sql)
        self.assertIn('REFERENCES "app"."users" ("id")', sql)

    def test_composite_primary_key(self) -> None:
        erd = normalize_erd(
            {
                "nodes": [
                    table(
                        "enrollments",
                        "enrollments",
                        [
                            field("enrollments-student_id", "student_id", "INT", "PK", nullable=False),
                            field("enrollments-course_id", "course_id", "INT", "PK", nullable=False),
                        ],
                    )
                ]
            }
        )
        sql = to_sql(erd, POSTGRES, add_identity=False)
        self.assertIn('PRIMARY KEY ("student_id", "course_id")', sql)

    def test_table_lookup_ignores_case(self) -> None:
        graph = blog_graph()
        graph["edges"][0]["sourceHandle"] = "Users-id-right"
        sql = to_sql(normalize_erd(graph), POSTGRES)
        self.assertIn('REFERENCES "users" ("id")', sql)

    def test_source_side_fk_flips_direction(self) -> None:
        graph = blog_graph()
        edge = graph["edges"][0]
        edge.update(
            source="posts",
            target="users",
            sourceHandle="posts-user_id-right",
            targetHandle="users-id-left",
        )
        sql = to_sql(normalize_erd(graph), POSTGRES)
        self.assertIn('CONSTRAINT "fk_posts_user_id_to_users_id"', sql)


class OtherDialectTests(unittest.TestCase):
    def setUp(self) -> None:
        self.erd = normalize_erd(blog_graph())

    def test_sqlite_inlines_single_primary_key(self) -> None:
        sql = to_sql(self.erd, SQLITE)
        self.assertIn('"id" INTEGER PRIMARY KEY AUTOINCREMENT', sql)
        self.assertNotIn('PRIMARY KEY ("', sql)
        self.assertIn('"email" TEXT', sql)

    def test_mysql_quotes_with_backticks_and_ignores_schema(self) -> None:
        sql = to_sql(self.erd, MYSQL, schema="app")
        self.assertNotIn("CREATE SCHEMA", sql)
        self.assertIn("CREATE TABLE IF NOT EXISTS `users`", sql)
        self.assertIn("`id` INT AUTO_INCREMENT NOT NULL", sql)
        self.assertIn("`email` VARCHAR(255)", sql)

    def test_pick_dialect(self) -> None:
        self.assertIs(pick_dialect("mysql"), MYSQL)
        self.assertIs(pick_dialect(None, "SQLite"), SQLITE)
        self.assertIs(pick_dialect("pg", "mysql"), POSTGRES)
        self.assertIs(pick_dialect("oracle"), POSTGRES)
        self.assertIs(pick_dialect(), POSTGRES)


class FilenameTests(unittest.TestCase):
    def test_sanitize_filename(self) -> None:
        self.assertEqual(sanitize_filename("My Blog: v2!"), "my_blog_v2")
        self.assertEqual(sanitize_filename("schema.sql"), "schema")
        self.assertEqual(sanitize_filename("***"), "diagram")
        self.assertEqual(sanitize_filename(None), "diagram")

    def test_content_disposition(self) -> None:
        self.assertEqual(
            content_disposition("blog.sql"),
            "attachment; filename=\"blog.sql\"; filename*=UTF-8''blog.sql",
        )


if __name__ == "__main__":
    unittest.main()
