import unittest

import anyio
from erd_fixtures import DictCache, ScriptedProvider, blog_graph, registry_for, table

from erdstudio.erd.normalize import normalize_erd
from erdstudio.errors import AIFailedError, AIQuotaExceededError, AITimeoutError
from erdstudio.services.ai.cache import make_cache_key
from erdstudio.services.ai.orchestrator import AIOrchestrator, OpsResponse, parse_provider_response, summarize_graph
from erdstudio.services.ai.providers import ERDProvider, ProviderError, extract_json

MODEL = "gemini-2.5-flash"


class SlowProvider(ERDProvider):
    name = "slow"

    async def generate(self, prompt, model):
        await anyio.sleep(10)
        return {}


def make_orchestrator(provider, cache=None, timeout=5.0):
    return AIOrchestrator(registry_for(provider), cache, timeout=timeout, attempts=3, base_delay=0)


class ProviderCallTests(unittest.IsolatedAsyncioTestCase):
    async def test_retries_transient_failures(self) -> None:
        provider = ScriptedProvider(ProviderError("overloaded", status=503), {"nodes": [], "edges": []})
        result = await make_orchestrator(provider).call_provider("prompt", MODEL)
        self.assertEqual(result, {"nodes": [], "edges": []})
        self.assertEqual(provider.calls, 2)

    async def test_non_retriable_failure_is_fatal(self) -> None:
        provider = ScriptedProvider(ProviderError("bad request", status=400))
        with self.assertRaises(AIFailedError) as context:
            await make_orchestrator(provider).call_provider("prompt", MODEL)
        self.assertEqual(context.exception.upstream_status, 400)
        self.assertEqual(provider.calls, 1)

    async def test_quota_exhaustion_after_retries(self) -> None:
        provider = ScriptedProvider(*(ProviderError("slow down", status=429) for _ in range(3)))
        with self.assertRaises(AIQuotaExceededError):
            await make_orchestrator(provider).call_provider("prompt", MODEL)
        self.assertEqual(provider.calls, 3)

    async def test_quota_detected_from_message(self) -> None:
        provider = ScriptedProvider(ProviderError("RESOURCE_EXHAUSTED: daily quota"))
        with self.assertRaises(AIQuotaExceededError):
            await make_orchestrator(provider).call_provider("prompt", MODEL)
        self.assertEqual(provider.calls, 1)

    async def test_timeout(self) -> None:
        with self.assertRaises(AITimeoutError):
            await make_orchestrator(SlowProvider(), timeout=0.05).call_provider("prompt", MODEL)


class GenerateTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.current = normalize_erd(blog_graph())

    async def test_ops_answer_is_applied_to_current_graph(self) -> None:
        provider = ScriptedProvider(
            {
                "ops": [
                    {
                        "op": "add_field",
                        "tableId": "users",
                        "id": "users-name",
                        "title": "name",
                        "type": "VARCHAR(80)",
                        "key": "UNIQUE",
                    }
                ],
                "message": "Added users.name",
            }
        )
        result = await make_orchestrator(provider).generate(self.current, "add a name to users", [], MODEL)

        users = result.graph.node("users")
        self.assertEqual([f.id for f in users.data.fields], ["users-id", "users-email", "users-name"])
        self.assertEqual(users.data.fields[-1].key, "NONE")
        self.assertEqual(len(result.graph.edges), 1)
        self.assertEqual(result.message, "Added users.name")
        self.assertFalse(result.cached)

    async def test_full_graph_answer_is_normalized(self) -> None:
        provider = ScriptedProvider(
            {"nodes": [{"id": "1", "data": {"label": "Author", "schema": [{"title": "id"}]}}]}
        )
        result = await make_orchestrator(provider).generate(self.current, "start over", [], MODEL)
        (node,) = result.graph.nodes
        self.assertEqual(node.data.fields[0].type, "VARCHAR(255)")
        self.assertTrue(result.message.startswith("Diagram updated: 1 table, 0 relationships."))

    async def test_bad_ops_become_ai_failures(self) -> None:
        answers = [
            {"ops": [{"op": "truncate", "tableId": "users"}]},
            {"ops": [{"op": "delete_field", "tableId": "comments", "fieldId": "comments-id"}]},
            {"message": "nothing to do"},
        ]
        for answer in answers:
            with self.subTest(answer=answer):
                with self.assertRaises(AIFailedError):
                    await make_orchestrator(ScriptedProvider(answer)).generate(self.current, "edit", [], MODEL)

    async def test_cache_replays_and_renormalizes(self) -> None:
        cache = DictCache()
        provider = ScriptedProvider({"nodes": [table("1", "Author", [{"id": "a-id", "title": "id"}])], "edges": []})
        orchestrator = make_orchestrator(provider, cache)

        first = await orchestrator.generate(self.current, "authors please", [], MODEL)
        second = await orchestrator.generate(self.current, "authors   please", [], MODEL)

        self.assertEqual(provider.calls, 1)
        self.assertTrue(second.cached)
        self.assertEqual(second.graph, first.graph)
        self.assertEqual(second.graph.nodes[0].data.fields[0].type, "VARCHAR(255)")

    async def test_failed_answers_are_not_cached(self) -> None:
        cache = DictCache()
        provider = ScriptedProvider({"ops": [{"op": "delete_field", "tableId": "x", "fieldId": "y"}]})
        with self.assertRaises(AIFailedError):
            await make_orchestrator(provider, cache).generate(self.current, "drop y", [], MODEL)
        self.assertEqual(cache.entries, {})

    async def test_prompt_carries_chat_tail(self) -> None:
        provider = ScriptedProvider({"nodes": [], "edges": []})
        chat = [{"role": "user", "content": f"turn {i}", "ts": i} for i in range(10)]
        await make_orchestrator(provider).generate(self.current, "next", chat, MODEL)
        prompt = provider.prompts[0]
        self.assertIn("USER: turn 9", prompt)
        self.assertIn("USER: turn 4", prompt)
        self.assertNotIn("USER: turn 3", prompt)
        self.assertIn('"label":"posts"', prompt)


class ResponseHelpersTests(unittest.TestCase):
    def test_ops_presence_discriminates(self) -> None:
        response = parse_provider_response({"ops": [], "nodes": [], "message": "  "})
        self.assertIsInstance(response, OpsResponse)
        self.assertIsNone(response.message)

    def test_summary_lists_first_tables(self) -> None:
        nodes = [table(f"t{i}", f"t{i}", [{"id": f"t{i}-id", "title": "id", "type": "INT", "key": "PK"}]) for i in range(7)]
        summary = summarize_graph(normalize_erd({"nodes": nodes}))
        self.assertTrue(summary.startswith("Diagram updated: 7 tables, 0 relationships."))
        self.assertIn("t0 (1 fields, 1 PK, 0 FK)", summary)
        self.assertNotIn("t5 (", summary)
        self.assertTrue(summary.endswith("; and 2 more."))

    def test_cache_key_collapses_whitespace(self) -> None:
        self.assertEqual(make_cache_key(MODEL, " a  b\n c "), make_cache_key(MODEL, "a b c"))
        self.assertNotEqual(make_cache_key("gpt-5", "a"), make_cache_key(MODEL, "a"))
        self.assertTrue(make_cache_key(MODEL, "a").startswith(MODEL + "::"))

    def test_extract_json_tolerates_wrapping(self) -> None:
        self.assertEqual(extract_json('```json\n{"nodes": []}\n```'), {"nodes": []})
        self.assertEqual(extract_json('Here you go: {"ops": []} hope it helps'), {"ops": []})
        with self.assertRaises(ProviderError):
            extract_json("no json here")
        with self.assertRaises(ProviderError):
            extract_json("[1, 2]")


if __name__ == "__main__":
    unittest.main()
