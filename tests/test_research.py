from unittest import TestCase

from gateway.client.research import (
	ResearchError,
	build_research_messages,
	build_research_prompt,
	sources_from_payload,
	sources_table,
)
from gateway.client.section import Source

_PAYLOAD = {
	"answer": "Paris.",
	"results": [
		{"title": "Capital cities", "url": "https://example.org/a", "content": "Paris is the capital of France. " * 10},
		{"title": "Travel", "url": "https://example.org/b", "content": "Short note.", "score": 0.5},
	],
	"images": ["https://example.org/a.png", {"url": "https://example.org/b.png", "description": "Map"}],
}


class ResearchTests(TestCase):
	def test_sources_pair_images_by_position(self) -> None:
		sources = sources_from_payload(_PAYLOAD)
		self.assertEqual([source.title for source in sources], ["Capital cities", "Travel"])
		self.assertEqual(sources[0].image.url, "https://example.org/a.png")
		self.assertIsNone(sources[0].image.description)
		self.assertEqual(sources[1].image.description, "Map")
		self.assertEqual(sources[1].score, 0.5)

	def test_empty_results_raise_user_facing_error(self) -> None:
		with self.assertRaises(ResearchError) as ctx:
			sources_from_payload({"results": []})
		self.assertIn("No relevant results", str(ctx.exception))

	def test_table_truncates_long_content(self) -> None:
		table = sources_table(sources_from_payload(_PAYLOAD))
		lines = table.splitlines()
		self.assertEqual(lines[0], "## Sources")
		self.assertIn("[Capital cities](https://example.org/a)", lines[3])
		self.assertTrue(lines[3].endswith("... |"))
		self.assertIn("| 2 | [Travel](https://example.org/b) | Short note. |", table)

	def test_prompt_contains_query_context_and_table(self) -> None:
		sources = [Source(title="T", url="https://example.org", content="Body text.")]
		prompt = build_research_prompt("what is it?", sources, answer="It is a thing.")
		self.assertIn('"what is it?"', prompt)
		self.assertIn("[Source 1]: T\nBody text.\nURL: https://example.org", prompt)
		self.assertIn("Direct answer from the search provider: It is a thing.", prompt)
		self.assertTrue(prompt.endswith(sources_table(sources)))

	def test_messages_follow_query_acknowledgement_prompt_order(self) -> None:
		sources, messages = build_research_messages("capital of France", _PAYLOAD)
		self.assertEqual(len(sources), 2)
		self.assertEqual([message["role"] for message in messages], ["user", "assistant", "user"])
		self.assertEqual(messages[0]["content"], "capital of France")
		self.assertIn("Paris.", messages[2]["content"])
