"""Turns a search-provider result list into the conversation sent to the gateway."""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Tuple

from gateway.client.section import Source, SourceImage

_SNIPPET_CHARS = 150
_ACKNOWLEDGEMENT = "I found relevant information. I will analyze it and write a complete report."


class ResearchError(Exception):
	pass


def _image(raw: Any) -> Optional[SourceImage]:
	if isinstance(raw, str) and raw:
		return SourceImage(url=raw)
	if isinstance(raw, Mapping) and raw.get("url"):
		description = raw.get("description")
		return SourceImage(url=str(raw["url"]), description=str(description) if description else None)
	return None


def sources_from_payload(payload: Mapping[str, Any]) -> List[Source]:
	"""Pair results with images by position. An empty result list is a user-facing error."""
	results = payload.get("results") or []
	if not results:
		raise ResearchError("No relevant results found. Please try a different query.")
	images = payload.get("images") or []
	sources: List[Source] = []
	for index, item in enumerate(results):
		if not isinstance(item, Mapping):
			continue
		score = item.get("score")
		sources.append(
			Source(
				title=str(item.get("title") or item.get("url") or f"Source {index + 1}"),
				url=str(item.get("url") or ""),
				content=str(item.get("content") or ""),
				snippet=item.get("snippet"),
				score=float(score) if isinstance(score, (int, float)) else None,
				image=_image(images[index]) if index < len(images) else None,
			)
		)
	if not sources:
		raise ResearchError("No relevant results found. Please try a different query.")
	return sources


def _describe(source: Source) -> str:
	if source.snippet:
		return source.snippet
	text = source.content[:_SNIPPET_CHARS]
	return text + "..." if len(source.content) > _SNIPPET_CHARS else text


def sources_table(sources: List[Source]) -> str:
	rows = [
		"## Sources",
		"| Number | Source | Description |",
		"|---------|---------|-------------|",
	]
	for index, source in enumerate(sources, start=1):
		rows.append(f"| {index} | [{source.title}]({source.url}) | {_describe(source)} |")
	return "\n".join(rows)


def build_research_prompt(query: str, sources: List[Source], answer: Optional[str] = None) -> str:
	context = "\n\n".join(
		f"[Source {index}]: {source.title}\n{source.content}\nURL: {source.url}\n"
		for index, source in enumerate(sources, start=1)
	)
	direct = f"\nDirect answer from the search provider: {answer}\n\n" if answer else ""
	return (
		f"Here is the search data:{direct}\n{context}\n\n"
		f'Analyze this information and write a detailed report answering the original query: "{query}". '
		"Cite the sources where appropriate. If the sources contain potential bias or conflicting "
		"information, point that out in your analysis.\n\n"
		"IMPORTANT: Always end your answer with a sources table listing every reference used, "
		f"formatted exactly as shown below:\n\n\n{sources_table(sources)}"
	)


def build_research_messages(
	query: str,
	payload: Mapping[str, Any],
) -> Tuple[List[Source], List[Dict[str, str]]]:
	sources = sources_from_payload(payload)
	answer = payload.get("answer")
	prompt = build_research_prompt(query, sources, answer=str(answer) if answer else None)
	messages = [
		{"role": "user", "content": query},
		{"role": "assistant", "content": _ACKNOWLEDGEMENT},
		{"role": "user", "content": prompt},
	]
	return sources, messages
