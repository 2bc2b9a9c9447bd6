from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True, slots=True)
class TextNode:
    text: str
    height: float = 0.0


@dataclass(frozen=True, slots=True)
class InputField:
    value: str
    type: str = "text"
    id: str = ""


@dataclass(frozen=True, slots=True)
class DocumentSnapshot:
    """Visible text of the observed page at one instant.

    ``nodes`` keeps document order. ``selector_texts`` holds the text content
    found for each timer selector the page script queried (missing selectors
    are absent from the mapping).
    """

    nodes: tuple[TextNode, ...] = ()
    selector_texts: dict[str, str] = field(default_factory=dict)
    inputs: tuple[InputField, ...] = ()

    @classmethod
    def from_payload(cls, payload: object) -> DocumentSnapshot:
        if not isinstance(payload, dict):
            return cls()

        nodes: list[TextNode] = []
        for raw_node in payload.get("nodes") or []:
            if not isinstance(raw_node, dict):
                continue
            text = raw_node.get("text")
            if not isinstance(text, str):
                continue
            height = raw_node.get("height")
            nodes.append(
                TextNode(
                    text=text,
                    height=float(height) if isinstance(height, (int, float)) else 0.0,
                )
            )

        selector_texts: dict[str, str] = {}
        raw_selectors = payload.get("selectors")
        if isinstance(raw_selectors, dict):
            for selector, text in raw_selectors.items():
                if isinstance(selector, str) and isinstance(text, str):
                    selector_texts[selector] = text

        inputs: list[InputField] = []
        for raw_input in payload.get("inputs") or []:
            if not isinstance(raw_input, dict):
                continue
            inputs.append(
                InputField(
                    value=str(raw_input.get("value") or ""),
                    type=str(raw_input.get("type") or "text").lower(),
                    id=str(raw_input.get("id") or ""),
                )
            )

        return cls(nodes=tuple(nodes), selector_texts=selector_texts, inputs=tuple(inputs))
