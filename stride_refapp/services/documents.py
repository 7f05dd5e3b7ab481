"""
Builders for the Atlassian document format (ADF) used in message bodies.

    doc = Document()
    doc.paragraph().text("Here is some ").strong("bold text")
    card = doc.application_card("Incident #4253").description("Something is broken")
    card.action().title("Ack").target({"key": "refapp-action-callService-updateMessage"})
    body = doc.to_json()
"""
from typing import Any, Iterator


def text_doc(text: str) -> dict:
    if not text:
        raise ValueError("Stride/convertTextToDoc: missing param text!")
    return {
        "version": 1,
        "type": "doc",
        "content": [
            {"type": "paragraph", "content": [{"type": "text", "text": text}]},
        ],
    }


def find_mentions(node: Any) -> list[dict]:
    """Every mention node anywhere in a payload, in document order."""
    return list(_iter_mentions(node))


def _iter_mentions(node: Any) -> Iterator[dict]:
    if isinstance(node, dict):
        if node.get("type") == "mention":
            yield node
        for value in node.values():
            yield from _iter_mentions(value)
    elif isinstance(node, list):
        for item in node:
            yield from _iter_mentions(item)


class Paragraph:
    def __init__(self) -> None:
        self.content: list[dict] = []

    def _text(self, text: str, *marks: dict) -> "Paragraph":
        node: dict[str, Any] = {"type": "text", "text": text}
        if marks:
            node["marks"] = list(marks)
        self.content.append(node)
        return self

    def text(self, text: str) -> "Paragraph":
        return self._text(text)

    def strong(self, text: str) -> "Paragraph":
        return self._text(text, {"type": "strong"})

    def em(self, text: str) -> "Paragraph":
        return self._text(text, {"type": "em"})

    def code(self, text: str) -> "Paragraph":
        return self._text(text, {"type": "code"})

    def link(self, text: str, href: str) -> "Paragraph":
        return self._text(text, {"type": "link", "attrs": {"href": href}})

    def emoji(self, short_name: str) -> "Paragraph":
        self.content.append({"type": "emoji", "attrs": {"shortName": short_name}})
        return self

    def mention(self, user_id: str, text: str) -> "Paragraph":
        self.content.append({"type": "mention", "attrs": {"id": user_id, "text": text}})
        return self

    def to_json(self) -> dict:
        return {"type": "paragraph", "content": self.content}


class BulletList:
    def __init__(self) -> None:
        self.items: list[Paragraph] = []

    def text_item(self, text: str) -> "BulletList":
        self.items.append(Paragraph().text(text))
        return self

    def to_json(self) -> dict:
        return {
            "type": "bulletList",
            "content": [{"type": "listItem", "content": [p.to_json()]} for p in self.items],
        }


class Panel:
    def __init__(self, panel_type: str) -> None:
        self.panel_type = panel_type
        self.paragraphs: list[Paragraph] = []

    def paragraph(self) -> Paragraph:
        p = Paragraph()
        self.paragraphs.append(p)
        return p

    def to_json(self) -> dict:
        return {
            "type": "panel",
            "attrs": {"panelType": self.panel_type},
            "content": [p.to_json() for p in self.paragraphs],
        }


class CodeBlock:
    def __init__(self, language: str) -> None:
        self.language = language
        self.lines: list[str] = []

    def text(self, text: str) -> "CodeBlock":
        self.lines.append(text)
        return self

    def to_json(self) -> dict:
        return {
            "type": "codeBlock",
            "attrs": {"language": self.language},
            "content": [{"type": "text", "text": "".join(self.lines)}],
        }


class CardDetail:
    def __init__(self) -> None:
        self.attrs: dict[str, Any] = {}

    def title(self, title: str) -> "CardDetail":
        self.attrs["title"] = title
        return self

    def text(self, text: str) -> "CardDetail":
        self.attrs["text"] = text
        return self

    def icon(self, icon: dict) -> "CardDetail":
        self.attrs["icon"] = icon
        return self


class CardAction:
    def __init__(self) -> None:
        self.attrs: dict[str, Any] = {}

    def title(self, title: str) -> "CardAction":
        self.attrs["title"] = title
        return self

    def target(self, target: dict) -> "CardAction":
        self.attrs["target"] = target
        return self

    def parameters(self, parameters: dict) -> "CardAction":
        self.attrs["parameters"] = parameters
        return self


class ApplicationCard:
    def __init__(self, title: str) -> None:
        self.attrs: dict[str, Any] = {"text": title, "title": {"text": title}}
        self.details: list[CardDetail] = []
        self.actions: list[CardAction] = []

    def link(self, url: str) -> "ApplicationCard":
        self.attrs["link"] = {"url": url}
        return self

    def description(self, text: str) -> "ApplicationCard":
        self.attrs["description"] = {"text": text}
        return self

    def detail(self) -> CardDetail:
        d = CardDetail()
        self.details.append(d)
        return d

    def action(self) -> CardAction:
        a = CardAction()
        self.actions.append(a)
        return a

    def context(self, text: str) -> "ApplicationCard":
        self.attrs["context"] = {"text": text}
        return self

    def icon(self, icon: dict) -> "ApplicationCard":
        # Applies to the context footer, as in `.context("A footer").icon(...)`
        self.attrs.setdefault("context", {})["icon"] = icon
        return self

    def to_json(self) -> dict:
        attrs = dict(self.attrs)
        if self.details:
            attrs["details"] = [d.attrs for d in self.details]
        if self.actions:
            attrs["actions"] = [a.attrs for a in self.actions]
        return {"type": "applicationCard", "attrs": attrs}


class MediaGroup:
    def __init__(self) -> None:
        self.items: list[dict] = []

    def media(self, id: str, collection: str, type: str = "file") -> "MediaGroup":
        self.items.append({"type": "media", "attrs": {"type": type, "id": id, "collection": collection}})
        return self

    def to_json(self) -> dict:
        return {"type": "mediaGroup", "content": self.items}


class Document:
    def __init__(self) -> None:
        self.nodes: list[Any] = []

    def _add(self, node):
        self.nodes.append(node)
        return node

    def paragraph(self) -> Paragraph:
        return self._add(Paragraph())

    def bullet_list(self) -> BulletList:
        return self._add(BulletList())

    def panel(self, panel_type: str) -> Panel:
        return self._add(Panel(panel_type))

    def code_block(self, language: str) -> CodeBlock:
        return self._add(CodeBlock(language))

    def application_card(self, title: str) -> ApplicationCard:
        return self._add(ApplicationCard(title))

    def media_group(self) -> MediaGroup:
        return self._add(MediaGroup())

    def to_json(self) -> dict:
        return {
            "version": 1,
            "type": "doc",
            "content": [node.to_json() for node in self.nodes],
        }
