"""Markdown-ish issue bodies to Notion content blocks.

GitHub issue bodies are flat markdown. Notion pages are a list of typed
blocks. The translation is shallow: the body is split on blank
lines and each paragraph becomes exactly one block, classified by its leading
token:

- ```lang ... ```  -> code (fences and language tag stripped)
- # / ## / ###     -> heading_1..3 (deeper headings clamp to 3)
- "- " or "* "     -> one bulleted_list_item holding every line of the run
- anything else    -> paragraph

Inline markdown (bold, links, ...) is passed through as plain text.
"""

import re

from gh2notion.models import BlockType, ContentBlock

FENCE = "```"
MAX_HEADING_LEVEL = 3
BULLET_MARKERS = ("- ", "* ")

# Notion rejects a single text object longer than this.
MAX_TEXT_LENGTH = 2000

_HEADING_RE = re.compile(r"^(#+) (.*)$", re.DOTALL)

# Subset of Notion's accepted code languages, plus common fence aliases.
_LANGUAGE_ALIASES = {
    "py": "python",
    "js": "javascript",
    "ts": "typescript",
    "sh": "shell",
    "bash": "bash",
    "zsh": "shell",
    "yml": "yaml",
    "rb": "ruby",
    "rs": "rust",
    "kt": "kotlin",
    "cs": "c#",
    "csharp": "c#",
    "cpp": "c++",
    "md": "markdown",
    "text": "plain text",
    "txt": "plain text",
}
_NOTION_LANGUAGES = {
    "bash",
    "c",
    "c#",
    "c++",
    "css",
    "diff",
    "docker",
    "go",
    "graphql",
    "html",
    "java",
    "javascript",
    "json",
    "kotlin",
    "makefile",
    "markdown",
    "php",
    "plain text",
    "powershell",
    "python",
    "ruby",
    "rust",
    "scala",
    "shell",
    "sql",
    "swift",
    "toml",
    "typescript",
    "xml",
    "yaml",
}


def _is_fence(line: str) -> bool:
    return line.lstrip().startswith(FENCE)


def _split_paragraphs(text: str) -> list[list[str]]:
    """Group lines into paragraphs separated by blank lines.

    A fenced code block is kept whole even when it contains blank lines, and
    ends its paragraph at the closing fence.
    """
    paragraphs: list[list[str]] = []
    current: list[str] = []
    in_fence = False

    for line in text.replace("\r\n", "\n").split("\n"):
        if in_fence:
            current.append(line)
            if _is_fence(line):
                paragraphs.append(current)
                current = []
                in_fence = False
            continue

        if not line.strip():
            if current:
                paragraphs.append(current)
                current = []
            continue

        if not current and _is_fence(line):
            current = [line]
            # ```code``` on a single line opens and closes at once
            in_fence = line.strip().count(FENCE) < 2 or line.strip() == FENCE
            if not in_fence:
                paragraphs.append(current)
                current = []
            continue

        current.append(line)

    if current:
        paragraphs.append(current)
    return paragraphs


def _code_block(lines: list[str]) -> ContentBlock:
    opening = lines[0].strip()[len(FENCE) :]
    if FENCE in opening:
        # single-line fence
        return ContentBlock(type=BlockType.CODE, text=opening[: opening.index(FENCE)])

    interior = lines[1:]
    if interior and _is_fence(interior[-1]):
        interior = interior[:-1]
    tag = opening.strip().split()[0] if opening.strip() else None
    return ContentBlock(type=BlockType.CODE, text="\n".join(interior), language=tag)


def _bulleted_block(lines: list[str], marker: str) -> ContentBlock:
    items = [line[len(marker) :] if line.startswith(marker) else line for line in lines]
    return ContentBlock(type=BlockType.BULLETED_LIST_ITEM, text="\n".join(items))


def _classify(lines: list[str]) -> ContentBlock:
    if _is_fence(lines[0]):
        return _code_block(lines)

    paragraph = "\n".join(lines)
    heading = _HEADING_RE.match(paragraph)
    if heading:
        level = min(len(heading.group(1)), MAX_HEADING_LEVEL)
        return ContentBlock(type=BlockType.HEADING, text=heading.group(2).strip(), level=level)

    for marker in BULLET_MARKERS:
        if paragraph.startswith(marker):
            return _bulleted_block(lines, marker)

    return ContentBlock(type=BlockType.PARAGRAPH, text=paragraph)


def to_blocks(text: str | None) -> list[ContentBlock]:
    """Translate an issue body into content blocks. Never raises."""
    if not text or not text.strip():
        return []
    blocks = [_classify(lines) for lines in _split_paragraphs(text)]
    return [b for b in blocks if not (b.type is BlockType.PARAGRAPH and not b.text.strip())]


# ---------------------------------------------------------------------------
# Notion envelopes
# ---------------------------------------------------------------------------


def rich_text(content: str) -> list[dict]:
    """Split content into Notion text objects of at most MAX_TEXT_LENGTH chars."""
    return [
        {"type": "text", "text": {"content": content[i : i + MAX_TEXT_LENGTH]}}
        for i in range(0, len(content), MAX_TEXT_LENGTH)
    ]


def notion_language(tag: str | None) -> str:
    if not tag:
        return "plain text"
    tag = tag.lower()
    tag = _LANGUAGE_ALIASES.get(tag, tag)
    return tag if tag in _NOTION_LANGUAGES else "plain text"


def to_notion_block(block: ContentBlock) -> dict:
    if block.type is BlockType.HEADING:
        block_type = f"heading_{block.level or 1}"
        payload: dict = {"rich_text": rich_text(block.text)}
    elif block.type is BlockType.CODE:
        block_type = "code"
        payload = {"rich_text": rich_text(block.text), "language": notion_language(block.language)}
    else:
        block_type = block.type.value
        payload = {"rich_text": rich_text(block.text)}
    return {"object": "block", "type": block_type, block_type: payload}


def to_notion_blocks(blocks: list[ContentBlock]) -> list[dict]:
    return [to_notion_block(b) for b in blocks]
