"""Structured model of a generated Playwright test module.

The model keeps every byte of the source: imports are parsed into declarations,
the remaining text is split into top-level blocks (plain text, hooks, describe
groups and test cases). Rendering an unmodified model reproduces the input, so
edits only touch the blocks they target.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import Iterator, Literal, Sequence

BlockKind = Literal["text", "hook", "describe", "test"]

_IMPORT_LINE = re.compile(r"^import\s")
_IMPORT_STATEMENT = re.compile(
    r"""^import\s+(?:(?P<clause>.+?)\s+from\s+)?['"](?P<source>[^'"]+)['"]\s*;?\s*$"""
)
_CALL_START = re.compile(r"test(?:\.(?P<member>describe|beforeEach|afterEach|beforeAll|afterAll))?\s*\(")
_TITLE = r"(?:`(?:[^`\\]|\\.)*`|'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\")"
_ASYNC_TEST = re.compile(r"^test\s*\(\s*" + _TITLE + r"\s*,\s*async\b")
_SYNC_TEST = re.compile(r"^(test\s*\(\s*" + _TITLE + r"\s*,\s*)(?=\(|function\b|[A-Za-z_$][\w$]*\s*=>)")
_IDENTIFIER_CHAR = re.compile(r"[\w$.]")

_OPENERS = {"(": ")", "{": "}", "[": "]"}
_CLOSERS = {")": "(", "}": "{", "]": "["}


@dataclass(slots=True)
class ImportDecl:
    source: str
    default: str | None = None
    names: list[str] = field(default_factory=list)
    raw: str | None = None

    @classmethod
    def parse(cls, line: str) -> ImportDecl:
        match = _IMPORT_STATEMENT.match(line.strip())
        if not match:
            return cls(source="", raw=line)
        clause = (match.group("clause") or "").strip()
        default: str | None = None
        names: list[str] = []
        named_part = ""
        if "{" in clause:
            before, _, rest = clause.partition("{")
            named_part = rest.partition("}")[0]
            default = before.strip().rstrip(",").strip() or None
        elif clause:
            default = clause
        names = [item.strip() for item in named_part.split(",") if item.strip()]
        return cls(source=match.group("source"), default=default, names=names, raw=line)

    def provides(self, name: str) -> bool:
        if name == self.source or name == self.default:
            return True
        return any(item.split(" as ")[-1].strip() == name for item in self.names)

    def add_name(self, name: str) -> None:
        if name not in self.names:
            self.names.append(name)
            self.raw = None

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        parts: list[str] = []
        if self.default:
            parts.append(self.default)
        if self.names:
            parts.append("{ " + ", ".join(self.names) + " }")
        if not parts:
            return f"import '{self.source}';"
        return f"import {', '.join(parts)} from '{self.source}';"


@dataclass(slots=True)
class Block:
    kind: BlockKind
    text: str
    name: str = ""
    children: list[Block] = field(default_factory=list)
    closer: str = ""

    def render(self) -> str:
        if self.kind == "describe":
            return self.text + "".join(child.render() for child in self.children) + self.closer
        return self.text

    @property
    def is_async(self) -> bool:
        return self.kind != "test" or bool(_ASYNC_TEST.match(self.text.lstrip()))


@dataclass(slots=True)
class TestModule:
    imports: list[ImportDecl] = field(default_factory=list)
    body: list[Block] = field(default_factory=list)
    prologue: str = ""

    def render(self) -> str:
        body = "".join(block.render() for block in self.body)
        if not self.imports:
            return self.prologue + body
        import_text = "\n".join(decl.render() for decl in self.imports)
        if body and not body.startswith("\n"):
            body = "\n" + body
        return self.prologue + import_text + body

    def find_import(self, name: str) -> ImportDecl | None:
        for decl in self.imports:
            if decl.provides(name):
                return decl
        return None

    def find_import_from(self, source: str) -> ImportDecl | None:
        for decl in self.imports:
            if decl.source == source:
                return decl
        return None

    def add_import(self, decl: ImportDecl) -> None:
        self.imports.append(decl)

    def iter_blocks(self) -> Iterator[Block]:
        stack = list(reversed(self.body))
        while stack:
            block = stack.pop()
            yield block
            if block.kind == "describe":
                stack.extend(reversed(block.children))

    def tests(self) -> list[Block]:
        return [block for block in self.iter_blocks() if block.kind == "test"]

    def hooks(self, name: str) -> list[Block]:
        return [block for block in self.iter_blocks() if block.kind == "hook" and block.name == name]

    def describes(self) -> list[Block]:
        return [block for block in self.body if block.kind == "describe"]


def parse_test_module(source: str) -> TestModule:
    lines = source.split("\n")
    first = next((index for index, line in enumerate(lines) if _IMPORT_LINE.match(line)), None)
    if first is None:
        return TestModule(body=parse_blocks(source))

    last = first
    while last + 1 < len(lines) and _IMPORT_LINE.match(lines[last + 1]):
        last += 1
    prologue = "\n".join(lines[:first])
    if first > 0:
        prologue += "\n"
    imports = [ImportDecl.parse(line) for line in lines[first : last + 1]]
    rest = lines[last + 1 :]
    body_text = "\n" + "\n".join(rest) if rest else ""
    return TestModule(imports=imports, body=parse_blocks(body_text), prologue=prologue)


def parse_blocks(text: str) -> list[Block]:
    blocks: list[Block] = []
    cursor = 0
    for start, member in _top_level_calls(text):
        open_index = text.index("(", start)
        close_index = find_matching(text, open_index)
        if close_index is None:
            break
        end = close_index + 1
        if end < len(text) and text[end] == ";":
            end += 1
        if start > cursor:
            blocks.append(Block("text", text[cursor:start]))
        call_text = text[start:end]
        if member == "describe":
            blocks.append(_describe_block(call_text))
        elif member:
            blocks.append(Block("hook", call_text, name=member))
        else:
            blocks.append(Block("test", call_text))
        cursor = end
    if cursor < len(text):
        blocks.append(Block("text", text[cursor:]))
    return blocks


def _describe_block(call_text: str) -> Block:
    arrow = _find_outside_strings(call_text, "=>")
    body_open = _find_outside_strings(call_text, "{", arrow) if arrow is not None else None
    body_close = find_matching(call_text, body_open) if body_open is not None else None
    if body_open is None or body_close is None:
        return Block("describe", call_text, name="describe")
    return Block(
        "describe",
        call_text[: body_open + 1],
        name="describe",
        children=parse_blocks(call_text[body_open + 1 : body_close]),
        closer=call_text[body_close:],
    )


def _top_level_calls(text: str) -> Iterator[tuple[int, str | None]]:
    depth = 0
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        skipped = _skip_literal_or_comment(text, index)
        if skipped != index:
            index = skipped
            continue
        if char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth = max(depth - 1, 0)
        elif depth == 0 and char == "t":
            previous = text[index - 1] if index else ""
            match = _CALL_START.match(text, index)
            if match and not _IDENTIFIER_CHAR.match(previous):
                open_index = match.end() - 1
                close_index = find_matching(text, open_index)
                yield index, match.group("member")
                if close_index is None:
                    return
                index = close_index + 1
                continue
        index += 1


def _skip_literal_or_comment(text: str, index: int) -> int:
    char = text[index]
    if char in "'\"`":
        cursor = index + 1
        while cursor < len(text):
            if text[cursor] == "\\":
                cursor += 2
                continue
            if text[cursor] == char:
                return cursor + 1
            cursor += 1
        return len(text)
    if text.startswith("//", index):
        newline = text.find("\n", index)
        return len(text) if newline == -1 else newline
    if text.startswith("/*", index):
        end = text.find("*/", index + 2)
        return len(text) if end == -1 else end + 2
    return index


def _find_outside_strings(text: str, token: str, start: int = 0) -> int | None:
    index = start
    while index < len(text):
        skipped = _skip_literal_or_comment(text, index)
        if skipped != index:
            index = skipped
            continue
        if text.startswith(token, index):
            return index
        index += 1
    return None


def find_matching(text: str, open_index: int) -> int | None:
    """Index of the bracket closing the one at ``open_index``, skipping strings and comments."""
    stack: list[str] = []
    index = open_index
    while index < len(text):
        skipped = _skip_literal_or_comment(text, index)
        if skipped != index:
            index = skipped
            continue
        char = text[index]
        if char in _OPENERS:
            stack.append(char)
        elif char in _CLOSERS:
            if not stack or stack[-1] != _CLOSERS[char]:
                return None
            stack.pop()
            if not stack:
                return index
        index += 1
    return None


@dataclass(frozen=True, slots=True)
class BracketBalance:
    unclosed: tuple[str, ...]
    unexpected: tuple[str, ...]

    @property
    def balanced(self) -> bool:
        return not self.unclosed and not self.unexpected

    def closing_suffix(self) -> str:
        return "".join(_OPENERS[char] for char in reversed(self.unclosed))


def bracket_balance(text: str) -> BracketBalance:
    stack: list[str] = []
    unexpected: list[str] = []
    index = 0
    while index < len(text):
        skipped = _skip_literal_or_comment(text, index)
        if skipped != index:
            index = skipped
            continue
        char = text[index]
        if char in _OPENERS:
            stack.append(char)
        elif char in _CLOSERS:
            if stack and stack[-1] == _CLOSERS[char]:
                stack.pop()
            else:
                unexpected.append(char)
        index += 1
    return BracketBalance(tuple(stack), tuple(unexpected))


def make_test_async(block: Block) -> bool:
    if block.kind != "test" or block.is_async:
        return False
    leading = block.text[: len(block.text) - len(block.text.lstrip())]
    updated, count = _SYNC_TEST.subn(r"\1async ", block.text.lstrip(), count=1)
    if not count:
        return False
    block.text = leading + updated
    return True


def indent_lines(lines: Sequence[str], depth: int) -> str:
    prefix = "    " * depth
    return "\n".join(f"{prefix}{line}" if line else "" for line in lines)
