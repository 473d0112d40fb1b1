"""Named function extraction from JavaScript and TypeScript sources using tree-sitter."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import tree_sitter_javascript
import tree_sitter_typescript
from tree_sitter import Language, Node, Parser

from ..errors import ParseError, ValidationError

logger = logging.getLogger(__name__)


class FunctionKind(str, Enum):
    FUNCTION = "function"
    GENERATOR = "generator"


# Only named declarations are indexed; expressions, arrows and methods are not.
DECLARATION_KINDS: dict[str, FunctionKind] = {
    "function_declaration": FunctionKind.FUNCTION,
    "generator_function_declaration": FunctionKind.GENERATOR,
}

# Grammar loaders by file suffix; anything else is parsed as JavaScript
GRAMMARS = {
    "javascript": tree_sitter_javascript.language,
    "typescript": tree_sitter_typescript.language_typescript,
    "tsx": tree_sitter_typescript.language_tsx,
}
SUFFIX_GRAMMARS = {".ts": "typescript", ".tsx": "tsx"}


def grammar_for(file_path: str | Path) -> str:
    return SUFFIX_GRAMMARS.get(Path(file_path).suffix.lower(), "javascript")


@dataclass
class ExtractedFunction:
    """A named function declaration found in a source file."""

    name: str
    code: str
    file_path: str
    kind: FunctionKind = FunctionKind.FUNCTION
    line: int = 0


class FunctionExtractor:
    """Parse a file and return its named function declarations in source order."""

    def __init__(self):
        self._parsers: dict[str, Parser] = {}

    def _parser_for(self, file_path: str) -> Parser:
        grammar = grammar_for(file_path)
        parser = self._parsers.get(grammar)
        if parser is None:
            parser = Parser(Language(GRAMMARS[grammar]()))
            self._parsers[grammar] = parser
        return parser

    def extract(self, file_path: str | Path) -> list[ExtractedFunction]:
        if not file_path or not str(file_path).strip():
            raise ValidationError("Invalid file path: must be a non-empty string")

        resolved = Path(file_path).resolve()
        try:
            source = resolved.read_bytes()
        except OSError as exc:
            raise ParseError(f"Failed to read file {resolved}: {exc}", str(resolved), exc) from exc
        try:
            source.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(f"File {resolved} is not valid UTF-8", str(resolved), exc) from exc

        return self.extract_source(source, str(resolved))

    def extract_source(self, source: bytes, file_path: str) -> list[ExtractedFunction]:
        tree = self._parser_for(file_path).parse(source)
        root = tree.root_node if tree is not None else None
        if root is None:
            raise ParseError(f"Failed to parse file {file_path}: invalid syntax tree", file_path)
        if root.has_error:
            raise ParseError(f"Failed to parse file {file_path}: syntax errors present", file_path)

        results: list[ExtractedFunction] = []
        # Explicit pre-order walk keeps deeply nested sources off the Python stack
        stack: list[Node] = [root]
        while stack:
            node = stack.pop()
            kind = DECLARATION_KINDS.get(node.type)
            if kind is not None:
                found = self._to_function(node, kind, source, file_path)
                if found is not None:
                    results.append(found)
            stack.extend(reversed(node.children))

        logger.debug("Extracted %d functions from %s", len(results), file_path)
        return results

    @staticmethod
    def _to_function(
        node: Node, kind: FunctionKind, source: bytes, file_path: str
    ) -> ExtractedFunction | None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return None
        name = source[name_node.start_byte : name_node.end_byte].decode("utf-8")
        if not name.strip():
            return None
        code = source[node.start_byte : node.end_byte].decode("utf-8")
        if not code.strip():
            return None
        return ExtractedFunction(
            name=name,
            code=code,
            file_path=file_path,
            kind=kind,
            line=node.start_point[0] + 1,
        )


_default_extractor: FunctionExtractor | None = None


def extract_functions(file_path: str | Path) -> list[ExtractedFunction]:
    """Module-level convenience wrapper around a shared extractor."""
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = FunctionExtractor()
    return _default_extractor.extract(file_path)
