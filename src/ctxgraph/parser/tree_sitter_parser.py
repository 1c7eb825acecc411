"""Tree-sitter based symbol and import extraction."""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field

from pydantic import ValidationError

from ctxgraph.exceptions import ParserError
from ctxgraph.parser.models import FileRecord, Symbol, SymbolKind

# Tree-sitter grammar module and the function returning its Language capsule
_TS_LANGUAGE_MODULES: dict[str, tuple[str, str]] = {
    "python": ("tree_sitter_python", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

_JS_DECLARATIONS: dict[str, SymbolKind] = {
    "function_declaration": SymbolKind.FUNCTION,
    "generator_function_declaration": SymbolKind.FUNCTION,
    "class_declaration": SymbolKind.CLASS,
    "method_definition": SymbolKind.METHOD,
}

_TS_DECLARATIONS: dict[str, SymbolKind] = {
    **_JS_DECLARATIONS,
    "abstract_class_declaration": SymbolKind.CLASS,
    "interface_declaration": SymbolKind.INTERFACE,
    "type_alias_declaration": SymbolKind.INTERFACE,
    "enum_declaration": SymbolKind.CLASS,
    "function_signature": SymbolKind.FUNCTION,
}

# Node types that represent declarations per language
_SYMBOL_NODE_TYPES: dict[str, dict[str, SymbolKind]] = {
    "python": {
        "function_definition": SymbolKind.FUNCTION,
        "class_definition": SymbolKind.CLASS,
    },
    "javascript": _JS_DECLARATIONS,
    "typescript": _TS_DECLARATIONS,
    "tsx": _TS_DECLARATIONS,
}

# Variable declarations whose declarators may bind functions
_DECLARATOR_PARENTS = {"lexical_declaration", "variable_declaration"}

# Values that turn a `const name = ...` binding into a function
_FUNCTION_VALUES = {
    "arrow_function",
    "function",
    "function_expression",
    "generator_function",
}

_CLASS_TYPES = {"class_definition", "class_declaration", "abstract_class_declaration"}

_MAX_SIGNATURE = 160


def is_available(language: str | None = None) -> bool:
    """Check if tree-sitter and the required language grammar are available."""
    try:
        import tree_sitter  # noqa: F401
    except ImportError:
        return False

    if language is None:
        return True

    entry = _TS_LANGUAGE_MODULES.get(language)
    if not entry:
        return False

    try:
        importlib.import_module(entry[0])
        return True
    except ImportError:
        return False


def _get_language(lang: str):
    """Get a tree-sitter Language object for the given language."""
    from tree_sitter import Language

    entry = _TS_LANGUAGE_MODULES.get(lang)
    if not entry:
        raise ValueError(f"No tree-sitter grammar for language: {lang}")

    module_name, factory = entry
    module = importlib.import_module(module_name)
    return Language(getattr(module, factory)())


@dataclass
class _Extraction:
    symbols: list[Symbol] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)


def parse_source(path: str, source: str, language: str) -> FileRecord:
    """Parse one file into a FileRecord.

    Raises:
        ParserError: parsing failed, the tree contains syntax errors, or a
            declaration could not be turned into a valid Symbol.
    """
    from tree_sitter import Parser

    source_bytes = source.encode("utf-8")
    try:
        parser = Parser(_get_language(language))
        tree = parser.parse(source_bytes)
    except Exception as e:
        raise ParserError(path, f"tree-sitter failed: {e}") from e

    if tree.root_node.has_error:
        raise ParserError(path, "syntax errors in source")

    result = _Extraction()
    walker = _Walker(language, source_bytes, result)
    try:
        walker.walk(tree.root_node, top_level=True, in_class=False)
    except ValidationError as e:
        raise ParserError(path, f"invalid declaration: {e.errors()[0]['msg']}") from e

    return FileRecord(
        path=path,
        language=language,
        content=source,
        symbols=result.symbols,
        import_paths=_dedupe(result.imports),
    )


def extract_symbols(path: str, source: str, language: str) -> list[Symbol]:
    """Extract declarations from `source` in document order."""
    return parse_source(path, source, language).symbols


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out = []
    for item in items:
        if item and item not in seen:
            seen.add(item)
            out.append(item)
    return out


def _text(node) -> str:
    return node.text.decode("utf-8", errors="replace")


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _first_line(text: str) -> str:
    line = text.strip().split("\n")[0].strip()
    if len(line) > _MAX_SIGNATURE:
        line = line[:_MAX_SIGNATURE].rstrip() + "..."
    return line


def _unquote(text: str) -> str:
    return text.strip().strip("'\"`")


class _Walker:
    """Depth-first traversal emitting symbols and raw imports."""

    def __init__(self, language: str, source: bytes, result: _Extraction) -> None:
        self.language = language
        self.source = source
        self.result = result
        self.symbol_types = _SYMBOL_NODE_TYPES[language]
        self.placeholder = " ..." if language == "python" else " { ... }"

    def walk(self, node, top_level: bool, in_class: bool) -> None:
        for child in node.children:
            self._visit(child, top_level, in_class)

    def _visit(self, node, top_level: bool, in_class: bool, sig_start: int | None = None) -> None:
        node_type = node.type

        if node_type in self.symbol_types:
            self._emit_declaration(node, top_level, in_class, sig_start)
            # Nested definitions (methods in classes, inner functions)
            self.walk(node, top_level=False, in_class=node_type in _CLASS_TYPES)
            return

        if self.language == "python":
            if node_type in ("import_statement", "import_from_statement"):
                self._python_import(node)
                return
            if node_type == "expression_statement" and top_level:
                self._python_assignment(node)
                return
            if node_type == "decorated_definition":
                # Decorators are not part of the signature
                self.walk(node, top_level, in_class)
                return
        else:
            if node_type == "import_statement":
                source = node.child_by_field_name("source")
                if source is not None:
                    self.result.imports.append(_unquote(_text(source)))
                return
            if node_type == "export_statement":
                self._export(node, top_level, in_class)
                return
            if node_type in _DECLARATOR_PARENTS:
                self._declarators(node, top_level, sig_start)
                return
            if node_type == "call_expression":
                self._require(node)

        # Continue walking; class bodies keep their class context
        self.walk(node, top_level=False, in_class=in_class and node_type in (
            "block", "class_body"
        ))

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def _emit_declaration(
        self, node, top_level: bool, in_class: bool, sig_start: int | None
    ) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        name = _text(name_node)
        if not name:
            return

        kind = self.symbol_types[node.type]
        if kind == SymbolKind.FUNCTION and in_class:
            kind = SymbolKind.METHOD

        start = node.start_byte if sig_start is None else sig_start
        header_end = self._header_end(node)
        if header_end is None:
            signature = _first_line(self.source[start:node.end_byte].decode("utf-8", "replace"))
        else:
            header = self.source[start:header_end].decode("utf-8", errors="replace")
            signature = _collapse(header) + self.placeholder

        self.result.symbols.append(
            Symbol(
                name=name,
                kind=kind,
                signature=signature,
                start_line=node.start_point[0],
                end_line=node.end_point[0],
                exported=self._is_exported(name, top_level, sig_start),
            )
        )

    def _is_exported(self, name: str, top_level: bool, sig_start: int | None) -> bool:
        if self.language == "python":
            return top_level and not name.startswith("_")
        # JS/TS declarations are exported only when wrapped in `export`
        return sig_start is not None

    def _header_end(self, node) -> int | None:
        """Byte offset where the declaration's body begins, if it has one."""
        body = node.child_by_field_name("body")
        if body is None:
            return None
        if self.language == "python":
            # End at the header colon so trailing comments stay out
            colon_end = None
            for child in node.children:
                if child.start_byte >= body.start_byte:
                    break
                if child.type == ":":
                    colon_end = child.end_byte
            if colon_end is not None:
                return colon_end
        return body.start_byte

    def _declarators(self, node, top_level: bool, sig_start: int | None) -> None:
        keyword = node.children[0].type if node.children else ""
        prefix = "export " if sig_start is not None else ""
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            value = declarator.child_by_field_name("value")
            is_function = value is not None and value.type in _FUNCTION_VALUES
            if top_level or is_function:
                self._emit_declarator(
                    declarator, value, is_function, f"{prefix}{keyword} ", node,
                    exported=sig_start is not None,
                )
            if value is not None:
                # Functions nested inside the bound value
                self._visit(value, top_level=False, in_class=False)

    def _emit_declarator(
        self, declarator, value, is_function: bool, prefix: str, outer, exported: bool
    ) -> None:
        name_node = declarator.child_by_field_name("name")
        if name_node is None or name_node.type != "identifier":
            return  # destructuring patterns bind no single name

        body = value.child_by_field_name("body") if is_function else None
        if body is not None:
            header = self.source[declarator.start_byte:body.start_byte].decode("utf-8", "replace")
            signature = prefix + _collapse(header) + self.placeholder
            kind = SymbolKind.FUNCTION
        else:
            signature = prefix + _first_line(_text(declarator))
            kind = SymbolKind.FUNCTION if is_function else SymbolKind.VARIABLE

        self.result.symbols.append(
            Symbol(
                name=_text(name_node),
                kind=kind,
                signature=signature,
                start_line=outer.start_point[0],
                end_line=declarator.end_point[0],
                exported=exported,
            )
        )

    def _export(self, node, top_level: bool, in_class: bool) -> None:
        source = node.child_by_field_name("source")
        if source is not None:
            self.result.imports.append(_unquote(_text(source)))

        declaration = node.child_by_field_name("declaration")
        if declaration is not None:
            self._visit(declaration, top_level, in_class, sig_start=node.start_byte)
            return

        statement = _first_line(_text(node))
        for child in node.named_children:
            if child.type == "export_clause":
                for specifier in child.named_children:
                    if specifier.type != "export_specifier":
                        continue
                    alias = specifier.child_by_field_name("alias")
                    name = specifier.child_by_field_name("name")
                    target = alias if alias is not None else name
                    exported_name = _unquote(_text(target)) if target is not None else ""
                    if not exported_name:
                        continue  # `export { x as "" }` binds no usable name
                    self.result.symbols.append(
                        Symbol(
                            name=exported_name,
                            kind=SymbolKind.EXPORT,
                            signature=statement,
                            start_line=node.start_point[0],
                            end_line=node.end_point[0],
                            exported=True,
                        )
                    )

        value = node.child_by_field_name("value")
        if value is None:
            return
        if value.type == "identifier":
            self.result.symbols.append(
                Symbol(
                    name=_text(value),
                    kind=SymbolKind.EXPORT,
                    signature=statement,
                    start_line=node.start_point[0],
                    end_line=node.end_point[0],
                    exported=True,
                )
            )
        else:
            # `export default function named() {}`; anonymous values are skipped
            value_kind = SymbolKind.CLASS if value.type == "class" else SymbolKind.FUNCTION
            name_node = value.child_by_field_name("name")
            if name_node is not None and value.type in _FUNCTION_VALUES | {"class"}:
                header_end = self._header_end(value)
                end = header_end if header_end is not None else value.end_byte
                header = self.source[node.start_byte:end].decode("utf-8", "replace")
                self.result.symbols.append(
                    Symbol(
                        name=_text(name_node),
                        kind=value_kind,
                        signature=_collapse(header) + self.placeholder,
                        start_line=node.start_point[0],
                        end_line=node.end_point[0],
                        exported=True,
                    )
                )
            self.walk(value, top_level=False, in_class=value.type == "class")

    # ------------------------------------------------------------------
    # Imports
    # ------------------------------------------------------------------

    def _require(self, node) -> None:
        func = node.child_by_field_name("function")
        args = node.child_by_field_name("arguments")
        if func is None or args is None or _text(func) != "require":
            return
        strings = [a for a in args.named_children if a.type in ("string", "template_string")]
        if strings:
            self.result.imports.append(_unquote(_text(strings[0])))

    def _python_import(self, node) -> None:
        if node.type == "import_statement":
            for name in node.children_by_field_name("name"):
                target = name.child_by_field_name("name") if name.type == "aliased_import" else name
                if target is not None:
                    self.result.imports.append(_text(target))
            return

        module = node.child_by_field_name("module_name")
        if module is None:
            return
        module_text = _text(module).replace(" ", "")
        self.result.imports.append(module_text)
        # `from pkg import mod` may name submodules
        sep = "" if module_text.endswith(".") else "."
        for name in node.children_by_field_name("name"):
            target = name.child_by_field_name("name") if name.type == "aliased_import" else name
            if target is not None:
                self.result.imports.append(f"{module_text}{sep}{_text(target)}")

    def _python_assignment(self, node) -> None:
        for child in node.named_children:
            if child.type != "assignment":
                continue
            left = child.child_by_field_name("left")
            if left is None or left.type != "identifier":
                continue
            self.result.symbols.append(
                Symbol(
                    name=_text(left),
                    kind=SymbolKind.VARIABLE,
                    signature=_first_line(_text(child)),
                    start_line=node.start_point[0],
                    end_line=node.end_point[0],
                    exported=not _text(left).startswith("_"),
                )
            )
