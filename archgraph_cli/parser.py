"""Source parser built on Tree-sitter: exports, imports and import resolution.

Tree-sitter produces a concrete syntax tree that tolerates broken or
incomplete syntax, so a file with a stray error still yields its imports and
exports. Grammars come from the per-language ``tree-sitter-*`` packages:

- ``tree_sitter_typescript`` for ``.ts`` (TypeScript) and ``.tsx`` (TSX)
- ``tree_sitter_javascript`` for ``.js``, ``.jsx``, ``.mjs`` and ``.cjs``
- ``tree_sitter_python`` for ``.py``

Only the module surface is extracted: top-level export declarations and
import statements. Resolution of local specifiers to workspace files is a
separate, filesystem-aware step (:func:`resolve_import_path`).
"""

from __future__ import annotations

import importlib
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import ExportedSymbol, ImportRecord

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# File-extension <-> grammar mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".py": "python",
}

# Grammar name -> the language recorded on a FileRecord.
RECORD_LANGUAGE: Dict[str, str] = {
    "typescript": "typescript",
    "tsx": "typescript",
    "javascript": "javascript",
    "python": "python",
}

# Extensions tried, in order, when resolving an extensionless local specifier.
RESOLVE_EXTENSIONS: Tuple[str, ...] = (".ts", ".tsx", ".js", ".jsx", ".d.ts")
_ESM_TS_SIBLINGS: Dict[str, Tuple[str, ...]] = {
    ".js": (".ts", ".tsx"),
    ".jsx": (".tsx",),
    ".mjs": (".mts",),
    ".cjs": (".cts",),
}

_TS_DECLARATION_KINDS: Dict[str, str] = {
    "function_declaration": "function",
    "generator_function_declaration": "function",
    "function_signature": "function",
    "class_declaration": "class",
    "abstract_class_declaration": "class",
    "interface_declaration": "interface",
    "type_alias_declaration": "type",
    "enum_declaration": "enum",
    "internal_module": "variable",
    "module": "variable",
}

_TS_EXPRESSION_KINDS: Dict[str, str] = {
    "arrow_function": "function",
    "function": "function",
    "function_expression": "function",
    "generator_function": "function",
    "class": "class",
}


@dataclass(frozen=True)
class ParsedModule:
    """Module surface extracted from one file; imports are not yet resolved."""

    exports: Tuple[ExportedSymbol, ...] = ()
    imports: Tuple[ImportRecord, ...] = ()
    has_syntax_errors: bool = False


@dataclass
class _Collector:
    exports: List[ExportedSymbol] = field(default_factory=list)
    imports: List[ImportRecord] = field(default_factory=list)


def language_for_path(path: Path) -> Optional[str]:
    """Grammar name for *path*, or None when the extension is unsupported."""
    return LANGUAGE_MAP.get(path.suffix.lower())


# ===================================================================
# Abstract Parser Interface
# ===================================================================

class Parser(ABC):
    """Abstract source-parser capability: content in, module surface out."""

    @abstractmethod
    def parse_source(self, source: str, language: str) -> ParsedModule:
        """Extract exports and imports from *source* written in *language*."""
        ...

    @abstractmethod
    def supports_language(self, language: str) -> bool:
        """Return True if this parser can handle *language*."""
        ...


# ===================================================================
# Tree-sitter Parser
# ===================================================================

class TreeSitterParser(Parser):
    """Error-tolerant, multi-language parser built on Tree-sitter.

    Language objects are loaded once and shared; a fresh ``tree_sitter.Parser``
    is created per call so that one instance can serve a thread pool.
    """

    # Map grammar name -> (module, factory function returning the language capsule)
    _GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
        "typescript": ("tree_sitter_typescript", "language_typescript"),
        "tsx": ("tree_sitter_typescript", "language_tsx"),
        "javascript": ("tree_sitter_javascript", "language"),
        "python": ("tree_sitter_python", "language"),
    }

    def __init__(self, languages: Optional[Sequence[str]] = None) -> None:
        self._languages: Dict[str, Any] = {}
        self._requested_languages = list(languages or self._GRAMMAR_MODULES)
        self._init_languages()

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def _init_languages(self) -> None:
        from tree_sitter import Language

        for lang in self._requested_languages:
            spec = self._GRAMMAR_MODULES.get(lang)
            if spec is None:
                logger.warning("No grammar module mapped for language '%s'", lang)
                continue
            mod_name, factory = spec
            try:
                mod = importlib.import_module(mod_name)
                self._languages[lang] = Language(getattr(mod, factory)())
                logger.debug("Loaded tree-sitter grammar for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )

    def supports_language(self, language: str) -> bool:
        return language in self._languages

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def parse_source(self, source: str, language: str) -> ParsedModule:
        from tree_sitter import Parser as TSParser

        if language not in self._languages:
            raise ValueError(f"No grammar loaded for language '{language}'")

        tree = TSParser(self._languages[language]).parse(source.encode("utf-8"))
        root = tree.root_node
        out = _Collector()
        if language == "python":
            self._extract_python(root, out)
        else:
            self._extract_ecmascript(root, out)
        return ParsedModule(
            exports=tuple(out.exports),
            imports=tuple(out.imports),
            has_syntax_errors=bool(root.has_error),
        )

    # ------------------------------------------------------------------
    # TypeScript / JavaScript
    # ------------------------------------------------------------------

    def _extract_ecmascript(self, root: Any, out: _Collector) -> None:
        local_kinds = self._collect_local_kinds(root)
        for child in root.named_children:
            if child.type == "import_statement":
                record = self._ecmascript_import(child)
                if record is not None:
                    out.imports.append(record)
            elif child.type == "export_statement":
                self._ecmascript_export(child, local_kinds, out)

    def _collect_local_kinds(self, root: Any) -> Dict[str, str]:
        """Kinds of every top-level binding, exported or not."""
        kinds: Dict[str, str] = {}
        for child in root.named_children:
            decl = child
            if child.type == "export_statement":
                decl = child.child_by_field_name("declaration")
                if decl is None:
                    continue
            for name, kind in _declaration_symbols(decl):
                kinds.setdefault(name, kind)
        return kinds

    @staticmethod
    def _ecmascript_import(node: Any) -> Optional[ImportRecord]:
        source_node = node.child_by_field_name("source")
        symbols: List[str] = []
        inline_type_specifiers = 0
        value_specifiers = 0

        for child in node.named_children:
            if child.type == "import_require_clause":
                # import x = require("y")
                source_node = child.child_by_field_name("source")
                symbols.append("default")
                value_specifiers += 1
            elif child.type == "import_clause":
                for part in child.named_children:
                    if part.type == "identifier":
                        symbols.append("default")
                        value_specifiers += 1
                    elif part.type == "named_imports":
                        for spec in part.named_children:
                            if spec.type != "import_specifier":
                                continue
                            name_node = spec.child_by_field_name("name")
                            if name_node is None:
                                continue
                            symbols.append(_node_text(name_node))
                            if any(c.type == "type" for c in spec.children):
                                inline_type_specifiers += 1
                            else:
                                value_specifiers += 1
                    elif part.type == "namespace_import":
                        value_specifiers += 1

        if source_node is None:
            return None
        declared_type_only = any(c.type == "type" for c in node.children)
        all_inline_types = inline_type_specifiers > 0 and value_specifiers == 0
        return ImportRecord(
            source=_string_value(source_node),
            imported_symbols=tuple(symbols),
            is_type_only=declared_type_only or all_inline_types,
        )

    def _ecmascript_export(self, node: Any, local_kinds: Dict[str, str], out: _Collector) -> None:
        is_default = any(c.type == "default" for c in node.children)
        type_only = any(c.type == "type" for c in node.children)
        source_node = node.child_by_field_name("source")
        declaration = node.child_by_field_name("declaration")
        value = node.child_by_field_name("value")

        if source_node is not None:
            # Re-export: export { a } from "./a" / export * from "./b"
            symbols: List[str] = []
            for child in node.named_children:
                if child.type == "export_clause":
                    for spec in _export_specifiers(child):
                        name, alias = spec
                        symbols.append(name)
                        out.exports.append(_export_symbol(alias or name, "type" if type_only else "variable"))
                elif child.type == "namespace_export":
                    ident = [c for c in child.named_children if c.type in ("identifier", "string")]
                    if ident:
                        out.exports.append(_export_symbol(_string_value(ident[-1]), "variable"))
            out.imports.append(ImportRecord(
                source=_string_value(source_node),
                imported_symbols=tuple(symbols),
                is_type_only=type_only,
            ))
            return

        if declaration is not None:
            found = _declaration_symbols(declaration)
            if is_default:
                kind = found[0][1] if found else _TS_DECLARATION_KINDS.get(declaration.type, "variable")
                out.exports.append(ExportedSymbol(name="default", kind=kind, is_default=True))
            else:
                out.exports.extend(_export_symbol(name, kind) for name, kind in found)
            return

        if is_default or any(c.type == "=" for c in node.children):
            # export default <expr> / export = <expr>
            expr = value if value is not None else (node.named_children[-1] if node.named_children else None)
            out.exports.append(ExportedSymbol(
                name="default", kind=_expression_kind(expr, local_kinds), is_default=True,
            ))
            return

        for child in node.named_children:
            if child.type != "export_clause":
                continue
            for name, alias in _export_specifiers(child):
                exported = alias or name
                kind = local_kinds.get(name, "type" if type_only else "variable")
                out.exports.append(_export_symbol(exported, kind))

    # ------------------------------------------------------------------
    # Python
    # ------------------------------------------------------------------

    def _extract_python(self, root: Any, out: _Collector) -> None:
        public: List[ExportedSymbol] = []
        dunder_all: Optional[List[str]] = None

        for child in root.named_children:
            if child.type in ("import_statement", "import_from_statement"):
                out.imports.extend(self._python_imports(child, type_only=False))
            elif child.type == "if_statement" and _is_type_checking_guard(child):
                body = child.child_by_field_name("consequence")
                for stmt in body.named_children if body is not None else ():
                    if stmt.type in ("import_statement", "import_from_statement"):
                        out.imports.extend(self._python_imports(stmt, type_only=True))
            else:
                names = _python_all(child)
                if names is not None:
                    dunder_all = names
                    continue
                public.extend(_python_definitions(child))

        if dunder_all is not None:
            allowed = set(dunder_all)
            public = [sym for sym in public if sym.name in allowed]
        else:
            public = [sym for sym in public if not sym.name.startswith("_")]
        out.exports.extend(public)

    @staticmethod
    def _python_imports(node: Any, type_only: bool) -> List[ImportRecord]:
        records: List[ImportRecord] = []
        if node.type == "import_statement":
            for name_node in node.children_by_field_name("name"):
                target = name_node
                if name_node.type == "aliased_import":
                    target = name_node.child_by_field_name("name") or name_node
                records.append(ImportRecord(source=_node_text(target), is_type_only=type_only))
            return records

        mod_node = node.child_by_field_name("module_name")
        if mod_node is None:
            return records
        symbols: List[str] = []
        for name_node in node.children_by_field_name("name"):
            target = name_node
            if name_node.type == "aliased_import":
                target = name_node.child_by_field_name("name") or name_node
            symbols.append(_node_text(target))
        if any(c.type == "wildcard_import" for c in node.named_children):
            symbols.append("*")
        records.append(ImportRecord(
            source=_node_text(mod_node),
            imported_symbols=tuple(symbols),
            is_type_only=type_only,
        ))
        return records


# ===================================================================
# Import resolution
# ===================================================================

def resolve_import_path(
    specifier: str,
    from_file: Path,
    workspace_root: Path,
    language: str,
    imported_symbols: Sequence[str] = (),
) -> Optional[str]:
    """Resolve a local import specifier to a workspace-relative posix path.

    Specifiers that do not look local (``.``/``/`` prefix), that resolve to
    nothing, or that land outside *workspace_root* return None.
    """
    if not specifier.startswith((".", "/")):
        return None
    if language == "python":
        candidates = _python_candidates(specifier, from_file, imported_symbols)
    else:
        candidates = _ecmascript_candidates(specifier, from_file)

    for candidate in candidates:
        if candidate.is_file():
            rel = os.path.relpath(candidate, workspace_root)
            if rel.startswith(".."):
                return None
            return Path(rel).as_posix()
    return None


def _ecmascript_candidates(specifier: str, from_file: Path) -> List[Path]:
    base = Path(os.path.normpath(os.path.join(from_file.parent, specifier)))
    candidates = [base]
    candidates.extend(Path(f"{base}{ext}") for ext in RESOLVE_EXTENSIONS)
    # ESM-style "./foo.js" written against "./foo.ts"
    for sibling in _ESM_TS_SIBLINGS.get(base.suffix, ()):
        candidates.append(base.with_suffix(sibling))
    candidates.extend(base / f"index{ext}" for ext in RESOLVE_EXTENSIONS)
    return candidates


def _python_candidates(specifier: str, from_file: Path, imported_symbols: Sequence[str]) -> List[Path]:
    dots = len(specifier) - len(specifier.lstrip("."))
    rest = specifier[dots:]
    base = from_file.parent
    for _ in range(max(dots - 1, 0)):
        base = base.parent
    if rest:
        target = base.joinpath(*rest.split("."))
        return [Path(f"{target}.py"), target / "__init__.py"]
    # "from . import utils" imports sibling modules by name.
    candidates = [base / f"{name}.py" for name in imported_symbols if name != "*"]
    candidates.append(base / "__init__.py")
    return candidates


# ===================================================================
# Shared Helpers
# ===================================================================

def _node_text(node: Any) -> str:
    return node.text.decode("utf-8")


def _string_value(node: Any) -> str:
    raw = _node_text(node)
    if len(raw) >= 2 and raw[0] in "'\"`" and raw[-1] == raw[0]:
        return raw[1:-1]
    return raw


def _export_symbol(name: str, kind: str) -> ExportedSymbol:
    if name == "default":
        return ExportedSymbol(name="default", kind=kind, is_default=True)  # type: ignore[arg-type]
    return ExportedSymbol(name=name, kind=kind)  # type: ignore[arg-type]


def _export_specifiers(clause: Any) -> List[Tuple[str, Optional[str]]]:
    specs: List[Tuple[str, Optional[str]]] = []
    for spec in clause.named_children:
        if spec.type != "export_specifier":
            continue
        name_node = spec.child_by_field_name("name")
        alias_node = spec.child_by_field_name("alias")
        if name_node is None:
            continue
        specs.append((_string_value(name_node), _string_value(alias_node) if alias_node is not None else None))
    return specs


def _declaration_symbols(decl: Any) -> List[Tuple[str, str]]:
    """(name, kind) pairs bound by a TS/JS declaration node."""
    if decl.type == "ambient_declaration":
        for sub in decl.named_children:
            found = _declaration_symbols(sub)
            if found:
                return found
        return []

    kind = _TS_DECLARATION_KINDS.get(decl.type)
    if kind is not None:
        name_node = decl.child_by_field_name("name")
        return [(_string_value(name_node), kind)] if name_node is not None else []

    if decl.type in ("lexical_declaration", "variable_declaration"):
        kind = "const" if decl.children and decl.children[0].type == "const" else "variable"
        names: List[Tuple[str, str]] = []
        for declarator in decl.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            if name_node is None:
                continue
            for ident in _pattern_identifiers(name_node):
                names.append((ident, kind))
        return names
    return []


def _pattern_identifiers(node: Any) -> List[str]:
    """Identifiers bound by a plain or destructuring binding pattern."""
    if node.type in ("identifier", "shorthand_property_identifier_pattern"):
        return [_node_text(node)]
    found: List[str] = []
    for child in node.named_children:
        if child.type == "pair_pattern":
            value = child.child_by_field_name("value")
            if value is not None:
                found.extend(_pattern_identifiers(value))
        elif child.type in ("property_identifier", "type_annotation", "number", "string"):
            continue
        else:
            found.extend(_pattern_identifiers(child))
    return found


def _expression_kind(expr: Any, local_kinds: Dict[str, str]) -> str:
    if expr is None:
        return "variable"
    if expr.type == "identifier":
        return local_kinds.get(_node_text(expr), "variable")
    return _TS_EXPRESSION_KINDS.get(expr.type, "variable")


def _is_type_checking_guard(node: Any) -> bool:
    condition = node.child_by_field_name("condition")
    return condition is not None and _node_text(condition) in ("TYPE_CHECKING", "typing.TYPE_CHECKING")


def _python_definitions(node: Any) -> List[ExportedSymbol]:
    actual = node
    if node.type == "decorated_definition":
        actual = node.child_by_field_name("definition")
        if actual is None:
            return []
    if actual.type in ("function_definition", "class_definition"):
        name_node = actual.child_by_field_name("name")
        if name_node is None:
            return []
        kind = "function" if actual.type == "function_definition" else "class"
        return [ExportedSymbol(name=_node_text(name_node), kind=kind)]  # type: ignore[arg-type]
    if actual.type == "expression_statement" and actual.named_children:
        assign = actual.named_children[0]
        if assign.type == "assignment":
            left = assign.child_by_field_name("left")
            if left is not None and left.type == "identifier":
                name = _node_text(left)
                kind = "const" if name.isupper() else "variable"
                return [ExportedSymbol(name=name, kind=kind)]  # type: ignore[arg-type]
    return []


def _python_all(node: Any) -> Optional[List[str]]:
    """Names listed in a literal ``__all__ = [...]`` assignment, else None."""
    if node.type != "expression_statement" or not node.named_children:
        return None
    assign = node.named_children[0]
    if assign.type != "assignment":
        return None
    left = assign.child_by_field_name("left")
    right = assign.child_by_field_name("right")
    if left is None or right is None or _node_text(left) != "__all__":
        return None
    if right.type not in ("list", "tuple"):
        return None
    return [_string_value(item) for item in right.named_children if item.type == "string"]
