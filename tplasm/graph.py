"""Import graph of a build, keyed by resolved absolute path."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .assembler import ImportDirective, TemplateDirectives, parse_directives
from .errors import TemplateSyntaxError
from .options import TemplateOptions
from .references import resolve_file
from .source import SourceUnit


@dataclass(eq=False)
class GraphNode:
    unit: SourceUnit
    directives: TemplateDirectives
    depth: int = 0
    imports: List[Tuple[ImportDirective, "GraphNode"]] = field(default_factory=list)

    @property
    def path(self) -> str:
        return self.unit.path

    def import_paths(self) -> Dict[str, str]:
        """Written import path -> resolved path of the imported unit."""
        return {directive.filename: node.path for directive, node in self.imports}


class DependencyGraph:
    """Discovers imports depth first and yields a topological build order.

    Each file appears once however many units import it; a cycle is a
    directive error.
    """

    def __init__(
        self,
        root: SourceUnit,
        options: TemplateOptions,
        *,
        loader: Callable[[str], SourceUnit] = SourceUnit.from_file,
    ) -> None:
        self.options = options
        self.loader = loader
        self.nodes: Dict[str, GraphNode] = {}
        self._order: List[GraphNode] = []
        self.root = self._visit(root, depth=0, stack=[])

    def _visit(self, unit: SourceUnit, depth: int, stack: List[str]) -> GraphNode:
        node = GraphNode(unit, parse_directives(unit.content, unit.path), depth)
        self.nodes[unit.path] = node
        stack.append(unit.path)
        for directive in node.directives.imports:
            resolved = resolve_file(directive.filename, unit, self.options)
            if resolved in stack:
                cycle = " -> ".join(stack[stack.index(resolved):] + [resolved])
                raise TemplateSyntaxError(
                    f"Circular import: {cycle}",
                    line=f'import {directive.alias} = "{directive.filename}";',
                    kind="import",
                    filename=unit.path,
                    line_number=directive.line_number,
                )
            child = self.nodes.get(resolved)
            if child is None:
                child = self._visit(self.loader(resolved), depth + 1, stack)
            node.imports.append((directive, child))
        stack.pop()
        self._order.append(node)
        return node

    def build_order(self) -> List[GraphNode]:
        """Every node after all of its imports; the root comes last."""
        return list(self._order)

    def libraries(self) -> List[GraphNode]:
        return [node for node in self._order if node is not self.root]

    def get(self, path: str) -> Optional[GraphNode]:
        return self.nodes.get(path)


__all__ = ["DependencyGraph", "GraphNode"]
